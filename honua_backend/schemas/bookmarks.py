from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from schemas.feed import PostResponse

COLOR_PATTERN = r"^#[0-9A-Fa-f]{6}$"


class CollectionCreate(BaseModel):
    name: str = Field(max_length=100)
    description: Optional[str] = None
    color: Optional[str] = Field(default=None, pattern=COLOR_PATTERN)

    @field_validator("name")
    @classmethod
    def name_required(cls, value: str) -> str:
        value = (value or "").strip()
        if not value:
            raise ValueError("Collection name is required")
        return value


class CollectionUpdate(BaseModel):
    name: Optional[str] = Field(default=None, max_length=100)
    description: Optional[str] = None
    color: Optional[str] = Field(default=None, pattern=COLOR_PATTERN)


class CollectionResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    color: str
    bookmark_count: int = 0
    created_at: datetime


class CollectionListResponse(BaseModel):
    collections: List[CollectionResponse]


class BookmarkCreate(BaseModel):
    collection_id: Optional[int] = None


class BookmarkMove(BaseModel):
    collection_id: Optional[int] = None


class BookmarkResponse(BaseModel):
    id: int
    post_id: int
    collection_id: Optional[int] = None
    created_at: datetime
    post: Optional[PostResponse] = None


class BookmarkListResponse(BaseModel):
    bookmarks: List[BookmarkResponse]
