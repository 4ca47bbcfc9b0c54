from pydantic import BaseModel, Field, field_validator
from typing import List, Optional
from datetime import datetime

from schemas.profile import ProfileSummary


class SpanResponse(BaseModel):
    kind: str
    text: str
    href: Optional[str] = None


class LinkPreviewData(BaseModel):
    url: str
    title: Optional[str] = None
    description: Optional[str] = None
    image: Optional[str] = None
    domain: Optional[str] = None


class PostCreate(BaseModel):
    content: str
    media_urls: List[str] = []
    parent_id: Optional[int] = None
    location: Optional[str] = None
    sustainability_category: Optional[str] = None
    impact_score: Optional[int] = Field(default=None, ge=0)
    link_preview: Optional[LinkPreviewData] = None

    @field_validator("content")
    @classmethod
    def content_required(cls, value: str) -> str:
        value = (value or "").strip()
        if not value:
            raise ValueError("Content is required")
        return value


class PostResponse(BaseModel):
    id: int
    user_id: str
    author: Optional[ProfileSummary] = None
    content: str
    spans: List[SpanResponse] = []
    media_urls: List[str] = []
    parent_id: Optional[int] = None
    location: Optional[str] = None
    sustainability_category: Optional[str] = None
    impact_score: Optional[int] = None
    link_preview: Optional[LinkPreviewData] = None
    likes_count: int = 0
    comments_count: int = 0
    reposts_count: int = 0
    liked_by_user: bool = False
    bookmarked_by_user: bool = False
    reposted_by_user: bool = False
    score: Optional[int] = None
    created_at: datetime


class PostListResponse(BaseModel):
    posts: List[PostResponse]
    page: int = 1
    limit: int = 20
    has_more: bool = False


class CommentCreate(BaseModel):
    content: str
    parent_id: Optional[int] = None

    @field_validator("content")
    @classmethod
    def content_required(cls, value: str) -> str:
        value = (value or "").strip()
        if not value:
            raise ValueError("Content is required")
        return value


class CommentResponse(BaseModel):
    id: int
    post_id: int
    user_id: str
    parent_id: Optional[int] = None
    author: Optional[ProfileSummary] = None
    content: str
    spans: List[SpanResponse] = []
    likes_count: int = 0
    liked_by_user: bool = False
    created_at: datetime


class CommentsListResponse(BaseModel):
    comments: List[CommentResponse]
    page: int = 1
    limit: int = 20


class HashtagCount(BaseModel):
    hashtag: str
    count: int


class HashtagListResponse(BaseModel):
    hashtags: List[HashtagCount]
