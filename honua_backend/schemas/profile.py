from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ProfileSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    username: str
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None


class ProfileResponse(ProfileSummary):
    email: Optional[str] = None
    bio: Optional[str] = None
    green_points: int = 0
    followers_count: int = 0
    following_count: int = 0
    created_at: Optional[datetime] = None


class ProfileUpdate(BaseModel):
    username: Optional[str] = Field(default=None, min_length=3, max_length=30, pattern=r"^[A-Za-z0-9_]+$")
    full_name: Optional[str] = Field(default=None, max_length=100)
    bio: Optional[str] = Field(default=None, max_length=500)
    avatar_url: Optional[str] = None


class ProfileListResponse(BaseModel):
    profiles: List[ProfileSummary]


class FollowStatusResponse(BaseModel):
    is_following: bool
    follows_you: bool


class FollowListResponse(BaseModel):
    profiles: List[ProfileSummary]
    page: int
    limit: int
