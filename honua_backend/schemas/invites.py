from datetime import datetime

from pydantic import BaseModel, Field


class InviteGenerateRequest(BaseModel):
    bulk: bool = False
    count: int | None = Field(default=None, ge=1)


class InviteResponse(BaseModel):
    invite_code: str
    is_used: bool = False
    created_at: datetime | None = None


class InviteGenerateResponse(BaseModel):
    invite_code: str | None = None
    invites: list[InviteResponse] = []


class InviteValidateResponse(BaseModel):
    inviter_name: str | None = None
    inviter_username: str | None = None
    inviter_avatar: str | None = None
    is_valid: bool
    is_used: bool


class InviteAcceptResponse(BaseModel):
    success: bool = True
    inviter_id: str
    points_awarded: bool


class InviteStatsResponse(BaseModel):
    invitedCount: int
    rank: int
    totalUsers: int
