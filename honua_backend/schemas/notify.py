from datetime import datetime

from pydantic import BaseModel

from schemas.profile import ProfileSummary

NOTIFICATION_TYPES = ("like", "comment", "repost", "follow", "mention", "order")


class NotificationCreateRequest(BaseModel):
    recipient_id: str
    type: str
    content: str | None = None
    post_id: int | None = None
    comment_id: int | None = None


class NotificationUpdateRequest(BaseModel):
    notificationId: int | None = None
    markAllAsRead: bool = False


class NotificationResponse(BaseModel):
    id: int
    type: str
    content: str | None = None
    read: bool
    post_id: int | None = None
    comment_id: int | None = None
    post_preview: str | None = None
    user: ProfileSummary | None = None
    created_at: datetime


class NotificationListResponse(BaseModel):
    notifications: list[NotificationResponse]


class NotificationCountResponse(BaseModel):
    count: int
