from pydantic import BaseModel, Field, field_validator
from typing import List, Optional
from datetime import datetime

from schemas.profile import ProfileSummary


class ConversationCreate(BaseModel):
    participant_id: str


class MessageCreate(BaseModel):
    conversation_id: int
    content: str = Field(max_length=5000)
    media_url: Optional[str] = None

    @field_validator("content")
    @classmethod
    def content_required(cls, value: str) -> str:
        value = (value or "").strip()
        if not value:
            raise ValueError("Message content is required")
        return value


class MessageResponse(BaseModel):
    id: int
    conversation_id: int
    sender_id: str
    sender: Optional[ProfileSummary] = None
    content: str
    media_url: Optional[str] = None
    created_at: datetime


class ConversationResponse(BaseModel):
    id: int
    other_participant: Optional[ProfileSummary] = None
    latest_message: Optional[MessageResponse] = None
    created_at: datetime
    updated_at: datetime


class ConversationListResponse(BaseModel):
    conversations: List[ConversationResponse]


class MessageListResponse(BaseModel):
    messages: List[MessageResponse]
