from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Text, UniqueConstraint
from app.database import Base, utcnow


class Conversation(Base):
    __tablename__ = "conversations"
    __table_args__ = (
        # participants are stored sorted, so one row per unordered pair
        UniqueConstraint('participant_one_id', 'participant_two_id', name='uq_conversation_pair'),
    )

    id = Column(Integer, primary_key=True, index=True)
    participant_one_id = Column(String, ForeignKey("profiles.id"), index=True, nullable=False)
    participant_two_id = Column(String, ForeignKey("profiles.id"), index=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, index=True)


class Message(Base):
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, index=True)
    conversation_id = Column(Integer, ForeignKey("conversations.id"), index=True, nullable=False)
    sender_id = Column(String, ForeignKey("profiles.id"), index=True, nullable=False)
    content = Column(Text, nullable=False)
    media_url = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
