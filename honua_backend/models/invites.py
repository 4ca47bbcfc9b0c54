from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String

from app.database import Base, utcnow


class Invite(Base):
    __tablename__ = "invites"

    id = Column(Integer, primary_key=True, index=True)
    invite_code = Column(String, unique=True, index=True, nullable=False)
    inviter_id = Column(String, ForeignKey("profiles.id"), index=True, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    is_used = Column(Boolean, nullable=False, default=False)
    invited_user_id = Column(String, ForeignKey("profiles.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    used_at = Column(DateTime(timezone=True), nullable=True)
