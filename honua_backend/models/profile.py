from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Text, UniqueConstraint
from app.database import Base, utcnow


class Profile(Base):
    __tablename__ = "profiles"

    id = Column(String, primary_key=True)  # identity provider subject
    username = Column(String, unique=True, index=True, nullable=False)
    full_name = Column(String, nullable=True)
    email = Column(String, nullable=True)
    avatar_url = Column(String, nullable=True)
    bio = Column(Text, nullable=True)
    green_points = Column(Integer, nullable=False, default=0)
    followers_count = Column(Integer, nullable=False, default=0)
    following_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class Follow(Base):
    __tablename__ = "follows"
    __table_args__ = (
        UniqueConstraint('follower_id', 'following_id', name='uq_follow_pair'),
    )

    id = Column(Integer, primary_key=True, index=True)
    follower_id = Column(String, ForeignKey("profiles.id"), index=True, nullable=False)
    following_id = Column(String, ForeignKey("profiles.id"), index=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
