from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Text, UniqueConstraint
from app.database import Base, utcnow

DEFAULT_COLLECTION_COLOR = "#10B981"


class Collection(Base):
    __tablename__ = "collections"
    __table_args__ = (
        UniqueConstraint('user_id', 'name', name='uq_collection_name'),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, ForeignKey("profiles.id"), index=True, nullable=False)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    color = Column(String, nullable=False, default=DEFAULT_COLLECTION_COLOR)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class Bookmark(Base):
    __tablename__ = "bookmarks"
    __table_args__ = (
        UniqueConstraint('post_id', 'user_id', name='uq_bookmark'),
    )

    id = Column(Integer, primary_key=True, index=True)
    post_id = Column(Integer, ForeignKey("posts.id"), index=True, nullable=False)
    user_id = Column(String, index=True, nullable=False)
    collection_id = Column(Integer, ForeignKey("collections.id", ondelete="SET NULL"), index=True, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
