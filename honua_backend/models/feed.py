from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Text, UniqueConstraint
from app.database import Base, utcnow


class Post(Base):
    __tablename__ = "posts"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, ForeignKey("profiles.id"), index=True, nullable=False)
    content = Column(Text, nullable=False, default="")
    media_urls = Column(Text, default="[]")  # JSON array string
    parent_id = Column(Integer, ForeignKey("posts.id"), nullable=True)
    location = Column(String, nullable=True)
    sustainability_category = Column(String, index=True, nullable=True)
    impact_score = Column(Integer, nullable=True)
    link_preview_url = Column(String, nullable=True)
    link_preview_title = Column(String, nullable=True)
    link_preview_description = Column(Text, nullable=True)
    link_preview_image = Column(String, nullable=True)
    link_preview_domain = Column(String(255), nullable=True)
    likes_count = Column(Integer, nullable=False, default=0)
    comments_count = Column(Integer, nullable=False, default=0)
    reposts_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
    deleted_at = Column(DateTime(timezone=True), nullable=True)


class Comment(Base):
    __tablename__ = "comments"

    id = Column(Integer, primary_key=True, index=True)
    post_id = Column(Integer, ForeignKey("posts.id"), index=True, nullable=False)
    user_id = Column(String, ForeignKey("profiles.id"), index=True, nullable=False)
    parent_id = Column(Integer, ForeignKey("comments.id"), nullable=True)
    content = Column(Text, nullable=False)
    likes_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=utcnow)


class PostLike(Base):
    __tablename__ = "likes"
    __table_args__ = (
        UniqueConstraint('post_id', 'user_id', name='uq_post_like'),
    )

    id = Column(Integer, primary_key=True, index=True)
    post_id = Column(Integer, ForeignKey("posts.id"), index=True, nullable=False)
    user_id = Column(String, index=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)


class CommentLike(Base):
    __tablename__ = "comment_likes"
    __table_args__ = (
        UniqueConstraint('comment_id', 'user_id', name='uq_comment_like'),
    )

    id = Column(Integer, primary_key=True, index=True)
    comment_id = Column(Integer, ForeignKey("comments.id"), index=True, nullable=False)
    user_id = Column(String, index=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)


class Repost(Base):
    __tablename__ = "reposts"
    __table_args__ = (
        UniqueConstraint('post_id', 'user_id', name='uq_repost'),
    )

    id = Column(Integer, primary_key=True, index=True)
    post_id = Column(Integer, ForeignKey("posts.id"), index=True, nullable=False)
    user_id = Column(String, index=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
