import json
from typing import Dict, List, Optional, Sequence

from fastapi import HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.services.profiles import get_profiles_map
from app.utils.text import render_spans
from models.bookmarks import Bookmark
from models.feed import Comment, CommentLike, Post, PostLike, Repost
from schemas.feed import CommentResponse, LinkPreviewData, PostResponse
from schemas.profile import ProfileSummary


def live_posts():
    return select(Post).where(Post.deleted_at.is_(None))


async def get_live_post(db: AsyncSession, post_id: int) -> Post:
    post = (await db.execute(live_posts().where(Post.id == post_id))).scalar_one_or_none()
    if not post:
        raise HTTPException(status_code=404, detail="Post not found")
    return post


async def _viewer_post_ids(db: AsyncSession, model, post_ids: List[int], viewer_id: Optional[str]) -> set:
    if not viewer_id or not post_ids:
        return set()
    rows = await db.execute(select(model.post_id).where(model.post_id.in_(post_ids), model.user_id == viewer_id))
    return {post_id for (post_id,) in rows}


def _link_preview(post: Post) -> Optional[LinkPreviewData]:
    if not post.link_preview_url:
        return None
    return LinkPreviewData(
        url=post.link_preview_url,
        title=post.link_preview_title,
        description=post.link_preview_description,
        image=post.link_preview_image,
        domain=post.link_preview_domain,
    )


async def build_post_responses(
    db: AsyncSession,
    posts: Sequence[Post],
    viewer_id: Optional[str],
    scores: Optional[Dict[int, int]] = None,
) -> List[PostResponse]:
    post_ids = [p.id for p in posts]
    authors = await get_profiles_map(db, [p.user_id for p in posts])
    liked = await _viewer_post_ids(db, PostLike, post_ids, viewer_id)
    bookmarked = await _viewer_post_ids(db, Bookmark, post_ids, viewer_id)
    reposted = await _viewer_post_ids(db, Repost, post_ids, viewer_id)
    result = []
    for p in posts:
        author = authors.get(p.user_id)
        result.append(PostResponse(
            id=p.id,
            user_id=p.user_id,
            author=ProfileSummary.model_validate(author) if author else None,
            content=p.content,
            spans=render_spans(p.content),
            media_urls=json.loads(p.media_urls or "[]"),
            parent_id=p.parent_id,
            location=p.location,
            sustainability_category=p.sustainability_category,
            impact_score=p.impact_score,
            link_preview=_link_preview(p),
            likes_count=p.likes_count or 0,
            comments_count=p.comments_count or 0,
            reposts_count=p.reposts_count or 0,
            liked_by_user=p.id in liked,
            bookmarked_by_user=p.id in bookmarked,
            reposted_by_user=p.id in reposted,
            score=(scores or {}).get(p.id),
            created_at=p.created_at,
        ))
    return result


async def build_comment_responses(
    db: AsyncSession,
    comments: Sequence[Comment],
    viewer_id: Optional[str],
) -> List[CommentResponse]:
    authors = await get_profiles_map(db, [c.user_id for c in comments])
    liked = set()
    comment_ids = [c.id for c in comments]
    if viewer_id and comment_ids:
        rows = await db.execute(
            select(CommentLike.comment_id).where(CommentLike.comment_id.in_(comment_ids), CommentLike.user_id == viewer_id)
        )
        liked = {comment_id for (comment_id,) in rows}
    return [
        CommentResponse(
            id=c.id,
            post_id=c.post_id,
            user_id=c.user_id,
            parent_id=c.parent_id,
            author=ProfileSummary.model_validate(authors[c.user_id]) if c.user_id in authors else None,
            content=c.content,
            spans=render_spans(c.content),
            likes_count=c.likes_count or 0,
            liked_by_user=c.id in liked,
            created_at=c.created_at,
        ) for c in comments
    ]
