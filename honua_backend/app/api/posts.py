import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import get_db, utcnow
from app.security import get_optional_user_id
from app.services.feed import build_comment_responses, build_post_responses, get_live_post, live_posts
from app.services.notifications import notify, notify_mentions
from app.services.profiles import get_current_profile
from app.services.ranking import rank_trending
from models.bookmarks import Bookmark, Collection
from models.feed import Comment, Post, PostLike, Repost
from models.profile import Profile
from schemas.bookmarks import BookmarkCreate
from schemas.feed import (
    CommentCreate,
    CommentResponse,
    CommentsListResponse,
    PostCreate,
    PostListResponse,
    PostResponse,
)

router = APIRouter()
logger = logging.getLogger("honua.api")

ALL_CATEGORIES = "All Categories"


def _newest_first(stmt):
    return stmt.order_by(Post.created_at.desc(), Post.id.desc())


@router.get("", response_model=PostListResponse)
async def list_feed(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=50),
    viewer_id: Optional[str] = Depends(get_optional_user_id),
    db: AsyncSession = Depends(get_db),
):
    rows = await db.execute(_newest_first(live_posts()).offset((page - 1) * limit).limit(limit + 1))
    posts = rows.scalars().all()
    has_more = len(posts) > limit
    posts = posts[:limit]
    return PostListResponse(
        posts=await build_post_responses(db, posts, viewer_id),
        page=page,
        limit=limit,
        has_more=has_more,
    )


@router.post("", response_model=PostResponse, status_code=201)
async def create_post(
    payload: PostCreate,
    profile: Profile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
):
    if payload.parent_id is not None:
        await get_live_post(db, payload.parent_id)
    preview = payload.link_preview
    post = Post(
        user_id=profile.id,
        content=payload.content,
        media_urls=json.dumps(payload.media_urls or []),
        parent_id=payload.parent_id,
        location=payload.location,
        sustainability_category=payload.sustainability_category,
        impact_score=payload.impact_score,
        link_preview_url=preview.url if preview else None,
        link_preview_title=preview.title if preview else None,
        link_preview_description=preview.description if preview else None,
        link_preview_image=preview.image if preview else None,
        link_preview_domain=preview.domain if preview else None,
    )
    db.add(post)
    await db.commit()
    await db.refresh(post)
    response = (await build_post_responses(db, [post], profile.id))[0]
    await notify_mentions(db, profile.id, response.content, post_id=response.id)
    return response


@router.get("/recent", response_model=PostListResponse)
async def recent_posts(
    limit: int = Query(10, ge=1, le=50),
    category: Optional[str] = None,
    viewer_id: Optional[str] = Depends(get_optional_user_id),
    db: AsyncSession = Depends(get_db),
):
    stmt = live_posts()
    if category and category != ALL_CATEGORIES:
        stmt = stmt.where(Post.sustainability_category == category)
    posts = (await db.execute(_newest_first(stmt).limit(limit))).scalars().all()
    return PostListResponse(posts=await build_post_responses(db, posts, viewer_id), limit=limit)


@router.get("/trending", response_model=PostListResponse)
async def trending_posts(
    limit: int = Query(10, ge=1, le=50),
    category: Optional[str] = None,
    viewer_id: Optional[str] = Depends(get_optional_user_id),
    db: AsyncSession = Depends(get_db),
):
    stmt = live_posts()
    if category and category != ALL_CATEGORIES:
        stmt = stmt.where(Post.sustainability_category == category)
    window = (await db.execute(_newest_first(stmt).limit(settings.TRENDING_WINDOW))).scalars().all()
    ranked = rank_trending(window, limit)
    posts = [post for post, _ in ranked]
    scores = {post.id: score for post, score in ranked}
    return PostListResponse(posts=await build_post_responses(db, posts, viewer_id, scores=scores), limit=limit)


@router.get("/search", response_model=PostListResponse)
async def search_posts(
    q: str = "",
    limit: int = Query(20, ge=1, le=50),
    viewer_id: Optional[str] = Depends(get_optional_user_id),
    db: AsyncSession = Depends(get_db),
):
    term = q.strip()
    if not term:
        return PostListResponse(posts=[], limit=limit)
    stmt = live_posts().where(Post.content.ilike(f"%{term}%"))
    posts = (await db.execute(_newest_first(stmt).limit(limit))).scalars().all()
    return PostListResponse(posts=await build_post_responses(db, posts, viewer_id), limit=limit)


@router.get("/{post_id}", response_model=PostResponse)
async def get_post(
    post_id: int,
    viewer_id: Optional[str] = Depends(get_optional_user_id),
    db: AsyncSession = Depends(get_db),
):
    post = await get_live_post(db, post_id)
    return (await build_post_responses(db, [post], viewer_id))[0]


@router.delete("/{post_id}")
async def delete_post(
    post_id: int,
    profile: Profile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
):
    post = await get_live_post(db, post_id)
    if post.user_id != profile.id:
        raise HTTPException(status_code=403, detail="You can only delete your own posts")
    post.deleted_at = utcnow()
    await db.commit()
    logger.info("POST_DELETED post=%s user=%s", post_id, profile.id)
    return {"success": True}


async def _current_count(db: AsyncSession, post_id: int, column) -> int:
    return (await db.execute(select(column).where(Post.id == post_id))).scalar_one()


async def _add_engagement(db: AsyncSession, post: Post, row, counter, conflict: str) -> int:
    """Insert ``row`` and bump ``counter`` in one transaction; duplicates are 409."""
    db.add(row)
    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(status_code=409, detail=conflict)
    if counter is not None:
        await db.execute(
            update(Post)
            .where(Post.id == post.id)
            .values({counter.key: counter + 1})
            .execution_options(synchronize_session=False)
        )
    await db.commit()
    return await _current_count(db, post.id, counter) if counter is not None else 0


async def _remove_engagement(db: AsyncSession, post: Post, model, user_id: str, counter, missing: str) -> int:
    result = await db.execute(delete(model).where(model.post_id == post.id, model.user_id == user_id))
    if result.rowcount == 0:
        raise HTTPException(status_code=404, detail=missing)
    if counter is not None:
        await db.execute(
            update(Post)
            .where(Post.id == post.id, counter > 0)
            .values({counter.key: counter - 1})
            .execution_options(synchronize_session=False)
        )
    await db.commit()
    return await _current_count(db, post.id, counter) if counter is not None else 0


@router.post("/{post_id}/like")
async def like_post(post_id: int, profile: Profile = Depends(get_current_profile), db: AsyncSession = Depends(get_db)):
    post = await get_live_post(db, post_id)
    author_id = post.user_id
    count = await _add_engagement(
        db, post, PostLike(post_id=post.id, user_id=profile.id), Post.likes_count, "Post already liked"
    )
    await notify(db, author_id, profile.id, "like", content="liked your post", post_id=post_id)
    return {"success": True, "liked": True, "likes_count": count}


@router.delete("/{post_id}/like")
async def unlike_post(post_id: int, profile: Profile = Depends(get_current_profile), db: AsyncSession = Depends(get_db)):
    post = await get_live_post(db, post_id)
    count = await _remove_engagement(db, post, PostLike, profile.id, Post.likes_count, "Like not found")
    return {"success": True, "liked": False, "likes_count": count}


@router.post("/{post_id}/repost")
async def repost_post(post_id: int, profile: Profile = Depends(get_current_profile), db: AsyncSession = Depends(get_db)):
    post = await get_live_post(db, post_id)
    author_id = post.user_id
    count = await _add_engagement(
        db, post, Repost(post_id=post.id, user_id=profile.id), Post.reposts_count, "Post already reposted"
    )
    await notify(db, author_id, profile.id, "repost", content="reposted your post", post_id=post_id)
    return {"success": True, "reposted": True, "reposts_count": count}


@router.delete("/{post_id}/repost")
async def undo_repost(post_id: int, profile: Profile = Depends(get_current_profile), db: AsyncSession = Depends(get_db)):
    post = await get_live_post(db, post_id)
    count = await _remove_engagement(db, post, Repost, profile.id, Post.reposts_count, "Repost not found")
    return {"success": True, "reposted": False, "reposts_count": count}


@router.post("/{post_id}/bookmark")
async def bookmark_post(
    post_id: int,
    payload: Optional[BookmarkCreate] = None,
    profile: Profile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
):
    post = await get_live_post(db, post_id)
    collection_id = payload.collection_id if payload else None
    if collection_id is not None:
        owned = await db.execute(
            select(Collection.id).where(Collection.id == collection_id, Collection.user_id == profile.id)
        )
        if owned.first() is None:
            raise HTTPException(status_code=404, detail="Collection not found")
    bookmark = Bookmark(post_id=post.id, user_id=profile.id, collection_id=collection_id)
    await _add_engagement(db, post, bookmark, None, "Post already bookmarked")
    return {"success": True, "bookmarked": True, "bookmark_id": bookmark.id, "collection_id": collection_id}


@router.delete("/{post_id}/bookmark")
async def remove_bookmark(post_id: int, profile: Profile = Depends(get_current_profile), db: AsyncSession = Depends(get_db)):
    post = await get_live_post(db, post_id)
    await _remove_engagement(db, post, Bookmark, profile.id, None, "Bookmark not found")
    return {"success": True, "bookmarked": False}


@router.get("/{post_id}/comments", response_model=CommentsListResponse)
async def list_comments(
    post_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    viewer_id: Optional[str] = Depends(get_optional_user_id),
    db: AsyncSession = Depends(get_db),
):
    await get_live_post(db, post_id)
    rows = await db.execute(
        select(Comment)
        .where(Comment.post_id == post_id)
        .order_by(Comment.created_at, Comment.id)
        .offset((page - 1) * limit)
        .limit(limit)
    )
    comments = rows.scalars().all()
    return CommentsListResponse(
        comments=await build_comment_responses(db, comments, viewer_id),
        page=page,
        limit=limit,
    )


@router.post("/{post_id}/comments", response_model=CommentResponse, status_code=201)
async def add_comment(
    post_id: int,
    payload: CommentCreate,
    profile: Profile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
):
    post = await get_live_post(db, post_id)
    author_id = post.user_id
    if payload.parent_id is not None:
        parent = (await db.execute(select(Comment).where(Comment.id == payload.parent_id))).scalar_one_or_none()
        if not parent:
            raise HTTPException(status_code=404, detail="Parent comment not found")
        if parent.post_id != post_id:
            raise HTTPException(status_code=400, detail="Parent comment belongs to another post")
    comment = Comment(post_id=post_id, user_id=profile.id, parent_id=payload.parent_id, content=payload.content)
    db.add(comment)
    await db.flush()
    await db.execute(
        update(Post)
        .where(Post.id == post_id)
        .values(comments_count=Post.comments_count + 1)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    await db.refresh(comment)
    response = (await build_comment_responses(db, [comment], profile.id))[0]
    actor_id = profile.id
    await notify(
        db, author_id, actor_id, "comment",
        content=response.content[:200], post_id=post_id, comment_id=response.id,
    )
    await notify_mentions(db, actor_id, response.content, post_id=post_id, comment_id=response.id)
    return response
