from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.services.feed import build_post_responses, live_posts
from app.services.profiles import get_current_profile
from models.bookmarks import Bookmark, Collection
from models.feed import Post
from models.profile import Profile
from schemas.bookmarks import BookmarkListResponse, BookmarkMove, BookmarkResponse

router = APIRouter()


@router.get("", response_model=BookmarkListResponse)
async def list_bookmarks(
    collection_id: Optional[int] = None,
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    profile: Profile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
):
    stmt = select(Bookmark).where(Bookmark.user_id == profile.id)
    if collection_id is not None:
        stmt = stmt.where(Bookmark.collection_id == collection_id)
    rows = await db.execute(stmt.order_by(Bookmark.created_at.desc(), Bookmark.id.desc()).offset(offset).limit(limit))
    bookmarks = rows.scalars().all()
    post_ids = [b.post_id for b in bookmarks]
    posts = []
    if post_ids:
        posts = (await db.execute(live_posts().where(Post.id.in_(post_ids)))).scalars().all()
    views = {view.id: view for view in await build_post_responses(db, posts, profile.id)}
    # bookmarks of deleted posts are hidden
    return BookmarkListResponse(bookmarks=[
        BookmarkResponse(
            id=b.id,
            post_id=b.post_id,
            collection_id=b.collection_id,
            created_at=b.created_at,
            post=views[b.post_id],
        ) for b in bookmarks if b.post_id in views
    ])


@router.put("/{bookmark_id}/move", response_model=BookmarkResponse)
async def move_bookmark(
    bookmark_id: int,
    payload: BookmarkMove,
    profile: Profile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
):
    bookmark = (await db.execute(
        select(Bookmark).where(Bookmark.id == bookmark_id, Bookmark.user_id == profile.id)
    )).scalar_one_or_none()
    if not bookmark:
        raise HTTPException(status_code=404, detail="Bookmark not found")
    if payload.collection_id is not None:
        owned = await db.execute(
            select(Collection.id).where(Collection.id == payload.collection_id, Collection.user_id == profile.id)
        )
        if owned.first() is None:
            raise HTTPException(status_code=404, detail="Collection not found")
    bookmark.collection_id = payload.collection_id
    await db.commit()
    return BookmarkResponse(
        id=bookmark.id,
        post_id=bookmark.post_id,
        collection_id=bookmark.collection_id,
        created_at=bookmark.created_at,
    )
