from datetime import timedelta

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import get_db, utcnow
from app.services.ranking import count_hashtags
from models.feed import Post
from schemas.feed import HashtagCount, HashtagListResponse

router = APIRouter()

HASHTAG_SCAN_LIMIT = 1000
SEARCH_SCAN_LIMIT = 50
SEARCH_RESULT_LIMIT = 20


@router.get("/trending", response_model=HashtagListResponse)
async def trending_hashtags(limit: int = Query(10, ge=1, le=50), db: AsyncSession = Depends(get_db)):
    since = utcnow() - timedelta(days=settings.HASHTAG_WINDOW_DAYS)
    rows = await db.execute(
        select(Post.content)
        .where(Post.deleted_at.is_(None), Post.created_at >= since)
        .order_by(Post.created_at.desc())
        .limit(HASHTAG_SCAN_LIMIT)
    )
    counted = count_hashtags(content for (content,) in rows)[:limit]
    return HashtagListResponse(hashtags=[HashtagCount(hashtag=tag, count=count) for tag, count in counted])


@router.get("/search", response_model=HashtagListResponse)
async def search_hashtags(q: str = "", db: AsyncSession = Depends(get_db)):
    term = q.strip().lstrip("#")
    if not term:
        return HashtagListResponse(hashtags=[])
    rows = await db.execute(
        select(Post.content)
        .where(Post.deleted_at.is_(None), Post.content.ilike(f"%#{term}%"))
        .order_by(Post.created_at.desc())
        .limit(SEARCH_SCAN_LIMIT)
    )
    counted = count_hashtags((content for (content,) in rows), contains=term)[:SEARCH_RESULT_LIMIT]
    return HashtagListResponse(hashtags=[HashtagCount(hashtag=tag, count=count) for tag, count in counted])
