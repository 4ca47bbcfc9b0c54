from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.services.profiles import get_current_profile, get_profile, get_profiles_map
from models.feed import Post
from models.notify import Notification
from models.profile import Profile
from schemas.notify import (
    NOTIFICATION_TYPES,
    NotificationCountResponse,
    NotificationCreateRequest,
    NotificationListResponse,
    NotificationResponse,
    NotificationUpdateRequest,
)
from schemas.profile import ProfileSummary

router = APIRouter()

TAB_FILTERS = {
    "unread": lambda stmt: stmt.where(Notification.read.is_(False)),
    "likes": lambda stmt: stmt.where(Notification.type == "like"),
    "follows": lambda stmt: stmt.where(Notification.type == "follow"),
    "mentions": lambda stmt: stmt.where(Notification.type == "mention"),
}


@router.get("")
async def list_notifications(
    tab: str = "all",
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    count_only: bool = False,
    profile: Profile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
):
    if count_only:
        unread = await db.execute(
            select(func.count(Notification.id))
            .where(Notification.recipient_id == profile.id, Notification.read.is_(False))
        )
        return NotificationCountResponse(count=unread.scalar_one())
    if tab != "all" and tab not in TAB_FILTERS:
        raise HTTPException(status_code=400, detail="Invalid tab")
    stmt = select(Notification).where(Notification.recipient_id == profile.id)
    if tab in TAB_FILTERS:
        stmt = TAB_FILTERS[tab](stmt)
    rows = await db.execute(
        stmt.order_by(Notification.created_at.desc(), Notification.id.desc()).offset(offset).limit(limit)
    )
    notifications = rows.scalars().all()
    actors = await get_profiles_map(db, [n.actor_id for n in notifications])
    post_ids = {n.post_id for n in notifications if n.post_id}
    previews = {}
    if post_ids:
        post_rows = await db.execute(select(Post.id, Post.content).where(Post.id.in_(post_ids)))
        previews = {post_id: content for post_id, content in post_rows}
    return NotificationListResponse(notifications=[
        NotificationResponse(
            id=n.id,
            type=n.type,
            content=n.content,
            read=n.read,
            post_id=n.post_id,
            comment_id=n.comment_id,
            post_preview=previews.get(n.post_id),
            user=ProfileSummary.model_validate(actors[n.actor_id]) if n.actor_id in actors else None,
            created_at=n.created_at,
        ) for n in notifications
    ])


@router.post("", status_code=201)
async def create_notification(
    payload: NotificationCreateRequest,
    profile: Profile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
):
    if payload.recipient_id == profile.id:
        raise HTTPException(status_code=400, detail="Cannot create notification for self")
    if payload.type not in NOTIFICATION_TYPES:
        raise HTTPException(status_code=400, detail="Invalid notification type")
    if not await get_profile(db, payload.recipient_id):
        raise HTTPException(status_code=404, detail="Recipient not found")
    notification = Notification(
        recipient_id=payload.recipient_id,
        actor_id=profile.id,
        type=payload.type,
        content=payload.content,
        post_id=payload.post_id,
        comment_id=payload.comment_id,
    )
    db.add(notification)
    await db.commit()
    return {"success": True, "id": notification.id}


@router.patch("")
async def mark_read(
    payload: NotificationUpdateRequest,
    profile: Profile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
):
    stmt = update(Notification).where(Notification.recipient_id == profile.id)
    if payload.markAllAsRead:
        stmt = stmt.where(Notification.read.is_(False))
    elif payload.notificationId is not None:
        stmt = stmt.where(Notification.id == payload.notificationId)
    else:
        raise HTTPException(status_code=400, detail="notificationId or markAllAsRead is required")
    result = await db.execute(stmt.values(read=True).execution_options(synchronize_session=False))
    if payload.notificationId is not None and not payload.markAllAsRead and result.rowcount == 0:
        raise HTTPException(status_code=404, detail="Notification not found")
    await db.commit()
    return {"success": True, "updated": result.rowcount}
