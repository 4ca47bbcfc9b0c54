from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import delete, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.security import get_optional_user_id
from app.services.notifications import notify
from app.services.profiles import get_current_profile, get_profile
from app.services.side_effects import best_effort
from models.profile import Follow, Profile
from schemas.profile import (
    FollowListResponse,
    FollowStatusResponse,
    ProfileListResponse,
    ProfileResponse,
    ProfileSummary,
    ProfileUpdate,
)

router = APIRouter()


@router.get("/current", response_model=ProfileResponse)
async def get_current(profile: Profile = Depends(get_current_profile)):
    return ProfileResponse.model_validate(profile, from_attributes=True)


@router.patch("/current", response_model=ProfileResponse)
async def update_current(
    payload: ProfileUpdate,
    profile: Profile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
):
    changes = payload.model_dump(exclude_unset=True)
    for key, value in changes.items():
        setattr(profile, key, value)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(status_code=409, detail="Username is already taken")
    await db.refresh(profile)
    return ProfileResponse.model_validate(profile, from_attributes=True)


@router.get("/search", response_model=ProfileListResponse)
async def search_profiles(
    q: str = "",
    limit: int = Query(20, ge=1, le=50),
    db: AsyncSession = Depends(get_db),
):
    term = q.strip().lstrip("@")
    if not term:
        return ProfileListResponse(profiles=[])
    rows = await db.execute(
        select(Profile)
        .where(or_(Profile.username.ilike(f"%{term}%"), Profile.full_name.ilike(f"%{term}%")))
        .order_by(Profile.username)
        .limit(limit)
    )
    return ProfileListResponse(profiles=[ProfileSummary.model_validate(p) for p in rows.scalars().all()])


@router.get("/suggestions", response_model=ProfileListResponse)
async def suggest_profiles(
    limit: int = Query(5, ge=1, le=20),
    user_id: str | None = Depends(get_optional_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Most-followed profiles the caller does not already follow."""
    stmt = select(Profile)
    if user_id:
        followed = select(Follow.following_id).where(Follow.follower_id == user_id)
        stmt = stmt.where(Profile.id != user_id, Profile.id.not_in(followed))
    rows = await db.execute(stmt.order_by(Profile.followers_count.desc(), Profile.id).limit(limit))
    return ProfileListResponse(profiles=[ProfileSummary.model_validate(p) for p in rows.scalars().all()])


@router.get("/{username}", response_model=ProfileResponse)
async def get_by_username(username: str, db: AsyncSession = Depends(get_db)):
    profile = (await db.execute(select(Profile).where(Profile.username == username))).scalar_one_or_none()
    if not profile:
        raise HTTPException(status_code=404, detail="Profile not found")
    result = ProfileResponse.model_validate(profile, from_attributes=True)
    result.email = None
    return result


async def _follow_target(db: AsyncSession, target_id: str, follower_id: str) -> Profile:
    if target_id == follower_id:
        raise HTTPException(status_code=400, detail="You cannot follow yourself")
    target = await get_profile(db, target_id)
    if not target:
        raise HTTPException(status_code=404, detail="Profile not found")
    return target


def _adjust_counters(follower_id: str, following_id: str, delta: int):
    async def _apply(session: AsyncSession) -> None:
        await session.execute(
            update(Profile)
            .where(Profile.id == follower_id, Profile.following_count + delta >= 0)
            .values(following_count=Profile.following_count + delta)
            .execution_options(synchronize_session=False)
        )
        await session.execute(
            update(Profile)
            .where(Profile.id == following_id, Profile.followers_count + delta >= 0)
            .values(followers_count=Profile.followers_count + delta)
            .execution_options(synchronize_session=False)
        )
    return _apply


@router.post("/{user_id}/follow")
async def follow(user_id: str, profile: Profile = Depends(get_current_profile), db: AsyncSession = Depends(get_db)):
    follower_id = profile.id
    await _follow_target(db, user_id, follower_id)
    db.add(Follow(follower_id=follower_id, following_id=user_id))
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(status_code=409, detail="Already following this user")
    await best_effort(db, "follow_counters", _adjust_counters(follower_id, user_id, 1))
    await notify(db, user_id, follower_id, "follow", content="started following you")
    return {"success": True, "following": True}


@router.delete("/{user_id}/follow")
async def unfollow(user_id: str, profile: Profile = Depends(get_current_profile), db: AsyncSession = Depends(get_db)):
    follower_id = profile.id
    await _follow_target(db, user_id, follower_id)
    result = await db.execute(
        delete(Follow).where(Follow.follower_id == follower_id, Follow.following_id == user_id)
    )
    if result.rowcount == 0:
        raise HTTPException(status_code=404, detail="Not following this user")
    await db.commit()
    await best_effort(db, "follow_counters", _adjust_counters(follower_id, user_id, -1))
    return {"success": True, "following": False}


@router.get("/{user_id}/follow", response_model=FollowStatusResponse)
async def follow_status(user_id: str, profile: Profile = Depends(get_current_profile), db: AsyncSession = Depends(get_db)):
    rows = await db.execute(
        select(Follow.follower_id, Follow.following_id).where(or_(
            (Follow.follower_id == profile.id) & (Follow.following_id == user_id),
            (Follow.follower_id == user_id) & (Follow.following_id == profile.id),
        ))
    )
    pairs = set(rows.all())
    return FollowStatusResponse(
        is_following=(profile.id, user_id) in pairs,
        follows_you=(user_id, profile.id) in pairs,
    )


async def _follow_list(db: AsyncSession, user_id: str, column_match, column_other, page: int, limit: int) -> FollowListResponse:
    if not await get_profile(db, user_id):
        raise HTTPException(status_code=404, detail="Profile not found")
    rows = await db.execute(
        select(Profile)
        .join(Follow, column_other == Profile.id)
        .where(column_match == user_id)
        .order_by(Follow.created_at.desc(), Follow.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return FollowListResponse(
        profiles=[ProfileSummary.model_validate(p) for p in rows.scalars().all()],
        page=page,
        limit=limit,
    )


@router.get("/{user_id}/followers", response_model=FollowListResponse)
async def list_followers(
    user_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    return await _follow_list(db, user_id, Follow.following_id, Follow.follower_id, page, limit)


@router.get("/{user_id}/following", response_model=FollowListResponse)
async def list_following(
    user_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    return await _follow_list(db, user_id, Follow.follower_id, Follow.following_id, page, limit)
