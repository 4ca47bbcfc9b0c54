import logging
import re

from fastapi import Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.security import Identity, get_current_identity
from models.profile import Profile

logger = logging.getLogger("honua.api")

USERNAME_MAX = 24
MAX_USERNAME_ATTEMPTS = 20


def base_username(identity: Identity) -> str:
    raw = identity.claims.get("username") or (identity.claims.get("email") or "").split("@")[0] or "user"
    cleaned = re.sub(r"[^A-Za-z0-9_]", "", raw)[:USERNAME_MAX]
    return cleaned or "user"


async def get_profile(db: AsyncSession, user_id: str) -> Profile | None:
    return (await db.execute(select(Profile).where(Profile.id == user_id))).scalar_one_or_none()


async def get_profiles_map(db: AsyncSession, user_ids) -> dict[str, Profile]:
    ids = {uid for uid in user_ids if uid}
    if not ids:
        return {}
    rows = await db.execute(select(Profile).where(Profile.id.in_(ids)))
    return {p.id: p for p in rows.scalars().all()}


async def ensure_profile(db: AsyncSession, identity: Identity) -> Profile:
    """Load the caller's profile, creating it on first contact.

    Username collisions are settled by the unique index: each failed insert
    retries with the next numeric suffix.
    """
    profile = await get_profile(db, identity.user_id)
    if profile:
        return profile
    base = base_username(identity)
    for attempt in range(MAX_USERNAME_ATTEMPTS):
        username = base if attempt == 0 else f"{base}{attempt}"
        db.add(Profile(
            id=identity.user_id,
            username=username,
            full_name=identity.claims.get("full_name"),
            email=identity.claims.get("email"),
            avatar_url=identity.claims.get("avatar_url"),
        ))
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            # a concurrent request may have created the same profile
            profile = await get_profile(db, identity.user_id)
            if profile:
                return profile
            continue
        logger.info("PROFILE_CREATED user=%s username=%s", identity.user_id, username)
        return await get_profile(db, identity.user_id)
    raise HTTPException(status_code=409, detail="Could not allocate a unique username")


async def get_current_profile(
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
) -> Profile:
    return await ensure_profile(db, identity)
