import logging
import secrets
import string
from typing import Callable, List

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import utcnow
from app.errors import InviteError
from models.invites import Invite
from models.profile import Profile

# nanoid's url-safe alphabet
INVITE_ALPHABET = string.ascii_letters + string.digits + "_-"
MAX_MINT_ATTEMPTS = 50
MAX_INSERT_ATTEMPTS = 5

logger = logging.getLogger("honua.invites")


def generate_invite_code(length: int | None = None) -> str:
    size = length or settings.INVITE_CODE_LENGTH
    return "".join(secrets.choice(INVITE_ALPHABET) for _ in range(size))


async def code_exists(db: AsyncSession, code: str) -> bool:
    row = await db.execute(select(Invite.id).where(Invite.invite_code == code))
    return row.first() is not None


async def mint_unique_codes(
    db: AsyncSession,
    count: int,
    generate: Callable[[], str] = generate_invite_code,
) -> List[str]:
    """Draw ``count`` codes unique against the store and against each other."""
    batch: List[str] = []
    attempts = 0
    while len(batch) < count:
        attempts += 1
        if attempts > count * MAX_MINT_ATTEMPTS:
            raise InviteError(500, "Failed to generate unique invite codes")
        code = generate()
        if code in batch or await code_exists(db, code):
            continue
        batch.append(code)
    return batch


async def find_reusable_invite(db: AsyncSession, inviter_id: str) -> Invite | None:
    row = await db.execute(
        select(Invite)
        .where(Invite.inviter_id == inviter_id, Invite.is_active.is_(True), Invite.is_used.is_(False))
        .order_by(Invite.created_at.desc(), Invite.id.desc())
        .limit(1)
    )
    return row.scalar_one_or_none()


async def issue_invite(
    db: AsyncSession,
    inviter_id: str,
    generate: Callable[[], str] = generate_invite_code,
) -> Invite:
    existing = await find_reusable_invite(db, inviter_id)
    if existing:
        return existing
    for _ in range(MAX_INSERT_ATTEMPTS):
        invite = Invite(invite_code=generate(), inviter_id=inviter_id)
        db.add(invite)
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            logger.info("INVITE_CODE_COLLISION inviter=%s", inviter_id)
            continue
        return invite
    raise InviteError(500, "Failed to generate unique invite code")


async def issue_invites_bulk(
    db: AsyncSession,
    inviter_id: str,
    count: int | None = None,
    generate: Callable[[], str] = generate_invite_code,
) -> List[Invite]:
    size = min(count or settings.INVITE_BULK_COUNT, settings.INVITE_BULK_MAX)
    for _ in range(MAX_INSERT_ATTEMPTS):
        codes = await mint_unique_codes(db, size, generate)
        invites = [Invite(invite_code=code, inviter_id=inviter_id) for code in codes]
        db.add_all(invites)
        try:
            await db.commit()
        except IntegrityError:
            # another writer took one of the codes between check and insert
            await db.rollback()
            logger.info("INVITE_BATCH_COLLISION inviter=%s size=%s", inviter_id, size)
            continue
        logger.info("INVITES_ISSUED inviter=%s count=%s", inviter_id, len(invites))
        return invites
    raise InviteError(500, "Failed to generate unique invite codes")


async def get_invite(db: AsyncSession, code: str) -> Invite | None:
    row = await db.execute(select(Invite).where(Invite.invite_code == code))
    return row.scalar_one_or_none()


async def redeem_invite(db: AsyncSession, code: str, user_id: str) -> Invite:
    """Mark an invite used by ``user_id``; the state check and the write are one UPDATE."""
    invite = await get_invite(db, code)
    if not invite:
        raise InviteError(404, "Invalid invite code")
    if invite.inviter_id == user_id:
        raise InviteError(400, "You cannot use your own invite code")
    if not invite.is_active or invite.is_used:
        raise InviteError(404, "Invite code is no longer available")
    used_at = utcnow()
    result = await db.execute(
        update(Invite)
        .where(Invite.id == invite.id, Invite.is_used.is_(False), Invite.is_active.is_(True))
        .values(is_used=True, used_at=used_at, invited_user_id=user_id)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        await db.rollback()
        logger.info("INVITE_REDEEM_RACE code=%s user=%s", code, user_id)
        raise InviteError(404, "Invite code is no longer available")
    await db.commit()
    logger.info("INVITE_REDEEMED inviter=%s user=%s", invite.inviter_id, user_id)
    return invite


async def invite_stats(db: AsyncSession, user_id: str) -> dict:
    used_counts = await db.execute(
        select(Invite.inviter_id, func.count(Invite.id))
        .where(Invite.is_used.is_(True))
        .group_by(Invite.inviter_id)
    )
    counts = {inviter_id: count for inviter_id, count in used_counts}
    invited = counts.get(user_id, 0)
    rank = 0
    if invited > 0:
        rank = 1 + sum(1 for count in counts.values() if count > invited)
    total_users = (await db.execute(select(func.count(Profile.id)))).scalar_one()
    return {"invitedCount": invited, "rank": rank, "totalUsers": total_users}
