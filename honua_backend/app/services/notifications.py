from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.services.side_effects import best_effort
from app.utils.text import extract_mentions
from models.notify import Notification
from models.profile import Profile


async def notify(
    db: AsyncSession,
    recipient_id: str | None,
    actor_id: str | None,
    type: str,
    *,
    content: str | None = None,
    post_id: int | None = None,
    comment_id: int | None = None,
) -> bool:
    # nobody is notified about their own actions
    if not recipient_id or recipient_id == actor_id:
        return False

    async def _apply(session: AsyncSession) -> None:
        session.add(Notification(
            recipient_id=recipient_id,
            actor_id=actor_id,
            type=type,
            content=content,
            post_id=post_id,
            comment_id=comment_id,
        ))

    return await best_effort(db, f"notify:{type}", _apply)


async def notify_mentions(
    db: AsyncSession,
    actor_id: str,
    text: str | None,
    *,
    post_id: int | None = None,
    comment_id: int | None = None,
) -> int:
    usernames = extract_mentions(text)
    if not usernames:
        return 0
    sent = 0

    async def _apply(session: AsyncSession) -> None:
        nonlocal sent
        rows = await session.execute(select(Profile.id).where(Profile.username.in_(usernames)))
        for (recipient_id,) in rows:
            if recipient_id == actor_id:
                continue
            session.add(Notification(
                recipient_id=recipient_id,
                actor_id=actor_id,
                type="mention",
                content=(text or "")[:200],
                post_id=post_id,
                comment_id=comment_id,
            ))
            sent += 1

    if not await best_effort(db, "notify:mention", _apply):
        return 0
    return sent
