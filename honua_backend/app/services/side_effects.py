import logging
from typing import Awaitable, Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger("honua.side_effects")


async def best_effort(db: AsyncSession, action: str, apply: Callable[[AsyncSession], Awaitable[None]]) -> bool:
    """Stage and commit a secondary write after the primary one has committed.

    A store failure here is logged and rolled back; the caller's primary write
    is already durable and is not affected.
    """
    try:
        await apply(db)
        await db.commit()
        return True
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.warning("SIDE_EFFECT_FAILED action=%s error=%s", action, exc.__class__.__name__)
        return False
