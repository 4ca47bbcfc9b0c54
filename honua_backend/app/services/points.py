from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from app.services.side_effects import best_effort
from models.points import GreenPointTransaction
from models.profile import Profile


async def apply_points(
    db: AsyncSession,
    user_id: str,
    points: int,
    source: str,
    *,
    description: str | None = None,
    reference_id: str | None = None,
) -> None:
    """Stage a ledger row and move the cached balance by ``points``. No commit."""
    await db.execute(
        update(Profile)
        .where(Profile.id == user_id)
        .values(green_points=Profile.green_points + points)
        .execution_options(synchronize_session=False)
    )
    db.add(GreenPointTransaction(
        user_id=user_id,
        points=points,
        source=source,
        description=description,
        reference_id=reference_id,
    ))


async def debit_points(
    db: AsyncSession,
    user_id: str,
    points: int,
    source: str,
    *,
    description: str | None = None,
    reference_id: str | None = None,
) -> bool:
    """Spend points only if the balance covers them. Returns False otherwise."""
    if points <= 0:
        return True
    result = await db.execute(
        update(Profile)
        .where(Profile.id == user_id, Profile.green_points >= points)
        .values(green_points=Profile.green_points - points)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        return False
    db.add(GreenPointTransaction(
        user_id=user_id,
        points=-points,
        source=source,
        description=description,
        reference_id=reference_id,
    ))
    return True


async def award_points_best_effort(
    db: AsyncSession,
    user_id: str,
    points: int,
    source: str,
    *,
    description: str | None = None,
    reference_id: str | None = None,
) -> bool:
    if points <= 0:
        return False

    async def _apply(session: AsyncSession) -> None:
        await apply_points(
            session, user_id, points, source,
            description=description, reference_id=reference_id,
        )

    return await best_effort(db, f"award_points:{source}", _apply)
