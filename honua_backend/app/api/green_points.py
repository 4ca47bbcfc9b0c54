from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.services.profiles import get_current_profile
from models.points import GreenPointTransaction
from models.profile import Profile
from schemas.points import GreenPointsResponse, GreenPointTransactionResponse

router = APIRouter()


@router.get("", response_model=GreenPointsResponse, response_model_exclude_none=True)
async def get_green_points(
    include_history: bool = False,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    profile: Profile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
):
    response = GreenPointsResponse(balance=profile.green_points or 0)
    if include_history:
        rows = await db.execute(
            select(GreenPointTransaction)
            .where(GreenPointTransaction.user_id == profile.id)
            .order_by(GreenPointTransaction.created_at.desc(), GreenPointTransaction.id.desc())
            .offset(offset)
            .limit(limit)
        )
        response.transactions = [
            GreenPointTransactionResponse(
                id=t.id,
                points=t.points,
                source=t.source,
                description=t.description,
                reference_id=t.reference_id,
                created_at=t.created_at,
            ) for t in rows.scalars().all()
        ]
    return response
