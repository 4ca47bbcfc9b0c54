from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import get_db
from app.errors import InviteError, as_http_error
from app.services import invites as invite_service
from app.services.points import award_points_best_effort
from app.services.profiles import get_current_profile, get_profile
from models.profile import Profile
from schemas.invites import (
    InviteAcceptResponse,
    InviteGenerateRequest,
    InviteGenerateResponse,
    InviteResponse,
    InviteStatsResponse,
    InviteValidateResponse,
)

router = APIRouter()


def _invite_response(invite) -> InviteResponse:
    return InviteResponse(invite_code=invite.invite_code, is_used=invite.is_used, created_at=invite.created_at)


@router.post("/generate", response_model=InviteGenerateResponse)
async def generate_invites(
    payload: Optional[InviteGenerateRequest] = None,
    profile: Profile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
):
    payload = payload or InviteGenerateRequest()
    try:
        if payload.bulk:
            issued = await invite_service.issue_invites_bulk(db, profile.id, payload.count)
            return InviteGenerateResponse(invites=[_invite_response(i) for i in issued])
        invite = await invite_service.issue_invite(db, profile.id)
    except InviteError as exc:
        raise as_http_error(exc)
    return InviteGenerateResponse(invite_code=invite.invite_code, invites=[_invite_response(invite)])


@router.get("/validate/{code}", response_model=InviteValidateResponse)
async def validate_invite(code: str, db: AsyncSession = Depends(get_db)):
    invite = await invite_service.get_invite(db, code)
    if not invite or not invite.is_active:
        raise HTTPException(status_code=404, detail="Invalid invite code")
    inviter = await get_profile(db, invite.inviter_id)
    if not inviter:
        raise HTTPException(status_code=404, detail="Inviter profile not found")
    return InviteValidateResponse(
        inviter_name=inviter.full_name,
        inviter_username=inviter.username,
        inviter_avatar=inviter.avatar_url,
        is_valid=True,
        is_used=bool(invite.is_used),
    )


@router.post("/accept/{code}", response_model=InviteAcceptResponse)
async def accept_invite(code: str, profile: Profile = Depends(get_current_profile), db: AsyncSession = Depends(get_db)):
    user_id = profile.id
    try:
        invite = await invite_service.redeem_invite(db, code, user_id)
    except InviteError as exc:
        raise as_http_error(exc)
    inviter_id = invite.inviter_id
    reference = str(invite.id)
    inviter_ok = await award_points_best_effort(
        db, inviter_id, settings.REFERRAL_INVITER_POINTS, "referral",
        description="Friend joined with your invite", reference_id=reference,
    )
    invitee_ok = await award_points_best_effort(
        db, user_id, settings.REFERRAL_INVITEE_POINTS, "welcome_bonus",
        description="Joined with an invite", reference_id=reference,
    )
    return InviteAcceptResponse(inviter_id=inviter_id, points_awarded=inviter_ok and invitee_ok)


@router.get("/stats", response_model=InviteStatsResponse)
async def get_invite_stats(profile: Profile = Depends(get_current_profile), db: AsyncSession = Depends(get_db)):
    return InviteStatsResponse(**await invite_service.invite_stats(db, profile.id))
