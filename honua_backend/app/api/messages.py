from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.conversations import message_response, is_participant
from app.database import get_db, utcnow
from app.services.profiles import get_current_profile, get_profiles_map
from models.chat import Conversation, Message
from models.profile import Profile
from schemas.chat import MessageCreate, MessageListResponse, MessageResponse

router = APIRouter()


async def _participant_conversation(db: AsyncSession, conversation_id: int, user_id: str) -> Conversation:
    conversation = (await db.execute(
        select(Conversation).where(Conversation.id == conversation_id)
    )).scalar_one_or_none()
    # non-participants cannot tell a foreign conversation from a missing one
    if not conversation or not is_participant(conversation, user_id):
        raise HTTPException(status_code=404, detail="Conversation not found")
    return conversation


@router.get("", response_model=MessageListResponse)
async def list_messages(
    conversation_id: int,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    profile: Profile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
):
    await _participant_conversation(db, conversation_id, profile.id)
    rows = await db.execute(
        select(Message)
        .where(Message.conversation_id == conversation_id)
        .order_by(Message.created_at, Message.id)
        .offset(offset)
        .limit(limit)
    )
    messages = rows.scalars().all()
    profiles = await get_profiles_map(db, [m.sender_id for m in messages])
    return MessageListResponse(messages=[message_response(m, profiles) for m in messages])


@router.post("", response_model=MessageResponse, status_code=201)
async def send_message(
    payload: MessageCreate,
    profile: Profile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
):
    conversation = await _participant_conversation(db, payload.conversation_id, profile.id)
    message = Message(
        conversation_id=conversation.id,
        sender_id=profile.id,
        content=payload.content,
        media_url=payload.media_url,
    )
    db.add(message)
    await db.flush()
    await db.execute(
        update(Conversation)
        .where(Conversation.id == conversation.id)
        .values(updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    await db.refresh(message)
    return message_response(message, {profile.id: profile})
