import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import and_, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.services.profiles import get_current_profile, get_profile, get_profiles_map
from models.chat import Conversation, Message
from models.profile import Profile
from schemas.chat import ConversationCreate, ConversationListResponse, ConversationResponse, MessageResponse
from schemas.profile import ProfileSummary

router = APIRouter()
logger = logging.getLogger("honua.api")


def ordered_pair(user_a: str, user_b: str) -> tuple[str, str]:
    return (user_a, user_b) if user_a <= user_b else (user_b, user_a)


def other_participant_id(conversation: Conversation, user_id: str) -> str:
    if conversation.participant_one_id == user_id:
        return conversation.participant_two_id
    return conversation.participant_one_id


def is_participant(conversation: Conversation, user_id: str) -> bool:
    return user_id in (conversation.participant_one_id, conversation.participant_two_id)


async def find_conversation(db: AsyncSession, user_a: str, user_b: str) -> Conversation | None:
    # rows written before participants were normalised may be in either order
    row = await db.execute(
        select(Conversation).where(or_(
            and_(Conversation.participant_one_id == user_a, Conversation.participant_two_id == user_b),
            and_(Conversation.participant_one_id == user_b, Conversation.participant_two_id == user_a),
        )).order_by(Conversation.id).limit(1)
    )
    return row.scalar_one_or_none()


async def _latest_messages(db: AsyncSession, conversation_ids: list[int]) -> dict[int, Message]:
    if not conversation_ids:
        return {}
    latest_ids = (
        select(func.max(Message.id))
        .where(Message.conversation_id.in_(conversation_ids))
        .group_by(Message.conversation_id)
    )
    rows = await db.execute(select(Message).where(Message.id.in_(latest_ids)))
    return {message.conversation_id: message for message in rows.scalars().all()}


def message_response(message: Message, profiles: dict) -> MessageResponse:
    sender = profiles.get(message.sender_id)
    return MessageResponse(
        id=message.id,
        conversation_id=message.conversation_id,
        sender_id=message.sender_id,
        sender=ProfileSummary.model_validate(sender) if sender else None,
        content=message.content,
        media_url=message.media_url,
        created_at=message.created_at,
    )


async def build_conversation_responses(db: AsyncSession, conversations, user_id: str) -> list[ConversationResponse]:
    latest = await _latest_messages(db, [c.id for c in conversations])
    user_ids = {other_participant_id(c, user_id) for c in conversations}
    user_ids.update(m.sender_id for m in latest.values())
    profiles = await get_profiles_map(db, user_ids)
    result = []
    for c in conversations:
        other = profiles.get(other_participant_id(c, user_id))
        message = latest.get(c.id)
        result.append(ConversationResponse(
            id=c.id,
            other_participant=ProfileSummary.model_validate(other) if other else None,
            latest_message=message_response(message, profiles) if message else None,
            created_at=c.created_at,
            updated_at=c.updated_at or c.created_at,
        ))
    return result


@router.get("", response_model=ConversationListResponse)
async def list_conversations(profile: Profile = Depends(get_current_profile), db: AsyncSession = Depends(get_db)):
    rows = await db.execute(
        select(Conversation)
        .where(or_(Conversation.participant_one_id == profile.id, Conversation.participant_two_id == profile.id))
        .order_by(Conversation.updated_at.desc(), Conversation.id.desc())
    )
    conversations = rows.scalars().all()
    return ConversationListResponse(conversations=await build_conversation_responses(db, conversations, profile.id))


@router.post("", response_model=ConversationResponse)
async def create_or_get_conversation(
    payload: ConversationCreate,
    profile: Profile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
):
    user_id = profile.id
    other_id = payload.participant_id
    if other_id == user_id:
        raise HTTPException(status_code=400, detail="Cannot create a conversation with yourself")
    if not await get_profile(db, other_id):
        raise HTTPException(status_code=404, detail="Participant not found")
    conversation = await find_conversation(db, user_id, other_id)
    if conversation is None:
        first, second = ordered_pair(user_id, other_id)
        conversation = Conversation(participant_one_id=first, participant_two_id=second)
        db.add(conversation)
        try:
            await db.commit()
        except IntegrityError:
            # the other side created it first
            await db.rollback()
            conversation = await find_conversation(db, user_id, other_id)
            if conversation is None:
                raise
        else:
            logger.info("CONVERSATION_CREATED id=%s", conversation.id)
    return (await build_conversation_responses(db, [conversation], user_id))[0]


@router.get("/{conversation_id}", response_model=ConversationResponse)
async def get_conversation(
    conversation_id: int,
    profile: Profile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
):
    conversation = (await db.execute(
        select(Conversation).where(Conversation.id == conversation_id)
    )).scalar_one_or_none()
    if not conversation:
        raise HTTPException(status_code=404, detail="Conversation not found")
    if not is_participant(conversation, profile.id):
        raise HTTPException(status_code=403, detail="Access denied")
    return (await build_conversation_responses(db, [conversation], profile.id))[0]
