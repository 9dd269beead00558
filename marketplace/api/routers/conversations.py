# marketplace/api/routers/conversations.py
from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.auth import current_user
from marketplace.db.session import get_session
from marketplace.errors import Forbidden
from marketplace.schemas.auth import TokenUser
from marketplace.schemas.messages import (
    ConversationCreate,
    ConversationDelete,
    ConversationListResponse,
    ConversationResponse,
    CountResponse,
    MessageCreate,
    MessageListResponse,
    MessageResponse,
    MessagesDelete,
    SuccessResponse,
)
from marketplace.services.conversation_service import conversation_service
from marketplace.services.message_service import message_service

router = APIRouter()


@router.get("", response_model=ConversationListResponse)
async def list_conversations(
    user_id: Optional[str] = Query(default=None, alias="userId"),
    session: AsyncSession = Depends(get_session),
    viewer: TokenUser = Depends(current_user),
):
    """
    List the viewer's conversations, most recently active first.

    Each entry carries both parties, the other party, the product summary,
    the last message and the number of unread messages from the other party.
    """
    if user_id and user_id != viewer.id:
        raise Forbidden(message="You can only list your own conversations")

    conversations = await conversation_service.list_conversations(session, user_id=viewer.id)
    return ConversationListResponse(conversations=conversations)


@router.post("", response_model=ConversationResponse)
async def find_or_create_conversation(
    conversation_in: ConversationCreate,
    session: AsyncSession = Depends(get_session),
    viewer: TokenUser = Depends(current_user),
):
    """Return the conversation for (buyer, seller, product), creating it on first contact."""
    parties = (conversation_in.buyer_id, conversation_in.seller_id)
    if all(parties) and viewer.id not in parties:
        raise Forbidden(message="You can only open conversations you take part in")

    conversation = await conversation_service.find_or_create(
        session,
        buyer_id=conversation_in.buyer_id,
        seller_id=conversation_in.seller_id,
        product_id=conversation_in.product_id,
        viewer_id=viewer.id,
    )
    return ConversationResponse(conversation=conversation)


@router.delete("", response_model=SuccessResponse)
async def delete_conversation(
    payload: ConversationDelete,
    session: AsyncSession = Depends(get_session),
    viewer: TokenUser = Depends(current_user),
):
    """Delete a conversation and every message in it. Either party may do this."""
    if payload.conversation_id:
        await conversation_service.get_for_participant(
            session, conversation_id=payload.conversation_id, user_id=viewer.id
        )
    await conversation_service.delete_conversation(session, conversation_id=payload.conversation_id)
    return SuccessResponse(success=True)


@router.get("/{conversation_id}/messages", response_model=MessageListResponse)
async def list_messages(
    conversation_id: str,
    session: AsyncSession = Depends(get_session),
    viewer: TokenUser = Depends(current_user),
):
    await conversation_service.get_for_participant(session, conversation_id=conversation_id, user_id=viewer.id)
    messages = await message_service.list_messages(session, conversation_id=conversation_id)
    return MessageListResponse(messages=messages)


@router.post("/{conversation_id}/messages", response_model=MessageResponse)
async def send_message(
    conversation_id: str,
    message_in: MessageCreate,
    session: AsyncSession = Depends(get_session),
    viewer: TokenUser = Depends(current_user),
):
    """
    Send a text, image, audio or video message.

    - **content**: text body, only for `text` messages.
    - **mediaUrl**: data URL of the payload, for the other types.
    """
    await conversation_service.get_for_participant(session, conversation_id=conversation_id, user_id=viewer.id)
    if message_in.sender_id and message_in.sender_id != viewer.id:
        raise Forbidden(message="You can only send messages as yourself")

    message = await message_service.send_message(
        session,
        conversation_id=conversation_id,
        sender_id=message_in.sender_id,
        content=message_in.content,
        message_type=message_in.type,
        media_url=message_in.media_url,
    )
    return MessageResponse(message=message)


@router.delete("/{conversation_id}/messages", response_model=CountResponse)
async def delete_messages(
    conversation_id: str,
    payload: MessagesDelete,
    session: AsyncSession = Depends(get_session),
    viewer: TokenUser = Depends(current_user),
):
    await conversation_service.get_for_participant(session, conversation_id=conversation_id, user_id=viewer.id)
    count = await message_service.delete_messages(
        session, conversation_id=conversation_id, message_ids=payload.message_ids
    )
    return CountResponse(count=count)


@router.post("/{conversation_id}/read", response_model=SuccessResponse)
async def mark_conversation_read(
    conversation_id: str,
    session: AsyncSession = Depends(get_session),
    viewer: TokenUser = Depends(current_user),
):
    """Mark every message the viewer received in this conversation as read."""
    await conversation_service.get_for_participant(session, conversation_id=conversation_id, user_id=viewer.id)
    await message_service.mark_read(session, conversation_id=conversation_id, viewer_id=viewer.id)
    return SuccessResponse(success=True)
