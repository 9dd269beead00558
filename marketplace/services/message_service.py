import logging
from typing import Any, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.config import settings
from marketplace.db.models import Message, MessageType, utcnow
from marketplace.db.repositories.conversation_repo import ConversationRepository, conversation_repo
from marketplace.db.repositories.message_repo import MessageRepository, message_repo
from marketplace.db.repositories.user_repo import UserRepository, user_repo
from marketplace.errors import ConversationNotFound, DataValidationError
from marketplace.schemas.messages import MessagePublic, UnreadCountResponse

logger = logging.getLogger(__name__)


def infer_media_type(media_url: str) -> MessageType:
    """Derive the message type from a data URL such as ``data:image/png;base64,...``."""
    if media_url.startswith("data:"):
        major = media_url[5:].split("/", 1)[0].lower()
        try:
            media_type = MessageType(major)
        except ValueError:
            media_type = None
        if media_type and media_type != MessageType.TEXT:
            return media_type
    raise DataValidationError(message="Message type is required for this media payload")


def validate_payload(
    content: Optional[str], message_type: Optional[str], media_url: Optional[str]
) -> MessageType:
    """Check the content/media pairing of an outgoing message and resolve its type."""
    if not content and not media_url:
        raise DataValidationError(message="Message needs either content or mediaUrl")
    if content and media_url:
        raise DataValidationError(message="Message cannot carry both content and mediaUrl")

    if message_type:
        try:
            resolved = MessageType(message_type)
        except ValueError:
            raise DataValidationError(message=f"Unknown message type '{message_type}'")
    elif content:
        resolved = MessageType.TEXT
    else:
        resolved = infer_media_type(media_url)

    if resolved == MessageType.TEXT and not content:
        raise DataValidationError(message="Text messages need content")
    if resolved != MessageType.TEXT and not media_url:
        raise DataValidationError(message=f"{resolved.value.capitalize()} messages need a mediaUrl")
    if media_url and len(media_url) > settings.MAX_MEDIA_URL_LENGTH:
        raise DataValidationError(message="Media payload is too large")
    return resolved


class MessageService:
    def __init__(
        self,
        messages: MessageRepository,
        conversations: ConversationRepository,
        users: UserRepository,
    ):
        self.messages = messages
        self.conversations = conversations
        self.users = users

    async def _require_conversation(self, session: AsyncSession, conversation_id: str):
        conversation = await self.conversations.get(session, id=conversation_id)
        if conversation is None:
            raise ConversationNotFound()
        return conversation

    async def list_messages(self, session: AsyncSession, *, conversation_id: str) -> List[MessagePublic]:
        """Messages of a conversation, oldest first."""
        await self._require_conversation(session, conversation_id)
        messages = await self.messages.list_for_conversation(session, conversation_id=conversation_id)
        return [MessagePublic.model_validate(m) for m in messages]

    async def send_message(
        self,
        session: AsyncSession,
        *,
        conversation_id: str,
        sender_id: Optional[str],
        content: Optional[str] = None,
        message_type: Optional[str] = None,
        media_url: Optional[str] = None,
    ) -> MessagePublic:
        """
        Persist a message and bump the conversation's freshness.

        Text messages carry ``content``; image, audio and video messages carry
        ``media_url`` (usually a data URL). Exactly one of the two is stored,
        the other is kept null.
        """
        if not sender_id:
            raise DataValidationError(message="Missing required fields: senderId")
        resolved = validate_payload(content, message_type, media_url)

        conversation = await self._require_conversation(session, conversation_id)

        now = utcnow()
        message = Message(
            conversation_id=conversation_id,
            sender_id=sender_id,
            content=content if resolved == MessageType.TEXT else None,
            type=resolved,
            media_url=media_url if resolved != MessageType.TEXT else None,
            created_at=now,
        )
        session.add(message)
        conversation.updated_at = now
        await session.commit()

        logger.info(f"Message {message.id} ({resolved.value}) sent to conversation {conversation_id}")
        created = await self.messages.get_with_sender(session, id=message.id)
        return MessagePublic.model_validate(created)

    async def mark_read(self, session: AsyncSession, *, conversation_id: str, viewer_id: str) -> int:
        """Mark everything the viewer received in the conversation as read."""
        await self._require_conversation(session, conversation_id)
        updated = await self.messages.mark_read(
            session, conversation_id=conversation_id, viewer_id=viewer_id
        )
        if updated:
            logger.info(f"Marked {updated} messages read in {conversation_id} for {viewer_id}")
        return updated

    async def delete_messages(
        self, session: AsyncSession, *, conversation_id: str, message_ids: Any
    ) -> int:
        if not isinstance(message_ids, list) or len(message_ids) == 0:
            raise DataValidationError(message="No messages selected")
        if not all(isinstance(i, str) and i for i in message_ids):
            raise DataValidationError(message="Message ids must be non-empty strings")

        await self._require_conversation(session, conversation_id)
        count = await self.messages.delete_in_conversation(
            session, conversation_id=conversation_id, message_ids=message_ids
        )
        logger.info(f"Deleted {count} of {len(message_ids)} requested messages in {conversation_id}")
        return count

    async def unread_count(self, session: AsyncSession, *, viewer_id: str) -> UnreadCountResponse:
        count = await self.messages.count_unread_for_user(session, viewer_id=viewer_id)
        sound = await self.users.get_notification_sound(session, user_id=viewer_id)
        return UnreadCountResponse(count=count, sound=sound)

message_service = MessageService(message_repo, conversation_repo, user_repo)
