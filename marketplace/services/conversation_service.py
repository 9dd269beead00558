import logging
from typing import Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.db.models import Conversation, Message, Product
from marketplace.db.repositories.conversation_repo import ConversationRepository, conversation_repo
from marketplace.db.repositories.message_repo import MessageRepository, message_repo
from marketplace.db.repositories.user_repo import product_repo, user_repo
from marketplace.errors import (
    ConversationNotFound,
    DataValidationError,
    Forbidden,
    ProductNotFound,
    UserNotFound,
)
from marketplace.schemas.auth import UserPublic
from marketplace.schemas.messages import ConversationPublic, MessagePublic, ProductSummary

logger = logging.getLogger(__name__)


def product_summary(product: Optional[Product]) -> Optional[ProductSummary]:
    if product is None:
        return None
    return ProductSummary(
        id=product.id,
        title=product.title,
        image_data=product.image_data,
        image=product.images[0] if product.images else None,
    )


class ConversationService:
    """Buyer/seller conversations: listing with read state, lookup-or-create, deletion."""

    def __init__(self, conversations: ConversationRepository, messages: MessageRepository):
        self.conversations = conversations
        self.messages = messages

    def _to_public(
        self,
        conversation: Conversation,
        *,
        viewer_id: Optional[str],
        last_message: Optional[Message] = None,
        unread_count: int = 0,
    ) -> ConversationPublic:
        other = conversation.other_party(viewer_id) if conversation.has_participant(viewer_id) else None
        return ConversationPublic(
            id=conversation.id,
            buyer_id=conversation.buyer_id,
            seller_id=conversation.seller_id,
            product_id=conversation.product_id,
            created_at=conversation.created_at,
            updated_at=conversation.updated_at,
            buyer=UserPublic.model_validate(conversation.buyer),
            seller=UserPublic.model_validate(conversation.seller),
            other_user=UserPublic.model_validate(other) if other else None,
            product=product_summary(conversation.product),
            last_message=MessagePublic.model_validate(last_message) if last_message else None,
            unread_count=unread_count,
        )

    async def _enrich(
        self, session: AsyncSession, conversations: List[Conversation], *, viewer_id: Optional[str]
    ) -> List[ConversationPublic]:
        ids = [c.id for c in conversations]
        latest: Dict[str, Message] = await self.messages.latest_by_conversation(session, conversation_ids=ids)
        unread: Dict[str, int] = {}
        if viewer_id:
            unread = await self.messages.unread_by_conversation(
                session, conversation_ids=ids, viewer_id=viewer_id
            )
        return [
            self._to_public(
                c,
                viewer_id=viewer_id,
                last_message=latest.get(c.id),
                unread_count=unread.get(c.id, 0),
            )
            for c in conversations
        ]

    async def list_conversations(self, session: AsyncSession, *, user_id: str) -> List[ConversationPublic]:
        """All conversations the user takes part in, freshest first."""
        if not user_id:
            raise DataValidationError(message="User ID is required")

        conversations = await self.conversations.list_for_user(session, user_id=user_id)
        return await self._enrich(session, conversations, viewer_id=user_id)

    async def find_or_create(
        self,
        session: AsyncSession,
        *,
        buyer_id: Optional[str],
        seller_id: Optional[str],
        product_id: Optional[str] = None,
        viewer_id: Optional[str] = None,
    ) -> ConversationPublic:
        """
        Return the conversation for the exact (buyer, seller, product) triple,
        creating it on first contact. A missing product means a general inquiry.
        """
        if not buyer_id or not seller_id:
            raise DataValidationError(message="Missing participants")
        if buyer_id == seller_id:
            raise DataValidationError(message="Buyer and seller must be different users")

        product_id = product_id or None
        viewer_id = viewer_id or buyer_id

        conversation = await self.conversations.find_by_parties(
            session, buyer_id=buyer_id, seller_id=seller_id, product_id=product_id
        )
        if conversation is None:
            conversation = await self._create(
                session, buyer_id=buyer_id, seller_id=seller_id, product_id=product_id
            )

        enriched = await self._enrich(session, [conversation], viewer_id=viewer_id)
        return enriched[0]

    async def _create(
        self, session: AsyncSession, *, buyer_id: str, seller_id: str, product_id: Optional[str]
    ) -> Conversation:
        for user_id in (buyer_id, seller_id):
            if not await user_repo.get(session, id=user_id):
                raise UserNotFound(message=f"User {user_id} not found")
        if product_id and not await product_repo.get(session, id=product_id):
            raise ProductNotFound()

        try:
            created = await self.conversations.create(
                session,
                obj_in=Conversation(buyer_id=buyer_id, seller_id=seller_id, product_id=product_id),
            )
            logger.info(f"Created conversation {created.id} between {buyer_id} and {seller_id}")
            return await self.conversations.get_with_parties(session, id=created.id)
        except IntegrityError:
            # lost a race against a concurrent first contact
            await session.rollback()
            existing = await self.conversations.find_by_parties(
                session, buyer_id=buyer_id, seller_id=seller_id, product_id=product_id
            )
            if existing is None:
                raise
            return existing

    async def get_conversation(self, session: AsyncSession, *, conversation_id: str) -> Conversation:
        conversation = await self.conversations.get_with_parties(session, id=conversation_id)
        if conversation is None:
            raise ConversationNotFound()
        return conversation

    async def get_for_participant(
        self, session: AsyncSession, *, conversation_id: str, user_id: str
    ) -> Conversation:
        """Load a conversation and make sure the user is its buyer or seller."""
        conversation = await self.get_conversation(session, conversation_id=conversation_id)
        if not conversation.has_participant(user_id):
            raise Forbidden(message="You are not a participant of this conversation")
        return conversation

    async def delete_conversation(self, session: AsyncSession, *, conversation_id: Optional[str]) -> None:
        if not conversation_id:
            raise DataValidationError(message="Conversation ID is required")

        conversation = await self.get_conversation(session, conversation_id=conversation_id)
        removed = await self.conversations.delete_with_messages(session, conversation=conversation)
        logger.info(f"Deleted conversation {conversation_id} with {removed} messages")

conversation_service = ConversationService(conversation_repo, message_repo)
