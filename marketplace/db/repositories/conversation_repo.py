# marketplace/db/repositories/conversation_repo.py
from typing import List, Optional
from sqlmodel import select, or_
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from marketplace.db.models import Conversation, Message
from marketplace.db.repositories.base import BaseRepository

class ConversationRepository(BaseRepository[Conversation]):
    def _with_parties(self):
        return [
            selectinload(Conversation.buyer),
            selectinload(Conversation.seller),
            selectinload(Conversation.product),
        ]

    async def get_with_parties(self, session: AsyncSession, *, id: str) -> Optional[Conversation]:
        statement = (
            select(Conversation)
            .where(Conversation.id == id)
            .options(*self._with_parties())
            .execution_options(populate_existing=True)
        )
        result = await session.execute(statement)
        return result.scalars().first()

    async def find_by_parties(
        self,
        session: AsyncSession,
        *,
        buyer_id: str,
        seller_id: str,
        product_id: Optional[str] = None,
    ) -> Optional[Conversation]:
        # a general inquiry only matches another general inquiry
        product_clause = (
            Conversation.product_id == product_id if product_id else Conversation.product_id.is_(None)
        )
        statement = (
            select(Conversation)
            .where(
                Conversation.buyer_id == buyer_id,
                Conversation.seller_id == seller_id,
                product_clause,
            )
            .options(*self._with_parties())
            .order_by(Conversation.created_at.asc())
        )
        result = await session.execute(statement)
        return result.scalars().first()

    async def list_for_user(self, session: AsyncSession, *, user_id: str) -> List[Conversation]:
        statement = (
            select(Conversation)
            .where(or_(Conversation.buyer_id == user_id, Conversation.seller_id == user_id))
            .options(*self._with_parties())
            .order_by(Conversation.updated_at.desc())
        )
        result = await session.execute(statement)
        return list(result.scalars().all())

    async def delete_with_messages(self, session: AsyncSession, *, conversation: Conversation) -> int:
        """Delete the owned messages explicitly, then the conversation. Returns the message count."""
        result = await session.execute(
            delete(Message).where(Message.conversation_id == conversation.id)
        )
        await session.delete(conversation)
        await session.commit()
        return result.rowcount or 0

conversation_repo = ConversationRepository(Conversation)
