# marketplace/db/repositories/message_repo.py
from typing import Dict, List, Sequence
from sqlmodel import select, or_
from sqlalchemy import delete, func, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from marketplace.db.models import Conversation, Message
from marketplace.db.repositories.base import BaseRepository


class MessageRepository(BaseRepository[Message]):
    async def get_with_sender(self, session: AsyncSession, *, id: str) -> Message:
        statement = (
            select(Message)
            .where(Message.id == id)
            .options(selectinload(Message.sender))
            .execution_options(populate_existing=True)
        )
        result = await session.execute(statement)
        return result.scalar_one()

    async def list_for_conversation(self, session: AsyncSession, *, conversation_id: str) -> List[Message]:
        statement = (
            select(Message)
            .where(Message.conversation_id == conversation_id)
            .options(selectinload(Message.sender))
            .order_by(Message.created_at.asc())
        )
        result = await session.execute(statement)
        return list(result.scalars().all())

    async def latest_by_conversation(
        self, session: AsyncSession, *, conversation_ids: Sequence[str]
    ) -> Dict[str, Message]:
        """Most recent message of each conversation, keyed by conversation id."""
        if not conversation_ids:
            return {}

        ranked = (
            select(
                Message.id,
                func.row_number()
                .over(
                    partition_by=Message.conversation_id,
                    order_by=(Message.created_at.desc(), Message.id.desc()),
                )
                .label("rn"),
            )
            .where(Message.conversation_id.in_(conversation_ids))
            .subquery()
        )
        statement = (
            select(Message)
            .join(ranked, Message.id == ranked.c.id)
            .where(ranked.c.rn == 1)
            .options(selectinload(Message.sender))
        )
        result = await session.execute(statement)
        return {message.conversation_id: message for message in result.scalars().all()}

    async def unread_by_conversation(
        self, session: AsyncSession, *, conversation_ids: Sequence[str], viewer_id: str
    ) -> Dict[str, int]:
        if not conversation_ids:
            return {}

        statement = (
            select(Message.conversation_id, func.count(Message.id))
            .where(
                Message.conversation_id.in_(conversation_ids),
                Message.sender_id != viewer_id,
                Message.read == False,  # noqa: E712
            )
            .group_by(Message.conversation_id)
        )
        result = await session.execute(statement)
        return {conversation_id: count for conversation_id, count in result.all()}

    async def count_unread_for_user(self, session: AsyncSession, *, viewer_id: str) -> int:
        statement = (
            select(func.count(Message.id))
            .join(Conversation, Conversation.id == Message.conversation_id)
            .where(
                or_(Conversation.buyer_id == viewer_id, Conversation.seller_id == viewer_id),
                Message.sender_id != viewer_id,
                Message.read == False,  # noqa: E712
            )
        )
        result = await session.execute(statement)
        return result.scalar_one()

    async def mark_read(self, session: AsyncSession, *, conversation_id: str, viewer_id: str) -> int:
        """Flip read on every message the viewer received in the conversation. Returns the rows changed."""
        result = await session.execute(
            update(Message)
            .where(
                Message.conversation_id == conversation_id,
                Message.sender_id != viewer_id,
                Message.read == False,  # noqa: E712
            )
            .values(read=True)
        )
        await session.commit()
        return result.rowcount or 0

    async def delete_in_conversation(
        self, session: AsyncSession, *, conversation_id: str, message_ids: Sequence[str]
    ) -> int:
        # the conversation clause is what keeps forged ids from other conversations out
        result = await session.execute(
            delete(Message).where(
                Message.id.in_(message_ids),
                Message.conversation_id == conversation_id,
            )
        )
        await session.commit()
        return result.rowcount or 0

message_repo = MessageRepository(Message)
