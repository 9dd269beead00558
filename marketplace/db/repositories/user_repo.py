# marketplace/db/repositories/user_repo.py
from typing import Optional
from sqlmodel import select
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.db.models import User, Product, NotificationSound
from marketplace.db.repositories.base import BaseRepository

class UserRepository(BaseRepository[User]):
    async def get_by_username(self, session: AsyncSession, *, username: str) -> Optional[User]:
        statement = select(User).where(User.username == username)
        result = await session.execute(statement)
        return result.scalars().first()

    async def get_notification_sound(self, session: AsyncSession, *, user_id: str) -> NotificationSound:
        statement = select(User.notification_sound).where(User.id == user_id)
        result = await session.execute(statement)
        return result.scalar_one_or_none() or NotificationSound.DEFAULT

user_repo = UserRepository(User)


product_repo = BaseRepository(Product)
