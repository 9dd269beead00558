import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.auth import generate_passwd_hash, verify_password
from marketplace.db.models import User
from marketplace.db.repositories.user_repo import UserRepository, user_repo
from marketplace.errors import InvalidCredentials, UserAlreadyExists, UserNotFound
from marketplace.schemas.auth import ProfileUpdateModel, UserCreateModel

logger = logging.getLogger(__name__)


class UserService:
    def __init__(self, repository: UserRepository):
        self.repository = repository

    async def create_user(self, session: AsyncSession, *, user_in: UserCreateModel) -> User:
        if await self.repository.get_by_username(session, username=user_in.username):
            raise UserAlreadyExists()

        user = User(
            username=user_in.username,
            hashed_password=generate_passwd_hash(user_in.password),
        )
        created = await self.repository.create(session, obj_in=user)
        logger.info(f"Created user {created.id}")
        return created

    async def authenticate(self, session: AsyncSession, *, username: str, password: str) -> User:
        user = await self.repository.get_by_username(session, username=username)
        if not user or not verify_password(password, user.hashed_password):
            raise InvalidCredentials()
        return user

    async def get_user(self, session: AsyncSession, *, user_id: str) -> Optional[User]:
        return await self.repository.get(session, id=user_id)

    async def update_profile(
        self, session: AsyncSession, *, user_id: str, profile_in: ProfileUpdateModel
    ) -> User:
        user = await self.repository.get(session, id=user_id)
        if not user:
            raise UserNotFound()

        if profile_in.username and profile_in.username != user.username:
            taken = await self.repository.get_by_username(session, username=profile_in.username)
            if taken:
                raise UserAlreadyExists()
            user.username = profile_in.username

        if profile_in.avatar is not None:
            user.avatar = profile_in.avatar or None
        if profile_in.notification_sound:
            user.notification_sound = profile_in.notification_sound

        await session.commit()
        await session.refresh(user)
        logger.info(f"Updated profile of user {user.id}")
        return user

user_service = UserService(user_repo)
