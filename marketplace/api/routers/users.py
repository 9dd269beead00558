# marketplace/api/routers/users.py
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.auth import current_user
from marketplace.db.session import get_session
from marketplace.errors import UserNotFound
from marketplace.schemas.auth import ProfileUpdateModel, TokenUser, UserPublic, UserRead
from marketplace.services.user_service import user_service

router = APIRouter()

@router.put("/profile", response_model=UserRead)
async def update_profile(
    profile_in: ProfileUpdateModel,
    session: AsyncSession = Depends(get_session),
    viewer: TokenUser = Depends(current_user),
):
    """
    Update the current user's username, avatar or notification sound.
    """
    return await user_service.update_profile(session, user_id=viewer.id, profile_in=profile_in)

@router.get("/{user_id}", response_model=UserPublic)
async def read_user_by_id(
    user_id: str,
    session: AsyncSession = Depends(get_session)
):
    """
    Get a specific user's public profile by ID.
    """
    user = await user_service.get_user(session, user_id=user_id)
    if not user:
        raise UserNotFound()
    return user
