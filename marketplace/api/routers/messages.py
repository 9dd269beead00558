# marketplace/api/routers/messages.py
from typing import Optional
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.auth import optional_current_user
from marketplace.db.session import get_session
from marketplace.schemas.auth import TokenUser
from marketplace.schemas.messages import UnreadCountResponse
from marketplace.services.message_service import message_service

router = APIRouter()


@router.get("/unread", response_model=UnreadCountResponse)
async def get_unread_count(
    session: AsyncSession = Depends(get_session),
    viewer: Optional[TokenUser] = Depends(optional_current_user),
):
    """
    Unread messages across all of the viewer's conversations, with the
    viewer's notification sound. Guests get a zero count instead of a 401.
    """
    if viewer is None:
        return UnreadCountResponse()
    return await message_service.unread_count(session, viewer_id=viewer.id)
