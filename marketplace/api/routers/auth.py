from typing import Optional
from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.auth import (
    clear_session_cookie,
    create_access_token,
    optional_current_user,
    set_session_cookie,
)
from marketplace.db.session import get_session
from marketplace.schemas.auth import (
    LoginResponseModel,
    MeResponse,
    TokenUser,
    UserCreateModel,
    UserLoginModel,
    UserRead,
)
from marketplace.schemas.messages import SuccessResponse
from marketplace.services.user_service import user_service

router = APIRouter()


# ==============================
# USER REGISTRATION ENDPOINT
# ==============================
@router.post("/register", response_model=UserRead, status_code=status.HTTP_201_CREATED)
async def register_user(
    user_in: UserCreateModel,
    session: AsyncSession = Depends(get_session),
):
    """
    Register a new user.

    Steps:
    1. Reject a username that is already taken.
    2. Hash the password.
    3. Save the user.
    """
    return await user_service.create_user(session, user_in=user_in)


# ==============================
# USER LOGIN ENDPOINT
# ==============================
@router.post("/login", response_model=LoginResponseModel)
async def login_for_access_token(
    form_data: UserLoginModel,
    response: Response,
    session: AsyncSession = Depends(get_session),
):
    """
    Authenticate a user.

    The access token is returned in the body for bearer use and also set as
    an http-only session cookie for browser clients.
    """
    user = await user_service.authenticate(session, username=form_data.username, password=form_data.password)
    access_token = create_access_token(user=user)
    set_session_cookie(response, access_token)

    return LoginResponseModel(
        status=True,
        message="User successfully logged in",
        access_token=access_token,
        user=UserRead.model_validate(user),
    )


@router.post("/logout", response_model=SuccessResponse)
async def logout(response: Response):
    clear_session_cookie(response)
    return SuccessResponse(success=True)


@router.get("/me", response_model=MeResponse)
async def read_me(
    session: AsyncSession = Depends(get_session),
    viewer: Optional[TokenUser] = Depends(optional_current_user),
):
    """Current session user, or `{"user": null}` for guests."""
    if viewer is None:
        return MeResponse(user=None)
    user = await user_service.get_user(session, user_id=viewer.id)
    return MeResponse(user=UserRead.model_validate(user) if user else None)
