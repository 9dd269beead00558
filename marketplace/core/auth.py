import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from passlib.context import CryptContext
from fastapi import Depends, Request, Response
from fastapi.security import OAuth2PasswordBearer

from marketplace.core.config import settings, BaseSettings
from marketplace.db.models import User
from marketplace.errors import InvalidToken, UnAuthenticated
from marketplace.schemas.auth import TokenUser


passwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
logger = logging.getLogger(__name__)


class OptionalOAuth2Scheme(OAuth2PasswordBearer):
    async def __call__(self, request: Request) -> Optional[str]:
        try:
            return await super().__call__(request)
        except Exception:
            return None

optional_oauth2_scheme = OptionalOAuth2Scheme(tokenUrl=f"{settings.API_PREFIX}/auth/login")


def generate_passwd_hash(password: str) -> str:
    return passwd_context.hash(password)


def verify_password(password: str, hash: str) -> bool:
    return passwd_context.verify(password, hash)


def decode_token(token: str, settings: BaseSettings) -> dict:
    """Decode and verify a token; raises jwt.PyJWTError subclasses on failure."""
    return jwt.decode(token, key=settings.SECRET_KEY, algorithms=[settings.ALGORITHM])


def create_access_token(user: User, expires_delta: timedelta | None = None) -> str:
    to_encode = {
        "sub": user.username,
        "id": str(user.id),
        "role": user.role.value if hasattr(user.role, "value") else user.role,
        "exp": datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    }
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def _token_user(access_token: str, settings: BaseSettings) -> TokenUser:
    payload = decode_token(access_token, settings)
    user_id = payload.get("id")
    if not user_id:
        raise UnAuthenticated(message="Token does not identify a user")

    return TokenUser(
        id=user_id,
        username=payload.get("sub"),
        role=payload.get("role"),
        access_token=access_token,
        token_type="bearer",
    )


def get_current_user_dependency(settings: BaseSettings):
    def get_current_user(
        request: Request,
        token: Optional[str] = Depends(optional_oauth2_scheme),
    ) -> TokenUser:
        # bearer header first, session cookie as fallback
        access_token = token or request.cookies.get(settings.SESSION_COOKIE_NAME)

        if not access_token:
            raise UnAuthenticated(
                message="You are not authenticated. Please login to continue"
            )

        try:
            return _token_user(access_token, settings)
        except jwt.ExpiredSignatureError:
            raise InvalidToken()
        except jwt.PyJWTError as e:
            logger.warning(f"Rejected token: {e}")
            raise UnAuthenticated()

    return get_current_user


def get_optional_current_user_dependency(settings: BaseSettings):
    def optional_dependency(
        request: Request,
        token: Optional[str] = Depends(optional_oauth2_scheme)
    ) -> Optional[TokenUser]:
        access_token = token or request.cookies.get(settings.SESSION_COOKIE_NAME)
        if not access_token:
            return None

        try:
            return _token_user(access_token, settings)
        except (jwt.PyJWTError, UnAuthenticated):
            return None

    return optional_dependency


def set_session_cookie(response: Response, access_token: str):
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=access_token,
        httponly=True,
        max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        samesite="lax",
        secure=settings.SESSION_COOKIE_SECURE,
        path="/",
    )


def clear_session_cookie(response: Response):
    response.delete_cookie(key=settings.SESSION_COOKIE_NAME, path="/")


current_user = get_current_user_dependency(settings=settings)
optional_current_user = get_optional_current_user_dependency(settings=settings)
