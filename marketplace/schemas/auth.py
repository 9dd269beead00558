from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field

from marketplace.db.models import NotificationSound, UserRole
from marketplace.schemas.base import CamelModel


class UserCreateModel(BaseModel):
    username: str = Field(min_length=3, max_length=20, pattern=r"^[a-zA-Z0-9_]+$")
    password: str = Field(min_length=6)

    model_config = {
        "json_schema_extra": {
            "example": {
                "username": "jane_doe",
                "password": "testpass123",
            }
        }
    }


class UserLoginModel(BaseModel):
    username: str
    password: str


class UserPublic(CamelModel):
    id: str
    username: str
    avatar: Optional[str] = None


class UserRead(CamelModel):
    id: str
    username: str
    avatar: Optional[str] = None
    role: UserRole = UserRole.USER
    notification_sound: NotificationSound = NotificationSound.DEFAULT
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ProfileUpdateModel(CamelModel):
    username: Optional[str] = Field(default=None, min_length=3, max_length=20, pattern=r"^[a-zA-Z0-9_]+$")
    avatar: Optional[str] = None
    notification_sound: Optional[NotificationSound] = None


class LoginResponseModel(BaseModel):
    status: bool
    message: str
    access_token: str
    token_type: str = "bearer"
    user: UserRead


class MeResponse(BaseModel):
    user: Optional[UserRead] = None


class TokenUser(BaseModel):
    id: str
    username: Optional[str] = None
    role: Optional[str] = None
    access_token: Optional[str] = None
    token_type: Optional[str] = "bearer"

    model_config = ConfigDict(from_attributes=True)
