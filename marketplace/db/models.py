import uuid
import enum
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import Column, JSON, Enum, DateTime, ForeignKey, String, Text, UniqueConstraint
from sqlmodel import Field, Relationship, SQLModel


class UserRole(str, enum.Enum):
    USER = "user"
    ADMIN = "admin"


class NotificationSound(str, enum.Enum):
    DEFAULT = "default"
    CHIME = "chime"
    ALERT = "alert"
    NONE = "none"


class MessageType(str, enum.Enum):
    TEXT = "text"
    IMAGE = "image"
    AUDIO = "audio"
    VIDEO = "video"


def generate_uuid() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(SQLModel, table=True):
    id: str = Field(default_factory=generate_uuid, primary_key=True, index=True)
    username: str = Field(unique=True, index=True)
    hashed_password: str
    avatar: Optional[str] = None
    role: UserRole = Field(sa_column=Column(Enum(UserRole)), default=UserRole.USER)
    notification_sound: NotificationSound = Field(
        sa_column=Column(Enum(NotificationSound)),
        default=NotificationSound.DEFAULT
    )

    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True))
    )

    updated_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), onupdate=utcnow)
    )

    products: List["Product"] = Relationship(back_populates="seller")


# Listings are owned by the catalogue; conversations only read their summary.
class Product(SQLModel, table=True):
    id: str = Field(default_factory=generate_uuid, primary_key=True)
    seller_id: str = Field(foreign_key="user.id", index=True)
    title: str
    price: float = 0
    image_data: Optional[str] = Field(default=None, sa_column=Column(Text))
    images: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True))
    )

    seller: User = Relationship(back_populates="products")


class Conversation(SQLModel, table=True):
    __table_args__ = (
        UniqueConstraint("buyer_id", "seller_id", "product_id", name="uq_conversation_parties_product"),
    )

    id: str = Field(default_factory=generate_uuid, primary_key=True)
    buyer_id: str = Field(foreign_key="user.id", index=True)
    seller_id: str = Field(foreign_key="user.id", index=True)
    product_id: Optional[str] = Field(default=None, foreign_key="product.id", index=True)
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True))
    )
    updated_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), index=True)
    )

    buyer: User = Relationship(sa_relationship_kwargs={"foreign_keys": "[Conversation.buyer_id]", "lazy": "selectin"})
    seller: User = Relationship(sa_relationship_kwargs={"foreign_keys": "[Conversation.seller_id]", "lazy": "selectin"})
    product: Optional[Product] = Relationship(sa_relationship_kwargs={"lazy": "selectin"})
    messages: List["Message"] = Relationship(
        back_populates="conversation",
        sa_relationship_kwargs={"cascade": "all, delete-orphan", "passive_deletes": True},
    )

    def has_participant(self, user_id: Optional[str]) -> bool:
        return user_id is not None and user_id in (self.buyer_id, self.seller_id)

    def other_party(self, user_id: Optional[str]) -> User:
        return self.seller if user_id == self.buyer_id else self.buyer


class Message(SQLModel, table=True):
    id: str = Field(default_factory=generate_uuid, primary_key=True)
    conversation_id: str = Field(
        sa_column=Column(String, ForeignKey("conversation.id", ondelete="CASCADE"), index=True, nullable=False)
    )
    sender_id: str = Field(foreign_key="user.id", index=True)
    content: Optional[str] = Field(default=None, sa_column=Column(Text))
    type: MessageType = Field(sa_column=Column(Enum(MessageType)), default=MessageType.TEXT)
    media_url: Optional[str] = Field(default=None, sa_column=Column(Text))
    read: bool = Field(default=False, index=True)
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), index=True)
    )

    conversation: Conversation = Relationship(back_populates="messages")
    sender: User = Relationship(sa_relationship_kwargs={"lazy": "selectin"})
