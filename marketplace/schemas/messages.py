from datetime import datetime
from typing import Any, List, Optional

from marketplace.db.models import MessageType, NotificationSound
from marketplace.schemas.base import CamelModel
from marketplace.schemas.auth import UserPublic


# --- Requests ---
# Required fields are optional here so the services can answer with a 400.
class ConversationCreate(CamelModel):
    buyer_id: Optional[str] = None
    seller_id: Optional[str] = None
    product_id: Optional[str] = None


class ConversationDelete(CamelModel):
    conversation_id: Optional[str] = None


class MessageCreate(CamelModel):
    sender_id: Optional[str] = None
    content: Optional[str] = None
    type: Optional[str] = None
    media_url: Optional[str] = None


class MessagesDelete(CamelModel):
    message_ids: Any = None


# --- Projections ---
class SenderPublic(CamelModel):
    id: str
    username: str


class ProductSummary(CamelModel):
    id: str
    title: str
    image_data: Optional[str] = None
    image: Optional[str] = None


class MessagePublic(CamelModel):
    id: str
    conversation_id: str
    sender_id: str
    content: Optional[str] = None
    type: MessageType = MessageType.TEXT
    media_url: Optional[str] = None
    read: bool = False
    created_at: datetime
    sender: Optional[SenderPublic] = None


class ConversationPublic(CamelModel):
    id: str
    buyer_id: str
    seller_id: str
    product_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    buyer: UserPublic
    seller: UserPublic
    other_user: Optional[UserPublic] = None
    product: Optional[ProductSummary] = None
    last_message: Optional[MessagePublic] = None
    unread_count: int = 0

    def other_party(self, viewer_id: str) -> UserPublic:
        return self.seller if viewer_id == self.buyer_id else self.buyer


# --- Envelopes ---
class ConversationListResponse(CamelModel):
    conversations: List[ConversationPublic]


class ConversationResponse(CamelModel):
    conversation: ConversationPublic


class MessageListResponse(CamelModel):
    messages: List[MessagePublic]


class MessageResponse(CamelModel):
    message: MessagePublic


class SuccessResponse(CamelModel):
    success: bool = True


class CountResponse(CamelModel):
    count: int


class UnreadCountResponse(CamelModel):
    count: int = 0
    sound: NotificationSound = NotificationSound.DEFAULT
