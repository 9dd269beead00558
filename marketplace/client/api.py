import logging
from typing import List, Optional

import httpx

from marketplace.schemas.auth import UserRead
from marketplace.schemas.messages import (
    ConversationPublic,
    MessagePublic,
    UnreadCountResponse,
)

logger = logging.getLogger(__name__)


class MarketplaceAPIError(Exception):
    """Non-2xx answer from the messaging API."""

    def __init__(self, status_code: int, message: str = "Request failed", error_code: Optional[str] = None):
        self.status_code = status_code
        self.message = message
        self.error_code = error_code
        super().__init__(f"{status_code}: {message}")


class MarketplaceClient:
    """
    Async client for the messaging endpoints.

    Authenticates with a bearer token when one is given; otherwise relies on
    the session cookie that ``login`` stores in the underlying httpx client.
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        *,
        api_prefix: str = "/api",
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_prefix = api_prefix
        self.token = token
        self.http = httpx.AsyncClient(base_url=self.base_url, timeout=timeout, transport=transport)

    async def close(self):
        await self.http.aclose()

    async def __aenter__(self) -> "MarketplaceClient":
        return self

    async def __aexit__(self, *exc_info):
        await self.close()

    def _headers(self) -> dict:
        return {"Authorization": f"Bearer {self.token}"} if self.token else {}

    async def _request(self, method: str, path: str, **kwargs) -> dict:
        response = await self.http.request(
            method, f"{self.api_prefix}{path}", headers=self._headers(), **kwargs
        )
        if response.is_success:
            return response.json()

        try:
            body = response.json()
        except ValueError:
            body = {}
        message = body.get("message") or body.get("detail") or response.reason_phrase
        raise MarketplaceAPIError(response.status_code, str(message), body.get("error_code"))

    # --- session ---
    async def login(self, username: str, password: str) -> UserRead:
        data = await self._request("POST", "/auth/login", json={"username": username, "password": password})
        self.token = data["access_token"]
        return UserRead.model_validate(data["user"])

    async def me(self) -> Optional[UserRead]:
        data = await self._request("GET", "/auth/me")
        return UserRead.model_validate(data["user"]) if data.get("user") else None

    # --- conversations ---
    async def list_conversations(self, user_id: Optional[str] = None) -> List[ConversationPublic]:
        params = {"userId": user_id} if user_id else None
        data = await self._request("GET", "/conversations", params=params)
        return [ConversationPublic.model_validate(c) for c in data["conversations"]]

    async def find_or_create_conversation(
        self, buyer_id: str, seller_id: str, product_id: Optional[str] = None
    ) -> ConversationPublic:
        payload = {"buyerId": buyer_id, "sellerId": seller_id}
        if product_id:
            payload["productId"] = product_id
        data = await self._request("POST", "/conversations", json=payload)
        return ConversationPublic.model_validate(data["conversation"])

    async def delete_conversation(self, conversation_id: str) -> bool:
        data = await self._request("DELETE", "/conversations", json={"conversationId": conversation_id})
        return bool(data.get("success"))

    # --- messages ---
    async def list_messages(self, conversation_id: str) -> List[MessagePublic]:
        data = await self._request("GET", f"/conversations/{conversation_id}/messages")
        return [MessagePublic.model_validate(m) for m in data["messages"]]

    async def send_message(
        self,
        conversation_id: str,
        sender_id: str,
        *,
        content: Optional[str] = None,
        type: Optional[str] = None,
        media_url: Optional[str] = None,
    ) -> MessagePublic:
        payload = {"senderId": sender_id, "content": content, "type": type, "mediaUrl": media_url}
        data = await self._request(
            "POST",
            f"/conversations/{conversation_id}/messages",
            json={k: v for k, v in payload.items() if v is not None},
        )
        return MessagePublic.model_validate(data["message"])

    async def delete_messages(self, conversation_id: str, message_ids: List[str]) -> int:
        data = await self._request(
            "DELETE", f"/conversations/{conversation_id}/messages", json={"messageIds": message_ids}
        )
        return data["count"]

    async def mark_read(self, conversation_id: str) -> bool:
        data = await self._request("POST", f"/conversations/{conversation_id}/read")
        return bool(data.get("success"))

    async def unread_count(self) -> UnreadCountResponse:
        data = await self._request("GET", "/messages/unread")
        return UnreadCountResponse.model_validate(data)
