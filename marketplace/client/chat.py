import asyncio
import logging
from typing import List, Optional

from marketplace.client.api import MarketplaceClient
from marketplace.client.conversation_list import ConversationListState, PinStore
from marketplace.client.poller import DEFAULT_POLL_INTERVAL
from marketplace.db.models import MessageType
from marketplace.schemas.messages import ConversationPublic, MessagePublic

logger = logging.getLogger(__name__)

MESSAGE_POLL_INTERVAL = 3.0


async def _cancel(task: Optional[asyncio.Task]):
    if task is None or task.done():
        return
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass


class ChatController:
    """
    Drives the chat screen for one signed-in viewer: keeps the conversation
    list in sync with the server and applies local changes optimistically.

    The open conversation has its own polling loop. Switching conversations,
    deleting the open one or stopping cancels the loop and any fetch still in
    flight, so a late response never lands in ``messages``.
    """

    def __init__(
        self,
        client: MarketplaceClient,
        viewer_id: str,
        *,
        pin_store: Optional[PinStore] = None,
        interval: float = DEFAULT_POLL_INTERVAL,
        message_interval: float = MESSAGE_POLL_INTERVAL,
    ):
        self.client = client
        self.viewer_id = viewer_id
        self.interval = interval
        self.message_interval = message_interval
        self.state = ConversationListState(viewer_id, pin_store)
        self.messages: List[MessagePublic] = []
        self._poll_task: Optional[asyncio.Task] = None
        self._open_task: Optional[asyncio.Task] = None
        self._watch_task: Optional[asyncio.Task] = None

    async def load(self):
        """Replace the list with the server's view. Background failures are only logged."""
        try:
            conversations = await self.client.list_conversations(self.viewer_id)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Fetch conversations error: {e}")
            return
        self.state.replace(conversations)

    async def _poll(self):
        while True:
            await asyncio.sleep(self.interval)
            await self.load()

    def start_polling(self):
        if self._poll_task is None or self._poll_task.done():
            self._poll_task = asyncio.create_task(self._poll())

    async def stop_polling(self):
        task, self._poll_task = self._poll_task, None
        await _cancel(task)
        await self._close_window()

    async def _close_window(self):
        open_task, self._open_task = self._open_task, None
        watch_task, self._watch_task = self._watch_task, None
        await _cancel(open_task)
        await _cancel(watch_task)

    async def start_conversation(self, seller_id: str, product_id: Optional[str] = None) -> ConversationPublic:
        """Contact a seller (about a product) and show the conversation straight away."""
        conversation = await self.client.find_or_create_conversation(self.viewer_id, seller_id, product_id)
        self.state.add_created(conversation.model_copy(update={"unread_count": 0}))
        return conversation

    async def delete_conversation(self, conversation_id: str):
        # local state only changes once the server has acknowledged
        await self.client.delete_conversation(conversation_id)
        if conversation_id == self.state.active_conversation_id:
            await self._close_window()
        self.state.remove(conversation_id)
        if self.state.active_conversation_id is None:
            self.messages = []

    async def _refresh_messages(self, conversation_id: str):
        messages = await self.client.list_messages(conversation_id)
        if conversation_id != self.state.active_conversation_id:
            return
        self.messages = messages
        await self.client.mark_read(conversation_id)
        self.state.conversations = [
            c.model_copy(update={"unread_count": 0}) if c.id == conversation_id else c
            for c in self.state.conversations
        ]

    async def _watch(self, conversation_id: str):
        while True:
            await asyncio.sleep(self.message_interval)
            try:
                await self._refresh_messages(conversation_id)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Fetch messages error: {e}")

    async def open(self, conversation_id: str) -> List[MessagePublic]:
        """
        Select a conversation, load its messages and mark what we received as read,
        then keep doing so every ``message_interval`` while it stays open.

        If another conversation is opened before the load finishes, this call
        returns without touching ``messages``.
        """
        await self._close_window()
        self.state.active_conversation_id = conversation_id
        self.messages = []

        fetch = asyncio.create_task(self._refresh_messages(conversation_id))
        self._open_task = fetch
        try:
            await asyncio.wait([fetch])
        except asyncio.CancelledError:
            fetch.cancel()
            raise
        if fetch.cancelled() or self._open_task is not fetch:
            # superseded by a later open()
            return self.messages
        self._open_task = None
        fetch.result()

        self._watch_task = asyncio.create_task(self._watch(conversation_id))
        return self.messages

    def search_messages(self, query: str) -> List[MessagePublic]:
        """Text messages of the open conversation containing ``query``, case-insensitively."""
        needle = (query or "").strip().lower()
        if not needle:
            return list(self.messages)
        return [
            m for m in self.messages
            if m.type == MessageType.TEXT and m.content and needle in m.content.lower()
        ]

    async def send_text(self, conversation_id: str, content: str) -> MessagePublic:
        message = await self.client.send_message(conversation_id, self.viewer_id, content=content, type="text")
        self._append(conversation_id, message)
        return message

    async def send_media(self, conversation_id: str, media_url: str, type: str) -> MessagePublic:
        message = await self.client.send_message(conversation_id, self.viewer_id, media_url=media_url, type=type)
        self._append(conversation_id, message)
        return message

    async def delete_messages(self, conversation_id: str, message_ids: List[str]) -> int:
        count = await self.client.delete_messages(conversation_id, message_ids)
        if conversation_id == self.state.active_conversation_id:
            removed = set(message_ids)
            self.messages = [m for m in self.messages if m.id not in removed]
        return count

    def _append(self, conversation_id: str, message: MessagePublic):
        if conversation_id == self.state.active_conversation_id:
            self.messages.append(message)
        self.state.conversations = [
            c.model_copy(update={"last_message": message, "updated_at": message.created_at})
            if c.id == conversation_id else c
            for c in self.state.conversations
        ]
