import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Set, Union

from marketplace.schemas.messages import ConversationPublic

logger = logging.getLogger(__name__)


def pin_key(user_id: str) -> str:
    return f"pinnedConversations:{user_id}"


class PinStore:
    """
    Client-local key/value file holding each viewer's pinned conversations.

    Presentation state only: nothing here is sent to the server.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def _read_all(self) -> dict:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return {}
        return data if isinstance(data, dict) else {}

    def load(self, user_id: str) -> Set[str]:
        raw = self._read_all().get(pin_key(user_id))
        if not isinstance(raw, list):
            return set()
        return {x for x in raw if isinstance(x, str) and len(x) > 0}

    def save(self, user_id: str, pinned: Set[str]):
        data = self._read_all()
        data[pin_key(user_id)] = sorted(pinned)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(data), encoding="utf-8")
        except OSError as e:
            logger.warning(f"Could not persist pinned conversations: {e}")


def _timestamp(value: datetime) -> float:
    # SQLite hands back naive UTC timestamps
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.timestamp()


def order_conversations(
    conversations: List[ConversationPublic],
    viewer_id: str,
    *,
    pinned: Set[str],
    search_query: str = "",
) -> List[ConversationPublic]:
    """Filter by the other party's name, then pinned first and most recent first."""
    query = search_query.strip().lower()
    visible = [
        c for c in conversations
        if not query or query in c.other_party(viewer_id).username.lower()
    ]
    return sorted(
        visible,
        key=lambda c: (c.id not in pinned, -_timestamp(c.updated_at)),
    )


class ConversationListState:
    def __init__(self, viewer_id: str, pin_store: Optional[PinStore] = None):
        self.viewer_id = viewer_id
        self.pin_store = pin_store
        self.conversations: List[ConversationPublic] = []
        self.search_query = ""
        self.active_conversation_id: Optional[str] = None
        self.pinned_ids: Set[str] = pin_store.load(viewer_id) if pin_store else set()

    def _persist_pins(self):
        if self.pin_store is not None:
            self.pin_store.save(self.viewer_id, self.pinned_ids)

    def visible(self) -> List[ConversationPublic]:
        return order_conversations(
            self.conversations,
            self.viewer_id,
            pinned=self.pinned_ids,
            search_query=self.search_query,
        )

    def replace(self, conversations: List[ConversationPublic]):
        self.conversations = list(conversations)

    def set_search(self, query: str):
        self.search_query = query or ""

    def add_created(self, conversation: ConversationPublic):
        """Put a freshly opened conversation on top without waiting for the next poll."""
        if not any(c.id == conversation.id for c in self.conversations):
            self.conversations.insert(0, conversation)
        self.active_conversation_id = conversation.id

    def remove(self, conversation_id: str):
        self.conversations = [c for c in self.conversations if c.id != conversation_id]
        if conversation_id in self.pinned_ids:
            self.pinned_ids.discard(conversation_id)
            self._persist_pins()
        if self.active_conversation_id == conversation_id:
            self.active_conversation_id = None

    def pin(self, conversation_id: str):
        if conversation_id in self.pinned_ids:
            return
        self.pinned_ids.add(conversation_id)
        self._persist_pins()

    def unpin(self, conversation_id: str):
        if conversation_id not in self.pinned_ids:
            return
        self.pinned_ids.discard(conversation_id)
        self._persist_pins()

    def is_pinned(self, conversation_id: str) -> bool:
        return conversation_id in self.pinned_ids

    @property
    def active(self) -> Optional[ConversationPublic]:
        return next((c for c in self.conversations if c.id == self.active_conversation_id), None)
