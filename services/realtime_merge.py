from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Set

from pydantic import ValidationError

from models.enums import MessageEventType
from models.message_model import Message, MessageEvent
from services.conversation_aggregator import ConversationIndex, is_unread_for
from utils.time import get_current_utc_time
from logger.logger import logger


class MessageTimeline:
    """
    Messages of one open conversation, newest first.

    Inserts are prepended without re-sorting, so an event delivered out of
    creation order stays where it landed.
    """

    def __init__(self, messages: Iterable[Message] = ()):
        self._messages: List[Message] = []
        self._ids: Set[str] = set()
        self.reset(messages)

    def __len__(self) -> int:
        return len(self._messages)

    def __contains__(self, message_id: str) -> bool:
        return message_id in self._ids

    @property
    def messages(self) -> List[Message]:
        return list(self._messages)

    @property
    def head(self) -> Optional[Message]:
        return self._messages[0] if self._messages else None

    def reset(self, messages: Iterable[Message]) -> None:
        """Replace the timeline with a snapshot, dropping duplicate ids"""
        self._messages = []
        self._ids = set()
        for message in messages:
            if message.id in self._ids:
                continue
            self._ids.add(message.id)
            self._messages.append(message)

    def apply_insert(self, message: Message) -> bool:
        """Prepend a new message. A known id is a no-op."""
        if message.id in self._ids:
            return False
        self._ids.add(message.id)
        self._messages.insert(0, message)
        return True

    def apply_update(self, message: Message) -> bool:
        """Replace the message with the same id in place. An unknown id is a no-op."""
        if message.id not in self._ids:
            return False
        for position, current in enumerate(self._messages):
            if current.id == message.id:
                self._messages[position] = message
                return True
        return False

    def unread_ids(self, user_id: str) -> List[str]:
        return [message.id for message in self._messages if is_unread_for(message, user_id)]

    def mark_read(self, message_ids: Iterable[str], read_at: datetime) -> List[str]:
        """Flip the read flag on the given ids, returning the ids that changed"""
        wanted = set(message_ids)
        changed = []
        for position, message in enumerate(self._messages):
            if message.id in wanted and not message.is_read:
                self._messages[position] = message.model_copy(update={"is_read": True, "read_at": read_at})
                changed.append(message.id)
        return changed


class RealtimeMergeReducer:
    """
    Applies realtime message events to the open conversation's timeline and to
    the conversation list index, keeping both views consistent.

    Events for other conversations only patch the index.
    """

    def __init__(
        self,
        current_user_id: str,
        counterparty_id: str,
        timeline: Optional[MessageTimeline] = None,
        index: Optional[ConversationIndex] = None,
    ):
        self.current_user_id = current_user_id
        self.counterparty_id = counterparty_id
        self.timeline = timeline if timeline is not None else MessageTimeline()
        self.index = index if index is not None else ConversationIndex(current_user_id)

    def belongs_here(self, message: Message) -> bool:
        return message.involves(self.current_user_id, self.counterparty_id)

    def load_snapshot(self, messages: Iterable[Message]) -> None:
        """Seed both views from a freshly fetched, newest-first snapshot"""
        messages = list(messages)
        self.timeline.reset(messages)
        for message in reversed(messages):
            self.index.apply_insert(message)

    def apply(self, event: MessageEvent) -> bool:
        """Apply one event. Returns True when the open timeline changed."""
        message = event.message
        if event.event_type == MessageEventType.INSERT:
            self.index.apply_insert(message)
            if not self.belongs_here(message):
                return False
            return self.timeline.apply_insert(message)

        if event.event_type == MessageEventType.UPDATE:
            self.index.apply_update(message)
            if not self.belongs_here(message):
                return False
            return self.timeline.apply_update(message)

        logger.warning(f"Unknown message event type: {event.event_type}")
        return False

    def apply_payload(self, payload: Dict[str, Any]) -> bool:
        """Validate and apply a raw event payload. Malformed payloads are dropped."""
        try:
            event = MessageEvent.model_validate(payload)
        except ValidationError as e:
            logger.warning(f"Dropping malformed message event: {e.error_count()} validation error(s)")
            return False
        return self.apply(event)

    def pending_read_ids(self) -> List[str]:
        """Unread messages addressed to the current user in the open conversation"""
        return self.timeline.unread_ids(self.current_user_id)

    def mark_read(self, message_ids: Iterable[str], read_at: Optional[datetime] = None) -> List[str]:
        """Set the read flag locally and clear the ids from the conversation list's unread counts"""
        message_ids = list(message_ids)
        changed = self.timeline.mark_read(message_ids, read_at or get_current_utc_time())
        self.index.mark_read(message_ids)
        return changed
