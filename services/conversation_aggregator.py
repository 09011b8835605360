from typing import Dict, Iterable, List, Mapping, Optional, Set

from models.message_model import ChatRoom, Message
from models.profile_model import Profile
from logger.logger import logger


def counterparty_id(message: Message, current_user_id: str) -> str:
    """
    The other participant of a message relative to the current user.
    A message to oneself is keyed by the current user's own id.
    """
    if message.sender_id == current_user_id:
        return message.receiver_id
    return message.sender_id


def is_unread_for(message: Message, user_id: str) -> bool:
    """True when the message was received by user_id and not read yet"""
    return message.receiver_id == user_id and not message.is_read


def _is_newer(candidate: Message, current: Optional[Message]) -> bool:
    # Ties keep the message seen first
    return current is None or candidate.created_at > current.created_at


class ConversationIndex:
    """
    Per-counterparty aggregate of the current user's messages.

    Holds exactly one ChatRoom per counterparty seen so far. Unread message ids
    are tracked per counterparty so read-state changes can be applied
    idempotently, whichever order they arrive in.
    """

    def __init__(self, current_user_id: str):
        self.current_user_id = current_user_id
        self._rooms: Dict[str, ChatRoom] = {}
        self._unread: Dict[str, Set[str]] = {}
        # message id -> counterparty id, for every message folded in
        self._owners: Dict[str, str] = {}

    def __len__(self) -> int:
        return len(self._rooms)

    def __contains__(self, counterparty: str) -> bool:
        return counterparty in self._rooms

    def rebuild(self, messages: Iterable[Message]) -> "ConversationIndex":
        """Replace the whole index with an aggregate of a message snapshot"""
        profiles = {key: room.profile for key, room in self._rooms.items() if room.profile}
        self._rooms.clear()
        self._unread.clear()
        self._owners.clear()
        for message in messages:
            self._fold(message)
        self.attach_profiles(profiles)
        return self

    def apply_insert(self, message: Message) -> ChatRoom:
        """Fold a newly created message in. Re-delivery of a known id counts as an update."""
        if message.id in self._owners:
            room = self.apply_update(message)
            return room if room is not None else self._rooms[self._owners[message.id]]
        return self._fold(message)

    def apply_update(self, message: Message) -> Optional[ChatRoom]:
        """
        Apply a change to the mutable fields of an indexed message.
        Returns the patched room, or None when the id was never indexed.
        """
        key = self._owners.get(message.id)
        if key is None:
            logger.debug(f"Ignoring update for unindexed message {message.id}")
            return None

        room = self._rooms[key]
        self._track_unread(key, message)
        if room.last_message is not None and room.last_message.id == message.id:
            room.last_message = message
        elif _is_newer(message, room.last_message):
            room.last_message = message
        room.unread_count = len(self._unread[key])
        return room

    def mark_read(self, message_ids: Iterable[str]) -> List[ChatRoom]:
        """Clear the given ids from unread counts, returning the rooms that changed"""
        changed: Dict[str, ChatRoom] = {}
        for message_id in message_ids:
            key = self._owners.get(message_id)
            if key is None or message_id not in self._unread[key]:
                continue
            self._unread[key].discard(message_id)
            room = self._rooms[key]
            room.unread_count = len(self._unread[key])
            if room.last_message is not None and room.last_message.id == message_id:
                room.last_message = room.last_message.model_copy(update={"is_read": True})
            changed[key] = room
        return list(changed.values())

    def attach_profiles(self, profiles: Mapping[str, Profile]) -> None:
        """Attach counterparty profiles to their rooms"""
        for key, room in self._rooms.items():
            profile = profiles.get(key)
            if profile is not None:
                room.profile = profile

    def missing_profiles(self) -> List[str]:
        """Counterparty ids whose room has no profile attached yet"""
        return [key for key, room in self._rooms.items() if room.profile is None]

    def get(self, counterparty: str) -> Optional[ChatRoom]:
        return self._rooms.get(counterparty)

    def rooms(self) -> Dict[str, ChatRoom]:
        """Rooms keyed by counterparty id, in no particular order"""
        return dict(self._rooms)

    def sorted_rooms(self) -> List[ChatRoom]:
        """Rooms ordered for display, most recent conversation first"""
        # Every indexed room has seen at least one message
        return sorted(self._rooms.values(), key=lambda room: room.last_message.created_at, reverse=True)

    def _fold(self, message: Message) -> ChatRoom:
        key = counterparty_id(message, self.current_user_id)
        room = self._rooms.get(key)
        if room is None:
            room = ChatRoom(counterparty_id=key)
            self._rooms[key] = room
            self._unread[key] = set()

        self._owners[message.id] = key
        if _is_newer(message, room.last_message):
            room.last_message = message
        self._track_unread(key, message)
        room.unread_count = len(self._unread[key])
        return room

    def _track_unread(self, key: str, message: Message) -> None:
        # Only messages coming from the counterparty count as unread
        if is_unread_for(message, self.current_user_id) and message.sender_id == key:
            self._unread[key].add(message.id)
        else:
            self._unread[key].discard(message.id)


def aggregate_conversations(messages: Iterable[Message], current_user_id: str) -> Dict[str, ChatRoom]:
    """
    Derive one ChatRoom per counterparty from a flat list of the user's messages.
    Output order is unspecified.
    """
    return ConversationIndex(current_user_id).rebuild(messages).rooms()
