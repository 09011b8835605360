import asyncio
from typing import Any, AsyncIterator, Callable, List, Optional, Set

from pydantic import ValidationError

from models.enums import ContentType, MessageEventType
from models.message_model import ChatRoom, Message, MessageCreate, MessageEvent
from repos.message_repo import MessageRepository
from services.conversation_aggregator import ConversationIndex
from services.message_service import MessageService
from services.realtime_merge import RealtimeMergeReducer
from services.typing_service import (
    DEFAULT_TYPING_TIMEOUT,
    TypingHub,
    TypingIndicator,
    TypingNotifier,
    conversation_key,
)
from logger.logger import logger

# Receives (kind, payload) notifications about state changes
Listener = Callable[[str, Any], None]


class MessageSubscription:
    """
    Consumes a realtime message event stream on a background task.
    Closing cancels the task and releases the underlying stream.
    """

    def __init__(self, source: AsyncIterator[MessageEvent], handler: Callable[[MessageEvent], Any]):
        self._source = source
        self._handler = handler
        self._task: Optional[asyncio.Task] = None
        self.error: Optional[Exception] = None

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._run())

    async def _run(self) -> None:
        try:
            async for event in self._source:
                self._handler(event)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            # Subscription failures leave the last good state in place
            logger.error(f"Message subscription stopped: {e}")
            self.error = e

    async def close(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        aclose = getattr(self._source, "aclose", None)
        if aclose is not None:
            await aclose()


class _Session:
    """Shared lifecycle of the realtime sessions: subscribe, buffer until loaded, release on exit"""

    def __init__(self, current_user_id: str, message_repo: MessageRepository, listener: Optional[Listener] = None):
        self.current_user_id = current_user_id
        self.message_repo = message_repo
        self.listener = listener
        self.loaded = False
        self.closed = False
        self.last_error: Optional[str] = None
        self._subscription: Optional[MessageSubscription] = None
        # Events received before the snapshot is loaded, None once replayed
        self._buffer: Optional[List[MessageEvent]] = None
        self._tasks: Set[asyncio.Task] = set()

    async def __aenter__(self):
        # __aexit__ does not run when entering fails, so release here
        try:
            await self.open()
        except BaseException:
            await self.close()
            raise
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    def _subscribe(self) -> None:
        self._buffer = []
        self._subscription = MessageSubscription(
            self.message_repo.watch(self.current_user_id), self.handle_event
        )
        self._subscription.start()

    def _drain_buffer(self) -> List[MessageEvent]:
        buffered, self._buffer = self._buffer or [], None
        return buffered

    def handle_event(self, event: MessageEvent) -> bool:
        if self.closed:
            return False
        if self._buffer is not None:
            self._buffer.append(event)
            return False
        return self._apply(event)

    def _apply(self, event: MessageEvent) -> bool:
        raise NotImplementedError

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _emit(self, kind: str, payload: Any) -> None:
        if self.closed or self.listener is None:
            return
        try:
            self.listener(kind, payload)
        except Exception as e:
            logger.warning(f"Session listener failed on {kind}: {e}")

    def _fail(self, message: str, error: Exception) -> None:
        logger.error(f"{message}: {error}")
        self.last_error = message
        self._emit("error", message)

    async def close(self) -> None:
        """Stop all further state mutation. Safe to call more than once."""
        if self.closed:
            return
        self.closed = True
        if self._subscription is not None:
            await self._subscription.close()
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._buffer = None


class ChatRoomSession(_Session):
    """
    Live state of one open conversation.

    Owns the realtime subscription, the typing presence flag and the merge
    reducer for the conversation. Use as an async context manager so the
    subscription is released on every exit path.
    """

    def __init__(
        self,
        current_user_id: str,
        counterparty_id: str,
        message_repo: MessageRepository,
        typing_hub: TypingHub,
        typing_timeout: float = DEFAULT_TYPING_TIMEOUT,
        page_size: int = 50,
        index: Optional[ConversationIndex] = None,
        listener: Optional[Listener] = None,
    ):
        super().__init__(current_user_id, message_repo, listener)
        self.counterparty_id = counterparty_id
        self.page_size = page_size
        self.reducer = RealtimeMergeReducer(current_user_id, counterparty_id, index=index)
        self.typing_hub = typing_hub
        self.typing_key = conversation_key(current_user_id, counterparty_id)
        self.typing = TypingIndicator(counterparty_id, typing_timeout, on_change=self._typing_changed)
        self._notifier = TypingNotifier(typing_hub, self.typing_key, current_user_id, typing_timeout)
        self._typing_subscription = None
        self._reading: Set[str] = set()

    @property
    def messages(self) -> List[Message]:
        return self.reducer.timeline.messages

    @property
    def room(self) -> Optional[ChatRoom]:
        return self.reducer.index.get(self.counterparty_id)

    @property
    def is_counterparty_typing(self) -> bool:
        return self.typing.is_typing

    async def open(self) -> None:
        """Subscribe, load the snapshot, replay anything that arrived meanwhile, then mark unread messages read"""
        self._typing_subscription = self.typing_hub.subscribe(self.typing_key, self.typing.handle)
        self._subscribe()

        try:
            snapshot = await self.message_repo.get_conversation_messages(
                self.current_user_id, self.counterparty_id, 0, self.page_size
            )
        except Exception as e:
            self._fail("Failed to load messages", e)
            snapshot = []

        if self.closed:
            return

        self.reducer.load_snapshot(snapshot)
        for event in self._drain_buffer():
            self.reducer.apply(event)
        self.loaded = True
        self._emit("snapshot", self.messages)
        await self.mark_as_read()

    def _apply(self, event: MessageEvent) -> bool:
        changed = self.reducer.apply(event)
        if changed:
            self._emit("event", event)
            if event.event_type == MessageEventType.INSERT and self.reducer.pending_read_ids():
                self._spawn(self.mark_as_read())
        return changed

    def apply_payload(self, payload: dict) -> bool:
        """Apply a raw event payload; malformed payloads are dropped"""
        try:
            event = MessageEvent.model_validate(payload)
        except ValidationError as e:
            logger.warning(f"Dropping malformed message event: {e.error_count()} validation error(s)")
            return False
        return self.handle_event(event)

    async def mark_as_read(self) -> List[str]:
        """
        Mark the unread messages addressed to the current user as read.
        The local read flags flip once the store confirms.
        """
        message_ids = [i for i in self.reducer.pending_read_ids() if i not in self._reading]
        if not message_ids or self.closed:
            return []

        self._reading.update(message_ids)
        try:
            await self.message_repo.mark_read(message_ids, self.current_user_id)
        except Exception as e:
            self._fail("Failed to mark messages as read", e)
            return []
        finally:
            self._reading.difference_update(message_ids)

        if self.closed:
            return []
        changed = self.reducer.mark_read(message_ids)
        if changed:
            self._emit("read", changed)
        return changed

    async def send_message(
        self,
        content: str,
        content_type: ContentType = ContentType.TEXT,
        file_url: Optional[str] = None,
        file_type: Optional[str] = None,
    ) -> Optional[Message]:
        """
        Create a message in the store and merge it into the timeline.
        A failed send leaves the timeline untouched and returns None.
        """
        try:
            create = MessageCreate(
                sender_id=self.current_user_id,
                receiver_id=self.counterparty_id,
                content=content,
                content_type=content_type,
                file_url=file_url,
                file_type=file_type,
            )
        except ValidationError as e:
            logger.info(f"Rejected outgoing message: {e.error_count()} validation error(s)")
            self.last_error = "Message is empty or missing its attachment"
            self._emit("error", self.last_error)
            return None

        try:
            message = await self.message_repo.create_message(create)
        except Exception as e:
            self._fail("Failed to send message", e)
            return None

        self._notifier.stop()
        # The change stream echoes the insert too; merging is idempotent
        self.handle_event(MessageEvent(event_type=MessageEventType.INSERT, message=message))
        return message

    async def react(self, message_id: str, reaction: str) -> Optional[Message]:
        """Add a reaction; the whole updated record replaces the local copy"""
        try:
            updated = await self.message_repo.add_reaction(message_id, reaction)
        except Exception as e:
            self._fail("Failed to add reaction", e)
            return None
        if updated is not None:
            self.handle_event(MessageEvent(event_type=MessageEventType.UPDATE, message=updated))
        return updated

    def notify_typing(self) -> None:
        """Announce that the current user is typing"""
        if not self.closed:
            self._notifier.notify()

    def _typing_changed(self, is_typing: bool) -> None:
        self._emit("typing", is_typing)

    async def close(self) -> None:
        if self.closed:
            return
        if self._typing_subscription is not None:
            self._typing_subscription.close()
        self._notifier.stop()
        self.typing.close()
        await super().close()


class ChatListSession(_Session):
    """
    Live conversation list of the current user.

    Keeps a ConversationIndex patched per event instead of re-aggregating
    the whole message log on every change.
    """

    def __init__(
        self,
        current_user_id: str,
        message_service: MessageService,
        listener: Optional[Listener] = None,
    ):
        super().__init__(current_user_id, message_service.message_repo, listener)
        self.message_service = message_service
        self.index = ConversationIndex(current_user_id)

    @property
    def rooms(self) -> List[ChatRoom]:
        return self.index.sorted_rooms()

    async def open(self) -> None:
        self._subscribe()
        try:
            self.index = await self.message_service.build_conversation_index(self.current_user_id)
        except Exception as e:
            self._fail("Failed to load conversations", e)

        if self.closed:
            return

        for event in self._drain_buffer():
            self._apply(event, notify=False)
        self.loaded = True
        self._emit("rooms", self.rooms)
        if self.index.missing_profiles():
            self._spawn(self._load_profiles())

    def _apply(self, event: MessageEvent, notify: bool = True) -> bool:
        if event.event_type == MessageEventType.INSERT:
            room = self.index.apply_insert(event.message)
        else:
            room = self.index.apply_update(event.message)
        if room is None:
            return False

        if room.profile is None and notify:
            self._spawn(self._load_profiles())
        elif notify:
            self._emit("room", room)
        return True

    async def _load_profiles(self) -> None:
        missing = self.index.missing_profiles()
        try:
            await self.message_service.attach_profiles(self.index)
        except Exception as e:
            self._fail("Failed to load profiles", e)
            return
        for key in missing:
            room = self.index.get(key)
            if room is not None:
                self._emit("room", room)
