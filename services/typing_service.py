import asyncio
from typing import Callable, Dict, List, Optional

from models.enums import TypingEventType
from models.message_model import TypingEvent
from logger.logger import logger

TypingCallback = Callable[[TypingEvent], None]

DEFAULT_TYPING_TIMEOUT = 3.0


def conversation_key(user_id: str, other_user_id: str) -> str:
    """Channel name shared by both participants of a conversation"""
    return "typing:" + ":".join(sorted([user_id, other_user_id]))


class TypingSubscription:
    """Handle returned by TypingHub.subscribe. Closing it stops delivery."""

    def __init__(self, hub: "TypingHub", key: str, callback: TypingCallback):
        self._hub = hub
        self.key = key
        self.callback = callback
        self.closed = False

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._hub._remove(self)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


class TypingHub:
    """
    In-process broadcast of typing presence signals.

    Fire-and-forget: nothing is persisted or retried and a failing listener
    never affects the sender or other listeners.
    """

    def __init__(self):
        self._subscribers: Dict[str, List[TypingSubscription]] = {}

    def subscribe(self, key: str, callback: TypingCallback) -> TypingSubscription:
        subscription = TypingSubscription(self, key, callback)
        self._subscribers.setdefault(key, []).append(subscription)
        return subscription

    def subscriber_count(self, key: str) -> int:
        return len(self._subscribers.get(key, []))

    def send_typing(self, key: str, user_id: str) -> None:
        self._publish(key, TypingEvent(event=TypingEventType.TYPING, user_id=user_id))

    def send_stop_typing(self, key: str, user_id: str) -> None:
        self._publish(key, TypingEvent(event=TypingEventType.STOP_TYPING, user_id=user_id))

    def _publish(self, key: str, event: TypingEvent) -> None:
        for subscription in list(self._subscribers.get(key, [])):
            try:
                subscription.callback(event)
            except Exception as e:
                logger.warning(f"Typing listener on {key} failed: {e}")

    def _remove(self, subscription: TypingSubscription) -> None:
        subscribers = self._subscribers.get(subscription.key, [])
        if subscription in subscribers:
            subscribers.remove(subscription)
        if not subscribers:
            self._subscribers.pop(subscription.key, None)


class TypingIndicator:
    """
    Receiver side "counterparty is typing" flag.

    Set on typing, cleared on stop_typing or after `timeout` seconds without
    any further signal.
    """

    def __init__(
        self,
        counterparty_id: str,
        timeout: float = DEFAULT_TYPING_TIMEOUT,
        on_change: Optional[Callable[[bool], None]] = None,
    ):
        self.counterparty_id = counterparty_id
        self.timeout = timeout
        self.on_change = on_change
        self.is_typing = False
        self._timer: Optional[asyncio.TimerHandle] = None

    def handle(self, event: TypingEvent) -> None:
        # Signals from anyone but the counterparty are ignored
        if event.user_id != self.counterparty_id:
            return
        if event.event == TypingEventType.TYPING:
            self._arm()
            self._set(True)
        elif event.event == TypingEventType.STOP_TYPING:
            self._cancel()
            self._set(False)

    def close(self) -> None:
        self._cancel()
        self.is_typing = False

    def _arm(self) -> None:
        self._cancel()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.timeout, self._expire)

    def _expire(self) -> None:
        self._timer = None
        self._set(False)

    def _cancel(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _set(self, value: bool) -> None:
        if self.is_typing == value:
            return
        self.is_typing = value
        if self.on_change is not None:
            self.on_change(value)


class TypingNotifier:
    """
    Sender side of the typing protocol: broadcasts typing on every keystroke
    notification and a single stop_typing once the user has been quiet for
    `timeout` seconds.
    """

    def __init__(self, hub: TypingHub, key: str, user_id: str, timeout: float = DEFAULT_TYPING_TIMEOUT):
        self.hub = hub
        self.key = key
        self.user_id = user_id
        self.timeout = timeout
        self._timer: Optional[asyncio.TimerHandle] = None

    def notify(self) -> None:
        self.hub.send_typing(self.key, self.user_id)
        if self._timer is not None:
            self._timer.cancel()
        self._timer = asyncio.get_running_loop().call_later(self.timeout, self.stop)

    def stop(self) -> None:
        """Broadcast stop_typing now, if typing was announced"""
        if self._timer is None:
            return
        self._timer.cancel()
        self._timer = None
        self.hub.send_stop_typing(self.key, self.user_id)


# Shared hub for the whole process
typing_hub = TypingHub()
