import asyncio

from conftest import ME, ALICE, BOB
from models.enums import TypingEventType
from models.message_model import TypingEvent
from services.typing_service import TypingHub, TypingIndicator, TypingNotifier, conversation_key


def typing(user_id):
    return TypingEvent(event=TypingEventType.TYPING, user_id=user_id)


def stop_typing(user_id):
    return TypingEvent(event=TypingEventType.STOP_TYPING, user_id=user_id)


def test_conversation_key_is_symmetric():
    assert conversation_key(ME, ALICE) == conversation_key(ALICE, ME)
    assert conversation_key(ME, ALICE) != conversation_key(ME, BOB)


def test_typing_then_stop_typing():
    async def run():
        changes = []
        indicator = TypingIndicator(ALICE, timeout=5, on_change=changes.append)
        indicator.handle(typing(ALICE))
        assert indicator.is_typing
        indicator.handle(stop_typing(ALICE))
        assert not indicator.is_typing
        indicator.close()
        return changes

    assert asyncio.run(run()) == [True, False]


def test_typing_clears_after_silence():
    async def run():
        indicator = TypingIndicator(ALICE, timeout=0.2)
        indicator.handle(typing(ALICE))
        await asyncio.sleep(0.12)
        # A fresh signal re-arms the timeout
        indicator.handle(typing(ALICE))
        await asyncio.sleep(0.12)
        still_typing = indicator.is_typing
        await asyncio.sleep(0.2)
        return still_typing, indicator.is_typing

    assert asyncio.run(run()) == (True, False)


def test_signals_from_other_users_are_ignored():
    async def run():
        indicator = TypingIndicator(ALICE, timeout=5)
        indicator.handle(typing(BOB))
        return indicator.is_typing

    assert asyncio.run(run()) is False


def test_hub_delivers_until_closed():
    hub = TypingHub()
    key = conversation_key(ME, ALICE)
    received = []

    subscription = hub.subscribe(key, received.append)
    hub.send_typing(key, ALICE)
    hub.send_typing(conversation_key(ME, BOB), BOB)
    subscription.close()
    hub.send_stop_typing(key, ALICE)

    assert received == [typing(ALICE)]
    assert hub.subscriber_count(key) == 0


def test_failing_listener_does_not_block_others():
    hub = TypingHub()
    key = conversation_key(ME, ALICE)
    received = []

    def broken(event):
        raise RuntimeError("listener gone")

    hub.subscribe(key, broken)
    hub.subscribe(key, received.append)
    hub.send_typing(key, ALICE)

    assert received == [typing(ALICE)]


def test_notifier_sends_single_stop_after_quiet_period():
    async def run():
        hub = TypingHub()
        key = conversation_key(ME, ALICE)
        received = []
        hub.subscribe(key, received.append)

        notifier = TypingNotifier(hub, key, ME, timeout=0.05)
        notifier.notify()
        notifier.notify()
        await asyncio.sleep(0.1)
        return [event.event for event in received]

    assert asyncio.run(run()) == [
        TypingEventType.TYPING,
        TypingEventType.TYPING,
        TypingEventType.STOP_TYPING,
    ]


def test_notifier_stop_without_typing_is_silent():
    async def run():
        hub = TypingHub()
        key = conversation_key(ME, ALICE)
        received = []
        hub.subscribe(key, received.append)
        TypingNotifier(hub, key, ME).stop()
        return received

    assert asyncio.run(run()) == []
