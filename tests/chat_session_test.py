import asyncio

from conftest import ME, ALICE, BOB
from fakes import FakeMessageRepository, FakeProfileRepository
from db.schemas.profiles_schema import ProfileInDB
from models.enums import MessageEventType, TypingEventType
from models.message_model import MessageEvent
from services.chat_session import ChatListSession, ChatRoomSession
from services.message_service import MessageService
from services.typing_service import TypingHub, conversation_key

CAROL = "carol"


async def settle():
    for _ in range(10):
        await asyncio.sleep(0)


def insert(message):
    return MessageEvent(event_type=MessageEventType.INSERT, message=message)


def update(message):
    return MessageEvent(event_type=MessageEventType.UPDATE, message=message)


def snapshot(make_message):
    return [
        make_message(2, ME, ALICE, 20, read=True),
        make_message(1, ALICE, ME, 10, read=False),
        make_message(3, BOB, ME, 5, read=False),
    ]


def ids(session):
    return [m.id for m in session.messages]


def test_open_loads_snapshot_and_marks_unread_read(make_message):
    async def run():
        repo = FakeMessageRepository(snapshot(make_message))
        notes = []
        listener = lambda kind, payload: notes.append(kind)
        async with ChatRoomSession(ME, ALICE, repo, TypingHub(), listener=listener) as session:
            result = (ids(session), [m.is_read for m in session.messages], list(repo.marked), session.room)
        return result, notes, repo.watching

    (message_ids, read_flags, marked, room), notes, watching = asyncio.run(run())

    assert message_ids == ["2", "1"]
    assert read_flags == [True, True]
    assert marked == [["1"]]
    assert notes[:2] == ["snapshot", "read"]
    assert room.last_message.id == "2"
    assert room.unread_count == 0
    assert not watching


def test_events_during_snapshot_fetch_are_replayed_once(make_message):
    async def run():
        repo = FakeMessageRepository(snapshot(make_message))
        repo.fetch_gate = asyncio.Event()
        session = ChatRoomSession(ME, ALICE, repo, TypingHub())

        opening = asyncio.create_task(session.open())
        await settle()
        await repo.events.put(insert(make_message(4, ALICE, ME, 30)))
        await repo.events.put(insert(make_message(2, ME, ALICE, 20, read=True)))
        await repo.events.put(update(make_message(1, ALICE, ME, 10, reactions={"👍": 1})))
        await settle()
        before_load = ids(session)

        repo.fetch_gate.set()
        await opening
        result = ids(session), session.messages[2].reactions, list(repo.marked)
        await session.close()
        return before_load, result

    before_load, (message_ids, reactions, marked) = asyncio.run(run())

    assert before_load == []
    assert message_ids == ["4", "2", "1"]
    assert reactions == {"👍": 1}
    assert marked == [["4", "1"]]


def test_live_insert_is_prepended_and_marked_read(make_message):
    async def run():
        repo = FakeMessageRepository(snapshot(make_message))
        async with ChatRoomSession(ME, ALICE, repo, TypingHub()) as session:
            await settle()
            await repo.events.put(insert(make_message(5, ALICE, ME, 40)))
            await settle()
            return ids(session), session.messages[0].is_read, list(repo.marked), session.room.unread_count

    message_ids, head_read, marked, unread = asyncio.run(run())

    assert message_ids == ["5", "2", "1"]
    assert head_read
    assert marked == [["1"], ["5"]]
    assert unread == 0


def test_events_for_other_conversations_leave_timeline_alone(make_message):
    async def run():
        repo = FakeMessageRepository(snapshot(make_message))
        async with ChatRoomSession(ME, ALICE, repo, TypingHub()) as session:
            await settle()
            await repo.events.put(insert(make_message(6, BOB, ME, 60)))
            await settle()
            return ids(session), list(repo.marked)

    message_ids, marked = asyncio.run(run())

    assert message_ids == ["2", "1"]
    assert marked == [["1"]]


def test_sent_message_and_its_echo_appear_once(make_message):
    async def run():
        repo = FakeMessageRepository(snapshot(make_message))
        async with ChatRoomSession(ME, ALICE, repo, TypingHub()) as session:
            await settle()
            sent = await session.send_message("  hello  ")
            await repo.events.put(insert(sent))
            await settle()
            return sent, ids(session), repo.created[0]

    sent, message_ids, created = asyncio.run(run())

    assert message_ids == [sent.id, "2", "1"]
    assert created.sender_id == ME
    assert created.receiver_id == ALICE
    assert created.content == "hello"


def test_failed_send_leaves_timeline_unchanged(make_message):
    async def run():
        repo = FakeMessageRepository(snapshot(make_message))
        repo.fail_send = True
        notes = []
        async with ChatRoomSession(ME, ALICE, repo, TypingHub(), listener=lambda k, p: notes.append(k)) as session:
            result = await session.send_message("hello")
            return result, ids(session), session.last_error, notes

    result, message_ids, error, notes = asyncio.run(run())

    assert result is None
    assert message_ids == ["2", "1"]
    assert error == "Failed to send message"
    assert "error" in notes


def test_empty_text_is_not_sent(make_message):
    async def run():
        repo = FakeMessageRepository(snapshot(make_message))
        async with ChatRoomSession(ME, ALICE, repo, TypingHub()) as session:
            return await session.send_message("   "), repo.created

    result, created = asyncio.run(run())

    assert result is None
    assert created == []


def test_close_stops_all_mutation(make_message):
    async def run():
        repo = FakeMessageRepository(snapshot(make_message))
        session = ChatRoomSession(ME, ALICE, repo, TypingHub())
        await session.open()
        await settle()
        was_watching = repo.watching

        await session.close()
        await session.close()
        await repo.events.put(insert(make_message(7, ALICE, ME, 70)))
        await settle()
        late = await session.send_message("sent while leaving")
        return was_watching, repo.watching, ids(session), late

    was_watching, watching, message_ids, late = asyncio.run(run())

    assert was_watching
    assert not watching
    assert message_ids == ["2", "1"]
    # The in-flight send still completes in the store
    assert late is not None


def test_failed_fetch_gives_empty_timeline_with_error(make_message):
    async def run():
        repo = FakeMessageRepository(snapshot(make_message))
        repo.fail_fetch = True
        async with ChatRoomSession(ME, ALICE, repo, TypingHub()) as session:
            return ids(session), session.loaded, session.last_error

    assert asyncio.run(run()) == ([], True, "Failed to load messages")


def test_failed_mark_read_keeps_messages_unread(make_message):
    async def run():
        repo = FakeMessageRepository(snapshot(make_message))
        repo.fail_mark_read = True
        async with ChatRoomSession(ME, ALICE, repo, TypingHub()) as session:
            return session.room.unread_count, session.last_error

    assert asyncio.run(run()) == (1, "Failed to mark messages as read")


def test_counterparty_typing_flag_and_release(make_message):
    async def run():
        repo = FakeMessageRepository(snapshot(make_message))
        hub = TypingHub()
        key = conversation_key(ME, ALICE)
        async with ChatRoomSession(ME, ALICE, repo, hub, typing_timeout=5) as session:
            hub.send_typing(key, ALICE)
            typing_now = session.is_counterparty_typing
            hub.send_stop_typing(key, ALICE)
            after_stop = session.is_counterparty_typing
        return typing_now, after_stop, hub.subscriber_count(key)

    assert asyncio.run(run()) == (True, False, 0)


def test_cancelled_open_releases_subscriptions(make_message):
    async def run():
        repo = FakeMessageRepository(snapshot(make_message))
        repo.fetch_gate = asyncio.Event()
        hub = TypingHub()
        key = conversation_key(ME, ALICE)
        session = ChatRoomSession(ME, ALICE, repo, hub)

        async def screen():
            async with session:
                await asyncio.sleep(10)

        task = asyncio.create_task(screen())
        await settle()
        subscribed = repo.watching, hub.subscriber_count(key)
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        return subscribed, repo.watching, hub.subscriber_count(key), session.closed, task.cancelled()

    subscribed, watching, typing_subscribers, closed, cancelled = asyncio.run(run())

    assert subscribed == (True, 1)
    assert not watching
    assert typing_subscribers == 0
    assert closed
    assert cancelled


def test_notify_typing_reaches_counterparty_and_stops_on_exit(make_message):
    async def run():
        repo = FakeMessageRepository(snapshot(make_message))
        hub = TypingHub()
        received = []
        hub.subscribe(conversation_key(ME, ALICE), received.append)
        async with ChatRoomSession(ME, ALICE, repo, hub, typing_timeout=5) as session:
            session.notify_typing()
        return [(event.event, event.user_id) for event in received]

    assert asyncio.run(run()) == [
        (TypingEventType.TYPING, ME),
        (TypingEventType.STOP_TYPING, ME),
    ]


def test_reaction_replaces_local_copy(make_message):
    async def run():
        repo = FakeMessageRepository(snapshot(make_message))
        async with ChatRoomSession(ME, ALICE, repo, TypingHub()) as session:
            await session.react("2", "👍")
            return session.messages[0].reactions

    assert asyncio.run(run()) == {"👍": 1}


def test_malformed_payload_is_dropped(make_message):
    async def run():
        repo = FakeMessageRepository(snapshot(make_message))
        async with ChatRoomSession(ME, ALICE, repo, TypingHub()) as session:
            applied = session.apply_payload({"event_type": "insert", "message": {"content": "?"}})
            return applied, ids(session)

    assert asyncio.run(run()) == (False, ["2", "1"])


def test_chat_list_patches_rooms_per_event(make_message):
    profiles = FakeProfileRepository([
        ProfileInDB(id=ALICE, full_name="Alice"),
        ProfileInDB(id=BOB, full_name="Bob"),
        ProfileInDB(id=CAROL, full_name="Carol"),
    ])

    async def run():
        repo = FakeMessageRepository(snapshot(make_message))
        service = MessageService(repo, profiles)
        notes = []
        listener = lambda kind, payload: notes.append((kind, payload))
        async with ChatListSession(ME, service, listener=listener) as session:
            first = [room.counterparty_id for room in session.rooms]
            await settle()
            await repo.events.put(insert(make_message(7, CAROL, ME, 70)))
            await settle()
            carol = session.index.get(CAROL)
            await repo.events.put(update(make_message(1, ALICE, ME, 10, read=True)))
            await settle()
            alice = session.index.get(ALICE)
        return first, carol, alice, notes

    first, carol, alice, notes = asyncio.run(run())

    assert first == [ALICE, BOB]
    assert carol.profile.full_name == "Carol"
    assert carol.unread_count == 1
    assert alice.unread_count == 0
    assert alice.profile.full_name == "Alice"
    assert notes[0][0] == "rooms"
    assert [payload.counterparty_id for kind, payload in notes[1:]] == [CAROL, ALICE]
