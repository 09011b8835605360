import random

from conftest import ME, ALICE, BOB
from models.profile_model import Profile
from services.conversation_aggregator import (
    ConversationIndex,
    aggregate_conversations,
    counterparty_id,
)


def scenario(make_message):
    return [
        make_message(1, ALICE, ME, 10, read=False),
        make_message(2, ME, ALICE, 20, read=True),
        make_message(3, BOB, ME, 5, read=False),
    ]


def test_empty_input_gives_no_rooms():
    assert aggregate_conversations([], ME) == {}


def test_scenario_rooms(make_message):
    rooms = aggregate_conversations(scenario(make_message), ME)

    assert set(rooms) == {ALICE, BOB}
    assert rooms[ALICE].last_message.id == "2"
    assert rooms[ALICE].unread_count == 1
    assert rooms[BOB].last_message.id == "3"
    assert rooms[BOB].unread_count == 1


def test_one_room_per_counterparty_regardless_of_order(make_message):
    messages = [
        make_message(i, ALICE if i % 2 else ME, ME if i % 2 else ALICE, i)
        for i in range(1, 21)
    ] + [make_message(100, ME, BOB, 3), make_message(101, BOB, ME, 4)]
    random.Random(7).shuffle(messages)

    rooms = aggregate_conversations(messages, ME)

    assert sorted(rooms) == [ALICE, BOB]
    assert rooms[ALICE].last_message.id == "20"
    assert rooms[BOB].last_message.id == "101"


def test_descending_input_keeps_first_message_per_counterparty(make_message):
    # Same timestamp: the first one seen stays authoritative
    messages = [
        make_message(9, ALICE, ME, 50),
        make_message(8, ME, ALICE, 50),
        make_message(7, ALICE, ME, 40),
    ]

    rooms = aggregate_conversations(messages, ME)

    assert rooms[ALICE].last_message.id == "9"


def test_unread_count_spans_whole_input(make_message):
    messages = [
        make_message(5, ALICE, ME, 50, read=False),
        make_message(4, ME, ALICE, 40, read=False),
        make_message(3, ALICE, ME, 30, read=True),
        make_message(2, ALICE, ME, 20, read=False),
        make_message(1, ALICE, ME, 10, read=False),
    ]

    rooms = aggregate_conversations(messages, ME)

    # Message 4 is unread but was sent by the current user
    assert rooms[ALICE].unread_count == 3


def test_only_read_messages_have_no_unread(make_message):
    rooms = aggregate_conversations([make_message(1, BOB, ME, 1, read=True)], ME)
    assert rooms[BOB].unread_count == 0


def test_message_to_self_is_keyed_by_own_id(make_message):
    message = make_message(1, ME, ME, 1)
    assert counterparty_id(message, ME) == ME
    assert set(aggregate_conversations([message], ME)) == {ME}


def test_index_insert_and_update_patch_room(make_message):
    index = ConversationIndex(ME).rebuild(scenario(make_message))

    room = index.apply_insert(make_message(4, ALICE, ME, 30))
    assert room.last_message.id == "4"
    assert room.unread_count == 2

    room = index.apply_update(make_message(1, ALICE, ME, 10, read=True))
    assert room.unread_count == 1
    assert room.last_message.id == "4"


def test_index_duplicate_insert_is_not_counted_twice(make_message):
    index = ConversationIndex(ME).rebuild(scenario(make_message))

    index.apply_insert(make_message(4, ALICE, ME, 30))
    index.apply_insert(make_message(4, ALICE, ME, 30))

    assert index.get(ALICE).unread_count == 2


def test_index_update_for_unknown_id_is_noop(make_message):
    index = ConversationIndex(ME).rebuild(scenario(make_message))

    assert index.apply_update(make_message(42, BOB, ME, 99)) is None
    assert index.get(BOB).last_message.id == "3"
    assert index.get(BOB).unread_count == 1
    assert len(index) == 2


def test_index_update_refreshes_last_message_fields(make_message):
    index = ConversationIndex(ME).rebuild(scenario(make_message))

    index.apply_update(make_message(2, ME, ALICE, 20, read=True, reactions={"👍": 2}))

    assert index.get(ALICE).last_message.reactions == {"👍": 2}


def test_mark_read_zeroes_unread_without_moving_last_message(make_message):
    index = ConversationIndex(ME).rebuild(scenario(make_message))

    changed = index.mark_read(["1", "3"])

    assert {room.counterparty_id for room in changed} == {ALICE, BOB}
    assert index.get(ALICE).unread_count == 0
    assert index.get(BOB).unread_count == 0
    assert index.get(ALICE).last_message.id == "2"
    assert index.get(BOB).last_message.id == "3"


def test_mark_read_twice_is_idempotent(make_message):
    index = ConversationIndex(ME).rebuild(scenario(make_message))
    index.mark_read(["1"])
    assert index.mark_read(["1"]) == []
    assert index.get(ALICE).unread_count == 0


def test_sorted_rooms_most_recent_first(make_message):
    index = ConversationIndex(ME).rebuild(scenario(make_message))
    assert [room.counterparty_id for room in index.sorted_rooms()] == [ALICE, BOB]


def test_profiles_survive_rebuild(make_message):
    index = ConversationIndex(ME).rebuild(scenario(make_message))
    index.attach_profiles({ALICE: Profile(id=ALICE, full_name="Alice")})
    assert index.missing_profiles() == [BOB]

    index.rebuild(scenario(make_message))

    assert index.get(ALICE).profile.full_name == "Alice"
