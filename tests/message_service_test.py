import asyncio

import pytest
from fastapi import HTTPException

from conftest import ME, ALICE, BOB
from fakes import FakeMessageRepository, FakeProfileRepository
from db.schemas.profiles_schema import ProfileInDB
from models.message_model import MessageCreate
from services.message_service import MessageService


def make_service(make_message):
    messages = [
        make_message(2, ME, ALICE, 20, read=True),
        make_message(1, ALICE, ME, 10, read=False),
        make_message(3, BOB, ME, 5, read=False),
    ]
    profiles = FakeProfileRepository([
        ProfileInDB(id=ALICE, full_name="Alice Liddell"),
        ProfileInDB(id=BOB, full_name="Bob Stone"),
    ])
    return MessageService(FakeMessageRepository(messages), profiles)


def test_chat_rooms_are_aggregated_and_ordered(make_message):
    service = make_service(make_message)

    rooms = asyncio.run(service.get_chat_rooms(ME))

    assert [room.counterparty_id for room in rooms] == [ALICE, BOB]
    assert rooms[0].profile.full_name == "Alice Liddell"
    assert rooms[0].unread_count == 1


def test_chat_rooms_search_by_name(make_message):
    service = make_service(make_message)

    rooms = asyncio.run(service.get_chat_rooms(ME, "STONE"))

    assert [room.counterparty_id for room in rooms] == [BOB]


def test_cannot_message_yourself(make_message):
    service = make_service(make_message)

    with pytest.raises(HTTPException) as exc_info:
        asyncio.run(service.send_message(MessageCreate(sender_id=ME, receiver_id=ME, content="hi")))
    assert exc_info.value.status_code == 400


def test_unknown_receiver_is_not_found(make_message):
    service = make_service(make_message)

    with pytest.raises(HTTPException) as exc_info:
        asyncio.run(service.send_message(MessageCreate(sender_id=ME, receiver_id="nobody", content="hi")))
    assert exc_info.value.status_code == 404


def test_mark_conversation_as_read(make_message):
    service = make_service(make_message)

    result = asyncio.run(service.mark_conversation_as_read(ME, ALICE))

    assert result.message_ids == ["1"]
    assert service.message_repo.marked == [["1"]]


def test_reaction_requires_participation(make_message):
    service = make_service(make_message)

    with pytest.raises(HTTPException) as exc_info:
        asyncio.run(service.react_to_message("mallory", "1", "👍"))
    assert exc_info.value.status_code == 404

    updated = asyncio.run(service.react_to_message(ME, "1", "👍"))
    assert updated.reactions == {"👍": 1}
