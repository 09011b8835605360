from typing import AsyncIterator, List, Optional
from bson import ObjectId
from pydantic import ValidationError
from pymongo import DESCENDING, ReturnDocument

from models.enums import MessageEventType
from models.message_model import Message, MessageCreate, MessageEvent
from mappers.messages_mapper import message_doc_to_model, create_message_dict
from db.mongodb import convert_to_object_ids
from utils.time import get_current_utc_time
from logger.logger import logger

# Change stream operations surfaced as message events
_CHANGE_TYPES = {
    "insert": MessageEventType.INSERT,
    "update": MessageEventType.UPDATE,
    "replace": MessageEventType.UPDATE,
}

class MessageRepository:
    """
    Repository for message-related database operations
    Handles all direct interactions with the messages collection
    """

    def __init__(self, db):
        self.db = db
        self.messages = db.messages

    @staticmethod
    def participation_query(user_id: str) -> dict:
        return {"$or": [{"sender_id": user_id}, {"receiver_id": user_id}]}

    @staticmethod
    def conversation_query(user_id: str, other_user_id: str) -> dict:
        return {
            "$or": [
                {"sender_id": user_id, "receiver_id": other_user_id},
                {"sender_id": other_user_id, "receiver_id": user_id}
            ]
        }

    async def list_messages(self, user_id: str, limit: Optional[int] = None) -> List[Message]:
        """Every message the user sent or received, newest first"""
        cursor = self.messages.find(self.participation_query(user_id)).sort("created_at", DESCENDING)
        if limit:
            cursor = cursor.limit(limit)
        messages = await cursor.to_list(length=None)
        return [message_doc_to_model(msg) for msg in messages]

    async def get_conversation_messages(self, user_id: str, other_user_id: str, skip: int = 0, limit: int = 50) -> List[Message]:
        """Get messages between two users, newest first"""
        messages = await self.messages.find(
            self.conversation_query(user_id, other_user_id)
        ).sort("created_at", DESCENDING).skip(skip).limit(limit).to_list(length=None)

        return [message_doc_to_model(msg) for msg in messages]

    async def get_message(self, message_id: str) -> Optional[Message]:
        if not ObjectId.is_valid(message_id):
            return None
        message = await self.messages.find_one({"_id": ObjectId(message_id)})
        return message_doc_to_model(message) if message else None

    async def create_message(self, message: MessageCreate) -> Message:
        """Insert a new message"""
        message_dict = create_message_dict(message)
        result = await self.messages.insert_one(message_dict)
        message_dict["_id"] = result.inserted_id
        return message_doc_to_model(message_dict)

    async def mark_read(self, message_ids: List[str], reader_id: str) -> int:
        """
        Mark the given messages as read.
        Only messages received by reader_id are touched.
        """
        object_ids = convert_to_object_ids(message_ids)
        if not object_ids:
            return 0

        result = await self.messages.update_many(
            {
                "_id": {"$in": object_ids},
                "receiver_id": reader_id,
                "is_read": False
            },
            {
                "$set": {
                    "is_read": True,
                    "read_at": get_current_utc_time()
                }
            }
        )
        return result.modified_count

    async def find_unread_ids(self, user_id: str, other_user_id: str) -> List[str]:
        """Ids of unread messages from other_user_id to user_id"""
        cursor = self.messages.find(
            {"sender_id": other_user_id, "receiver_id": user_id, "is_read": False},
            {"_id": 1}
        )
        return [str(doc["_id"]) for doc in await cursor.to_list(length=None)]

    async def add_reaction(self, message_id: str, reaction: str) -> Optional[Message]:
        """Increment the count of one reaction symbol on a message"""
        if not ObjectId.is_valid(message_id):
            return None
        updated = await self.messages.find_one_and_update(
            {"_id": ObjectId(message_id)},
            {"$inc": {f"reactions.{reaction}": 1}},
            return_document=ReturnDocument.AFTER
        )
        return message_doc_to_model(updated) if updated else None

    async def watch(self, user_id: str) -> AsyncIterator[MessageEvent]:
        """
        Stream insert and update events for messages the user takes part in.
        Requires MongoDB to run as a replica set.
        """
        pipeline = [
            {"$match": {
                "operationType": {"$in": list(_CHANGE_TYPES)},
                "$or": [
                    {"fullDocument.sender_id": user_id},
                    {"fullDocument.receiver_id": user_id}
                ]
            }}
        ]
        async with self.messages.watch(pipeline, full_document="updateLookup") as stream:
            async for change in stream:
                event = self.change_to_event(change)
                if event is not None:
                    yield event

    @staticmethod
    def change_to_event(change: dict) -> Optional[MessageEvent]:
        """Convert a change stream document, or None when it cannot be used"""
        event_type = _CHANGE_TYPES.get(change.get("operationType"))
        document = change.get("fullDocument")
        if event_type is None or not document:
            logger.warning(f"Dropping change event without a usable document: {change.get('operationType')}")
            return None
        try:
            return MessageEvent(event_type=event_type, message=message_doc_to_model(document))
        except ValidationError as e:
            logger.warning(f"Dropping malformed message change: {e.error_count()} validation error(s)")
            return None
