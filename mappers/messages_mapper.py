from typing import Any, Dict

from bson import ObjectId

from models.message_model import Message, MessageCreate
from utils.time import get_current_utc_time

def message_doc_to_model(message_doc: Dict[str, Any]) -> Message:
    """
    Convert a raw messages document into the API model.
    Raises pydantic.ValidationError when required fields are missing.
    """
    message_dict = dict(message_doc)
    if "_id" in message_dict:
        message_dict["id"] = str(message_dict.pop("_id"))

    for key in ("sender_id", "receiver_id"):
        if isinstance(message_dict.get(key), ObjectId):
            message_dict[key] = str(message_dict[key])

    # Older documents may carry an explicit null
    if message_dict.get("reactions") is None:
        message_dict["reactions"] = {}

    return Message(**message_dict)

def create_message_dict(message: MessageCreate) -> Dict[str, Any]:
    """Create a dict for a MongoDB message document from MessageCreate model"""
    now = get_current_utc_time()
    message_dict = message.model_dump(mode="json")
    message_dict["file_url"] = message.file_url or None
    message_dict["is_read"] = False
    message_dict["created_at"] = now
    message_dict["delivered_at"] = now
    message_dict["read_at"] = None
    message_dict["reactions"] = {}
    return message_dict
