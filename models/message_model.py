from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Optional, List, Dict
from datetime import datetime, timezone
from bson import ObjectId

from models.enums import ContentType, MessageEventType, TypingEventType
from models.profile_model import Profile

class MessageBase(BaseModel):
    """Base message fields shared across different message models"""
    content: str = ""
    content_type: ContentType = ContentType.TEXT
    file_url: Optional[str] = None
    file_type: Optional[str] = None

class MessageCreate(MessageBase):
    """Model for creating a new message"""
    receiver_id: str
    # Filled in from the authenticated user by the API layer
    sender_id: Optional[str] = None

    @field_validator("content")
    @classmethod
    def strip_content(cls, v: str) -> str:
        return v.strip()

    @model_validator(mode="after")
    def check_payload(self):
        """Text messages need content, attachments need an uploaded file"""
        if self.content_type == ContentType.TEXT and not self.content:
            raise ValueError("Text messages cannot be empty")
        if self.content_type != ContentType.TEXT and not self.file_url:
            raise ValueError("Attachment messages require a file_url")
        return self

class Message(MessageBase):
    """Model for returning message information to clients"""
    id: str
    sender_id: str
    receiver_id: str
    is_read: bool = False
    created_at: datetime
    delivered_at: Optional[datetime] = None
    read_at: Optional[datetime] = None
    reactions: Dict[str, int] = Field(default_factory=dict)

    @field_validator("created_at", "delivered_at", "read_at")
    @classmethod
    def assume_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        # Timestamps without an offset are UTC, like everything the store returns
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    class Config:
        json_encoders = {
            ObjectId: str
        }

    def involves(self, user_id: str, other_user_id: str) -> bool:
        """True when this message was exchanged between the two users"""
        return {self.sender_id, self.receiver_id} == {user_id, other_user_id}

class ChatRoom(BaseModel):
    """Derived per-counterparty view of a user's conversations"""
    counterparty_id: str
    profile: Optional[Profile] = None
    last_message: Optional[Message] = None
    unread_count: int = 0

class MessageEvent(BaseModel):
    """A realtime insert or update of a message"""
    event_type: MessageEventType
    message: Message

class MarkReadRequest(BaseModel):
    """Batch of message ids to mark as read"""
    message_ids: List[str] = Field(min_length=1)

class MarkReadResponse(BaseModel):
    message_ids: List[str]
    modified_count: int

class ReactionCreate(BaseModel):
    """A single reaction added to a message"""
    reaction: str = Field(min_length=1, max_length=16)

    @field_validator("reaction")
    @classmethod
    def valid_field_name(cls, v: str) -> str:
        # Reactions are stored as document keys
        v = v.strip()
        if not v or "." in v or v.startswith("$"):
            raise ValueError("Invalid reaction symbol")
        return v

class AttachmentResponse(BaseModel):
    """Result of an attachment upload"""
    file_url: str
    file_type: str
    object_name: str
    size: int

class TypingEvent(BaseModel):
    """Typing presence signal scoped to one conversation"""
    event: TypingEventType
    user_id: str
