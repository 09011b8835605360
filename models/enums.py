from enum import Enum

class ContentType(str, Enum):
    """What a message's content holds"""
    TEXT = "text"
    IMAGE = "image"
    FILE = "file"

class AttachmentKind(str, Enum):
    """Kinds of uploadable attachments"""
    IMAGE = "image"
    FILE = "file"

class MessageEventType(str, Enum):
    """Realtime change kinds on the messages collection"""
    INSERT = "insert"
    UPDATE = "update"

class TypingEventType(str, Enum):
    """Typing presence broadcast signals"""
    TYPING = "typing"
    STOP_TYPING = "stop_typing"
