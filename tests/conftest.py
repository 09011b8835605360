import os
from datetime import datetime, timedelta, timezone

import pytest

# config exits the process when required settings are missing
os.environ.setdefault("DATABASE_URL", "mongodb://localhost:27017")
os.environ.setdefault("DATABASE_NAME", "thundertalk_test")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")
os.environ.setdefault("MINIO_USERNAME", "minio")
os.environ.setdefault("MINIO_PASSWORD", "minio-password")
os.environ.setdefault("MINIO_SERVER", "localhost:9000")
os.environ.setdefault("MINIO_BUCKET", "chat-files")

from models.message_model import Message

ME = "me"
ALICE = "alice"
BOB = "bob"

EPOCH = datetime(2024, 1, 1, tzinfo=timezone.utc)


def at(seconds: int) -> datetime:
    return EPOCH + timedelta(seconds=seconds)


@pytest.fixture
def make_message():
    """Build a Message with short ids and second offsets as timestamps"""
    def factory(id, sender, receiver, t, read=False, **extra):
        return Message(
            id=str(id),
            sender_id=sender,
            receiver_id=receiver,
            content=extra.pop("content", f"message {id}"),
            is_read=read,
            created_at=at(t),
            **extra
        )
    return factory
