from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
from utils.time import get_current_utc_time
from bson import ObjectId
from db.mongodb import PyObjectId

class ProfileInDB(BaseModel):
    """Database representation of a profile document"""
    id: PyObjectId = Field(default_factory=lambda: str(ObjectId()), alias="_id")
    email: Optional[str] = None
    full_name: str
    avatar_url: Optional[str] = None
    phone_number: Optional[str] = None
    # Guest profiles never sign in so they carry no password
    password_hash: Optional[str] = None
    is_guest: bool = False
    is_online: bool = False

    # Metadata
    last_seen: Optional[datetime] = None
    created_at: datetime = Field(default_factory=get_current_utc_time)
    updated_at: datetime = Field(default_factory=get_current_utc_time)

    model_config = {
        "arbitrary_types_allowed": True,
        "populate_by_name": True,
        "json_encoders": {
            ObjectId: str
        }
    }
