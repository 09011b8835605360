from pydantic import BaseModel, EmailStr, Field, field_validator
from typing import List, Optional
from datetime import datetime

from utils.phone import normalize_phone_number

class Profile(BaseModel):
    """Model for returning profile information to clients"""
    id: str
    email: Optional[EmailStr] = None
    full_name: str
    avatar_url: Optional[str] = None
    phone_number: Optional[str] = None
    last_seen: Optional[datetime] = None
    is_online: bool = False
    is_guest: bool = False

class GuestProfileCreate(BaseModel):
    """Model for starting a chat with an unregistered contact"""
    phone_number: str
    full_name: str = Field(min_length=1)

    @field_validator("phone_number")
    @classmethod
    def normalize(cls, v: str) -> str:
        normalized = normalize_phone_number(v)
        if not normalized:
            raise ValueError("No phone number available for this contact")
        return normalized

class ContactMatchRequest(BaseModel):
    """Phone numbers from the device address book"""
    phone_numbers: List[str] = Field(default_factory=list)

class ContactMatchResponse(BaseModel):
    """Registered or guest profiles matching the submitted phone numbers"""
    profiles: List[Profile]
    unmatched: List[str]

class StartChatResponse(BaseModel):
    profile: Profile
    created: bool = False

class PresenceUpdate(BaseModel):
    is_online: bool
