from typing import Optional
from pydantic import BaseModel, EmailStr, Field, field_validator

from models.profile_model import Profile
from utils.phone import normalize_phone_number

class Token(BaseModel):
    access_token: str
    token_type: str
    profile: Optional[Profile] = None

class TokenData(BaseModel):
    email: Optional[str] = None
    user_id: Optional[str] = None

class SignUpRequest(BaseModel):
    """Model for creating a new account"""
    email: EmailStr
    password: str = Field(min_length=6)
    full_name: Optional[str] = None
    phone_number: Optional[str] = None

    @field_validator("phone_number")
    @classmethod
    def normalize(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return normalize_phone_number(v) or None

class SignUpResponse(BaseModel):
    success: bool
    message: str
    profile: Optional[Profile] = None
