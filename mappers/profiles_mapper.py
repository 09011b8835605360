from typing import Any, Dict, Optional

from db.schemas.profiles_schema import ProfileInDB
from models.profile_model import Profile
from models.auth_model import SignUpRequest
from utils.time import get_current_utc_time

def profile_db_to_response(profile_db: ProfileInDB) -> Profile:
    """Convert database profile schema to API response model"""
    profile_dict = profile_db.model_dump(by_alias=False)

    # Only include fields that are in the Profile model
    response_fields = Profile.model_fields.keys()
    filtered_profile = {k: v for k, v in profile_dict.items() if k in response_fields}

    return Profile(**filtered_profile)

def create_profile_dict(sign_up: SignUpRequest, password_hash: str) -> Dict[str, Any]:
    """Create a dict for MongoDB profile document from SignUpRequest model"""
    now = get_current_utc_time()
    profile_dict = sign_up.model_dump(exclude={"password"})
    # Default display name is the local part of the email address
    profile_dict["full_name"] = sign_up.full_name or default_full_name(sign_up.email)
    profile_dict["password_hash"] = password_hash
    profile_dict["is_guest"] = False
    profile_dict["is_online"] = True
    profile_dict["last_seen"] = now
    profile_dict["created_at"] = now
    profile_dict["updated_at"] = now
    if not profile_dict.get("phone_number"):
        # Sparse unique index: absent instead of null
        profile_dict.pop("phone_number", None)
    return profile_dict

def create_guest_profile_dict(phone_number: str, full_name: str) -> Dict[str, Any]:
    """Create a dict for a guest profile of an unregistered contact"""
    now = get_current_utc_time()
    return {
        "phone_number": phone_number,
        "full_name": full_name,
        "is_guest": True,
        "is_online": False,
        "last_seen": None,
        "created_at": now,
        "updated_at": now,
    }

def default_full_name(email: Optional[str]) -> str:
    if not email:
        return ""
    return email.split("@")[0]
