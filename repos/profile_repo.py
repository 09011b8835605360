from typing import Dict, List, Optional, Any, Tuple
from bson import ObjectId
from pymongo import ReturnDocument

from db.schemas.profiles_schema import ProfileInDB
from mappers.profiles_mapper import create_guest_profile_dict
from db.mongodb import convert_to_object_ids
from utils.time import get_current_utc_time

class ProfileRepository:
    """
    Repository for profile-related database operations
    Handles all direct interactions with the profiles collection
    """

    def __init__(self, db):
        self.db = db
        self.profiles = db.profiles

    @staticmethod
    def _to_model(profile_dict: Optional[Dict[str, Any]]) -> Optional[ProfileInDB]:
        if not profile_dict:
            return None
        # Convert ObjectId to string
        if isinstance(profile_dict.get("_id"), ObjectId):
            profile_dict["_id"] = str(profile_dict["_id"])
        return ProfileInDB(**profile_dict)

    async def find_by_id(self, profile_id: str) -> Optional[ProfileInDB]:
        if not ObjectId.is_valid(profile_id):
            return None
        return self._to_model(await self.profiles.find_one({"_id": ObjectId(profile_id)}))

    async def find_by_ids(self, profile_ids: List[str]) -> Dict[str, ProfileInDB]:
        """Profiles keyed by id; unknown ids are left out"""
        object_ids = convert_to_object_ids(profile_ids)
        if not object_ids:
            return {}
        profiles = await self.profiles.find({"_id": {"$in": object_ids}}).to_list(length=None)
        result = {}
        for profile_dict in profiles:
            profile = self._to_model(profile_dict)
            result[profile.id] = profile
        return result

    async def find_by_email(self, email: str) -> Optional[ProfileInDB]:
        """Find a profile by email, emails are stored lowercased"""
        return self._to_model(await self.profiles.find_one({"email": email.lower()}))

    async def find_by_phone_number(self, phone_number: str) -> Optional[ProfileInDB]:
        return self._to_model(await self.profiles.find_one({"phone_number": phone_number}))

    async def find_by_phone_numbers(self, phone_numbers: List[str]) -> List[ProfileInDB]:
        if not phone_numbers:
            return []
        profiles = await self.profiles.find({"phone_number": {"$in": phone_numbers}}).to_list(length=None)
        return [self._to_model(profile_dict) for profile_dict in profiles]

    async def create_profile(self, profile_dict: Dict[str, Any]) -> ProfileInDB:
        profile_dict = dict(profile_dict)
        if profile_dict.get("email"):
            profile_dict["email"] = profile_dict["email"].lower()
        result = await self.profiles.insert_one(profile_dict)
        profile_dict["_id"] = str(result.inserted_id)
        return ProfileInDB(**profile_dict)

    async def get_or_create_guest_profile(self, phone_number: str, full_name: str) -> Tuple[ProfileInDB, bool]:
        """
        Return the profile owning phone_number, creating a guest profile when there is none.
        Returns a (profile, created) tuple.
        """
        guest_dict = create_guest_profile_dict(phone_number, full_name)
        before = await self.profiles.find_one_and_update(
            {"phone_number": phone_number},
            {"$setOnInsert": guest_dict},
            upsert=True,
            return_document=ReturnDocument.BEFORE
        )
        profile = await self.find_by_phone_number(phone_number)
        return profile, before is None

    async def claim_guest_profile(self, phone_number: str, update_data: Dict[str, Any]) -> Optional[ProfileInDB]:
        """Turn the guest profile for phone_number into a registered one, keeping its id"""
        update_data = dict(update_data, is_guest=False, updated_at=get_current_utc_time())
        if update_data.get("email"):
            update_data["email"] = update_data["email"].lower()
        updated = await self.profiles.find_one_and_update(
            {"phone_number": phone_number, "is_guest": True},
            {"$set": update_data},
            return_document=ReturnDocument.AFTER
        )
        return self._to_model(updated)

    async def update_presence(self, profile_id: str, is_online: bool) -> Optional[ProfileInDB]:
        """Set the online flag and refresh last_seen"""
        if not ObjectId.is_valid(profile_id):
            return None
        now = get_current_utc_time()
        updated = await self.profiles.find_one_and_update(
            {"_id": ObjectId(profile_id)},
            {"$set": {"is_online": is_online, "last_seen": now, "updated_at": now}},
            return_document=ReturnDocument.AFTER
        )
        return self._to_model(updated)
