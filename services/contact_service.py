from typing import List
from fastapi import HTTPException, status

from repos.profile_repo import ProfileRepository
from mappers.profiles_mapper import profile_db_to_response
from models.profile_model import ContactMatchResponse, GuestProfileCreate, StartChatResponse
from utils.phone import normalize_phone_numbers
from logger.logger import logger

class ContactService:
    """
    Matches device address book entries against profiles and opens chats
    with contacts that have not joined yet
    """

    def __init__(self, profile_repo: ProfileRepository):
        self.profile_repo = profile_repo

    async def match_contacts(self, phone_numbers: List[str], current_user_id: str) -> ContactMatchResponse:
        """Profiles registered under any of the given phone numbers"""
        normalized = normalize_phone_numbers(phone_numbers)
        profiles = await self.profile_repo.find_by_phone_numbers(normalized)

        matched = {profile.phone_number for profile in profiles}
        return ContactMatchResponse(
            profiles=[profile_db_to_response(p) for p in profiles if p.id != current_user_id],
            unmatched=[number for number in normalized if number not in matched]
        )

    async def start_chat(self, contact: GuestProfileCreate, current_user_id: str) -> StartChatResponse:
        """
        Resolve a contact to the profile to chat with.
        Unregistered contacts get a guest profile so messages can be sent before they join.
        """
        profile, created = await self.profile_repo.get_or_create_guest_profile(
            contact.phone_number, contact.full_name
        )
        if profile is None:
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Failed to start chat"
            )
        if profile.id == current_user_id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Cannot start a chat with yourself"
            )
        if created:
            logger.info(f"Created guest profile {profile.id} for an unregistered contact")
        return StartChatResponse(profile=profile_db_to_response(profile), created=created)
