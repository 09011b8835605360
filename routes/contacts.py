from fastapi import APIRouter, HTTPException, status

from models.profile_model import (
    ContactMatchRequest,
    ContactMatchResponse,
    GuestProfileCreate,
    StartChatResponse,
)
from dependencies.auth import CurrentUser
from dependencies.chat import ContactServiceDep
from logger.logger import logger

router = APIRouter()

@router.post("/match", response_model=ContactMatchResponse)
async def match_contacts(request: ContactMatchRequest, current_user: CurrentUser, contact_service: ContactServiceDep):
    """
    Which address book phone numbers belong to profiles.
    An empty list means the device shared no contacts; nothing else is affected.
    """
    return await contact_service.match_contacts(request.phone_numbers, current_user.id)

@router.post("/start-chat", response_model=StartChatResponse)
async def start_chat(contact: GuestProfileCreate, current_user: CurrentUser, contact_service: ContactServiceDep):
    """
    Profile to open a chat with for a contact, creating a guest profile for unregistered contacts
    """
    try:
        return await contact_service.start_chat(contact, current_user.id)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error starting chat with contact: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to start chat"
        )
