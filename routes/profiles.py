from fastapi import APIRouter, HTTPException, status

from models.profile_model import PresenceUpdate, Profile
from mappers.profiles_mapper import profile_db_to_response
from dependencies.auth import CurrentUser, ProfileRepositoryDep

router = APIRouter()

@router.get("/me", response_model=Profile)
async def get_my_profile(current_user: CurrentUser):
    """Profile of the authenticated user"""
    return profile_db_to_response(current_user)

@router.put("/me/presence", response_model=Profile)
async def update_presence(update: PresenceUpdate, current_user: CurrentUser, profile_repo: ProfileRepositoryDep):
    """Set the online flag, refreshing last_seen"""
    profile = await profile_repo.update_presence(current_user.id, update.is_online)
    if profile is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Profile not found")
    return profile_db_to_response(profile)

@router.get("/{profile_id}", response_model=Profile)
async def get_profile(profile_id: str, current_user: CurrentUser, profile_repo: ProfileRepositoryDep):
    """Profile of a chat counterparty"""
    profile = await profile_repo.find_by_id(profile_id)
    if profile is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Profile not found")
    return profile_db_to_response(profile)
