# dependencies/auth.py
from fastapi import Depends, HTTPException, status
from typing import Optional, Annotated

from services.auth_service import AuthService
from repos.profile_repo import ProfileRepository
from db.schemas.profiles_schema import ProfileInDB
from .db import DB
from config import oauth2_scheme

def get_profile_repository(db: DB) -> ProfileRepository:
    """
    Dependency to get a profile repository instance.
    """
    return ProfileRepository(db)

ProfileRepositoryDep = Annotated[ProfileRepository, Depends(get_profile_repository)]

async def resolve_profile_from_token(token: Optional[str], profile_repo: ProfileRepository) -> Optional[ProfileInDB]:
    """Profile for a bearer token, None when the token is missing, invalid or for a guest"""
    if not token:
        return None
    token_data = AuthService.decode_access_token(token)
    if token_data is None:
        return None
    profile = await profile_repo.find_by_id(token_data.user_id)
    if profile is None or profile.is_guest:
        return None
    return profile

async def get_current_user(
    profile_repo: ProfileRepositoryDep,
    token: str = Depends(oauth2_scheme)
) -> ProfileInDB:
    """Get the current authenticated profile from the JWT token."""
    profile = await resolve_profile_from_token(token, profile_repo)
    if profile is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return profile

def get_auth_service(profile_repo: ProfileRepositoryDep) -> AuthService:
    """
    Dependency to get an auth service instance.
    """
    return AuthService(profile_repo)

# Create annotated types for cleaner dependency injection
CurrentUser = Annotated[ProfileInDB, Depends(get_current_user)]
AuthServiceDep = Annotated[AuthService, Depends(get_auth_service)]
