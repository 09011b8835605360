from fastapi import HTTPException, status
from typing import Optional
from datetime import datetime, timezone, timedelta
from pymongo.errors import DuplicateKeyError
import jwt

from utils.security import get_password_hash, verify_password
from repos.profile_repo import ProfileRepository
from mappers.profiles_mapper import create_profile_dict, profile_db_to_response
from models.auth_model import SignUpRequest, SignUpResponse, Token, TokenData
from logger.logger import logger
from config import (
    JWT_SECRET_KEY,
    JWT_ALGORITHM,
    JWT_ACCESS_TOKEN_EXPIRE_MINUTES
)

class AuthService:
    """
    Service layer for authentication-related operations
    Handles sign up, login, token creation and presence on login/logout
    """

    def __init__(self, profile_repository: ProfileRepository):
        self.profile_repo = profile_repository

    async def sign_up(self, request: SignUpRequest) -> SignUpResponse:
        """
        Create an account and its profile.
        A guest profile created earlier for the same phone number is claimed,
        so chats started before the contact joined are kept.
        """
        if await self.profile_repo.find_by_email(request.email):
            return SignUpResponse(success=False, message="This email is already registered")

        profile_dict = create_profile_dict(request, get_password_hash(request.password))

        profile = None
        if request.phone_number:
            existing = await self.profile_repo.find_by_phone_number(request.phone_number)
            if existing and not existing.is_guest:
                return SignUpResponse(success=False, message="This phone number is already registered")
            if existing:
                profile_dict.pop("created_at", None)
                profile = await self.profile_repo.claim_guest_profile(request.phone_number, profile_dict)
                logger.info(f"Guest profile {existing.id} claimed on sign up")

        if profile is None:
            try:
                profile = await self.profile_repo.create_profile(profile_dict)
            except DuplicateKeyError:
                return SignUpResponse(success=False, message="This email is already registered")

        return SignUpResponse(
            success=True,
            message="Account created successfully",
            profile=profile_db_to_response(profile)
        )

    async def generate_user_token(self, email: str, password: str) -> Token:
        """
        Authenticate with email and password
        Returns an access token and marks the profile online
        """
        profile_db = await self.profile_repo.find_by_email(email)

        if not profile_db or profile_db.is_guest or not profile_db.password_hash:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid email or password",
                headers={"WWW-Authenticate": "Bearer"},
            )

        # Verify password
        if not verify_password(password, profile_db.password_hash):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid email or password",
                headers={"WWW-Authenticate": "Bearer"},
            )

        access_token = self.create_access_token(
            TokenData(email=profile_db.email, user_id=profile_db.id),
            expires_delta=timedelta(minutes=JWT_ACCESS_TOKEN_EXPIRE_MINUTES)
        )

        profile_db = await self.profile_repo.update_presence(profile_db.id, True) or profile_db

        return Token(
            access_token=access_token,
            token_type="bearer",
            profile=profile_db_to_response(profile_db)
        )

    async def sign_out(self, profile_id: str) -> None:
        """Mark the profile offline"""
        await self.profile_repo.update_presence(profile_id, False)

    @staticmethod
    def create_access_token(data: TokenData, expires_delta: Optional[timedelta] = None) -> str:
        """Create a JWT access token."""
        if expires_delta:
            expire = datetime.now(timezone.utc) + expires_delta
        else:
            expire = datetime.now(timezone.utc) + timedelta(hours=15)

        token_data = {
            "sub": data.email,
            "id": data.user_id,
            "exp": expire
        }
        return jwt.encode(token_data, JWT_SECRET_KEY, algorithm=JWT_ALGORITHM)

    @staticmethod
    def decode_access_token(token: str) -> Optional[TokenData]:
        """Decode a JWT access token, None when it is invalid or expired"""
        try:
            payload = jwt.decode(token, JWT_SECRET_KEY, algorithms=[JWT_ALGORITHM])
        except jwt.PyJWTError:
            return None
        if payload.get("id") is None:
            return None
        return TokenData(email=payload.get("sub"), user_id=payload.get("id"))
