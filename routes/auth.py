from fastapi import APIRouter, HTTPException, status, Form

from models.auth_model import SignUpRequest, SignUpResponse, Token
from dependencies.auth import AuthServiceDep, CurrentUser
from logger.logger import logger

router = APIRouter()

@router.post("/signup", response_model=SignUpResponse)
async def sign_up(request: SignUpRequest, auth_service: AuthServiceDep):
    """
    Create an account and its profile
    """
    try:
        result = await auth_service.sign_up(request)
        if not result.success:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=result.message)
        return result
    except HTTPException:
        # Re-raise HTTP exceptions to preserve status code and detail
        raise
    except Exception as e:
        logger.error(f"Sign up failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create user profile"
        )

@router.post("/token", response_model=Token)
async def login_for_access_token(
    auth_service: AuthServiceDep,
    username: str = Form(...),
    password: str = Form(...)
):
    """
    Authenticate with email (sent as the OAuth2 username) and password
    """
    try:
        return await auth_service.generate_user_token(username, password)
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Authentication error: {str(e)}"
        )

@router.post("/logout")
async def logout(current_user: CurrentUser, auth_service: AuthServiceDep):
    """Mark the current user offline"""
    await auth_service.sign_out(current_user.id)
    return {"status": "success"}
