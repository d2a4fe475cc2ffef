"""
Authentication API Endpoints

- User registration
- Login (email + password → bearer token)
- Current user profile
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from backend.dependencies import (
    AuthenticatedUser,
    get_config_dependency,
    get_current_user,
    get_user_store_dependency,
)
from backend.models.auth import AuthResponse, LoginRequest, RegisterRequest, UserInfo, UserResponse
from src.auth.security import create_token, hash_password, verify_password
from src.storage.models import User
from src.storage.users import UserAlreadyExistsError, UserStore
from src.utilities.config import ClawConfig

logger = logging.getLogger(__name__)

router = APIRouter()


def _user_info(user: User) -> UserInfo:
    return UserInfo(id=user.user_id, username=user.username, email=user.email, created_at=user.created_at)


@router.post(
    "/api/auth/register",
    response_model=AuthResponse,
    summary="Register a new user",
    description="Create an account and receive a bearer token",
    tags=["Authentication"],
    status_code=status.HTTP_201_CREATED,
)
async def register(
    request: RegisterRequest,
    users: UserStore = Depends(get_user_store_dependency),
    config: ClawConfig = Depends(get_config_dependency),
):
    """
    Register a new user.

    Args:
        request: Username, email and password
        users: User store (injected)
        config: Configuration instance (injected)

    Returns:
        AuthResponse with a token for the new user

    Raises:
        HTTPException: 400 if the email is already registered
    """
    try:
        user = users.create_user(
            username=request.username,
            email=request.email,
            password_hash=hash_password(request.password),
        )
        token = create_token(user.user_id, user.username, config.auth)
        return AuthResponse(token=token, user=_user_info(user))

    except UserAlreadyExistsError:
        logger.info(f"Registration rejected, email already in use: {request.email}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="User already exists",
        )
    except Exception as e:
        logger.error(f"Failed to register user: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to create user: {str(e)}",
        )


@router.post(
    "/api/auth/login",
    response_model=AuthResponse,
    summary="Log in",
    description="Exchange email and password for a bearer token",
    tags=["Authentication"],
)
async def login(
    request: LoginRequest,
    users: UserStore = Depends(get_user_store_dependency),
    config: ClawConfig = Depends(get_config_dependency),
):
    """
    Authenticate with email and password.

    Raises:
        HTTPException: 401 if the credentials do not match
    """
    user = users.find_by_email(request.email)
    if user is None or not verify_password(request.password, user.password_hash):
        logger.info(f"Failed login for {request.email}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    token = create_token(user.user_id, user.username, config.auth)
    logger.info(f"User logged in: {user.user_id}")
    return AuthResponse(token=token, user=_user_info(user))


@router.get(
    "/api/auth/me",
    response_model=UserResponse,
    summary="Current user",
    description="Profile of the user the bearer token was issued for",
    tags=["Authentication"],
)
async def me(
    current: AuthenticatedUser = Depends(get_current_user),
    users: UserStore = Depends(get_user_store_dependency),
):
    user = users.find_by_id(current.user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return UserResponse(user=_user_info(user))
