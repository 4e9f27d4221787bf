"""
Authentication API endpoints.
"""

from fastapi import APIRouter, HTTPException, status, Depends
from datetime import timedelta

from ..models import UserCreate, UserLogin, Token, User
from ..config import settings
from ..middleware.rate_limiter import auth_limiter, create_account_limiter, general_limiter
from ..storage import UserStorage, UsernameTakenError
from ..utils.auth import (
    authenticate_user,
    create_access_token,
    create_user_in_db,
    get_current_user_id,
    get_password_hash,
)
from .deps import get_user_storage

router = APIRouter(prefix="/auth", tags=["authentication"], dependencies=[Depends(general_limiter)])


def _public_user(user: dict) -> User:
    """Strip the password hash before returning a user."""
    return User(**{k: v for k, v in user.items() if k != 'hashed_password'})


@router.post(
    "/register",
    response_model=User,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(create_account_limiter)],
)
async def register(user_data: UserCreate, user_storage: UserStorage = Depends(get_user_storage)):
    """
    Register a new user.

    Args:
        user_data: User registration data

    Returns:
        User: Created user object

    Raises:
        HTTPException: If username already exists
    """
    try:
        user = await create_user_in_db(
            user_storage,
            username=user_data.username,
            hashed_password=get_password_hash(user_data.password),
            email=user_data.email,
            full_name=user_data.full_name,
        )
    except UsernameTakenError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Username already registered"
        )

    return _public_user(user)


@router.post("/login", response_model=Token, dependencies=[Depends(auth_limiter)])
async def login(credentials: UserLogin, user_storage: UserStorage = Depends(get_user_storage)):
    """
    Login and get access token.

    Raises:
        HTTPException: If authentication fails
    """
    user = await authenticate_user(user_storage, credentials.username, credentials.password)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect username or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    access_token = create_access_token(
        data={"sub": user["user_id"], "username": user["username"]},
        expires_delta=timedelta(minutes=settings.access_token_expire_minutes)
    )
    return Token(access_token=access_token, token_type="bearer")


@router.get("/me", response_model=User)
async def get_current_user(
    user_id: str = Depends(get_current_user_id),
    user_storage: UserStorage = Depends(get_user_storage),
):
    """
    Get current user information.

    Raises:
        HTTPException: If user not found
    """
    user = await user_storage.get_user(user_id)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found"
        )
    return _public_user(user)
