"""Authentication routes."""
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.orm import Session as DbSession

from testgenius.config import ACCESS_TOKEN_EXPIRE_MINUTES
from testgenius.database import get_db
from testgenius.dependencies.auth import get_current_user, get_token_jti, security
from testgenius.models.auth import (
    MessageResponse,
    ProfileResponse,
    TokenResponse,
    UserLogin,
    UserRegister,
)
from testgenius.models.db.user import User
from testgenius.services.auth_service import (
    authenticate_user,
    create_access_token,
    create_session,
    create_user,
    get_user_by_email,
    get_user_by_id,
    get_active_session,
    get_user_by_username,
    invalidate_session,
    mark_login,
    verify_token,
)

router = APIRouter(prefix="/api/auth", tags=["auth"])


def _issue_token(db: DbSession, user_id: int) -> TokenResponse:
    token, jti, expires_at = create_access_token(user_id)
    create_session(db, user_id, jti, expires_at)
    return TokenResponse(
        access_token=token,
        token_type="bearer",
        expires_in=ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )


@router.post("/register", response_model=ProfileResponse, status_code=status.HTTP_201_CREATED)
async def register(
    data: UserRegister,
    db: Annotated[DbSession, Depends(get_db)],
) -> User:
    if get_user_by_username(db, data.username):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Username already registered",
        )
    if get_user_by_email(db, data.email):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email already registered",
        )
    return create_user(db, data.username, data.email, data.password, data.full_name)


@router.post("/login", response_model=TokenResponse)
async def login(
    data: UserLogin,
    db: Annotated[DbSession, Depends(get_db)],
) -> TokenResponse:
    """Login with username or email and get a JWT token."""
    user = authenticate_user(db, data.username, data.password)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
        )
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User is inactive",
        )
    mark_login(db, user)
    return _issue_token(db, user.id)


@router.post("/logout", response_model=MessageResponse)
async def logout(
    jti: Annotated[str | None, Depends(get_token_jti)],
    db: Annotated[DbSession, Depends(get_db)],
) -> MessageResponse:
    if jti is None:
        return MessageResponse(message="Already logged out")
    invalidate_session(db, jti)
    return MessageResponse(message="Logged out successfully")


@router.get("/me", response_model=ProfileResponse)
async def get_me(
    current_user: Annotated[User, Depends(get_current_user)],
) -> User:
    return current_user


@router.post("/refresh", response_model=TokenResponse)
async def refresh_token(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    db: Annotated[DbSession, Depends(get_db)],
) -> TokenResponse:
    """Swap a still-valid token for a fresh one."""
    payload = verify_token(credentials.credentials) if credentials else None
    jti = payload.get("jti") if payload else None
    if (
        payload is None
        or payload.get("sub") is None
        or not jti
        or get_active_session(db, jti) is None
    ):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    user = get_user_by_id(db, int(payload["sub"]))
    if user is None or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
            headers={"WWW-Authenticate": "Bearer"},
        )
    invalidate_session(db, jti)
    return _issue_token(db, user.id)
