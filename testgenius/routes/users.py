"""User profile routes."""
from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session as DbSession

from testgenius.database import get_db
from testgenius.dependencies.auth import get_current_user
from testgenius.models.auth import (
    ProfileResponse,
    ProfileUpdateRequest,
    ThemePreferenceRequest,
)
from testgenius.models.db.user import User
from testgenius.services.auth_service import update_profile

router = APIRouter(prefix="/api/users", tags=["users"])


@router.get("/me/profile", response_model=ProfileResponse)
async def get_profile(
    current_user: Annotated[User, Depends(get_current_user)],
) -> User:
    return current_user


@router.patch("/me/profile", response_model=ProfileResponse)
async def patch_profile(
    data: ProfileUpdateRequest,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[DbSession, Depends(get_db)],
) -> User:
    """Update full name and/or avatar URL. An empty string clears the field."""
    return update_profile(
        db, current_user, full_name=data.full_name, avatar_url=data.avatar_url
    )


@router.put("/me/theme", response_model=ProfileResponse)
async def set_theme(
    data: ThemePreferenceRequest,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[DbSession, Depends(get_db)],
) -> User:
    return update_profile(db, current_user, dark_mode=data.dark_mode)
