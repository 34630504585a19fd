"""Pydantic models for authentication and profiles."""
from datetime import datetime

from pydantic import BaseModel, EmailStr, Field


class UserRegister(BaseModel):
    """User registration request."""

    username: str = Field(..., min_length=3, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=100)
    full_name: str | None = Field(None, max_length=100)


class UserLogin(BaseModel):
    """Login with username or email."""

    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int


class MessageResponse(BaseModel):
    message: str


class ProfileResponse(BaseModel):
    """User profile response."""

    id: int
    username: str
    email: str
    full_name: str | None
    display_name: str
    avatar_url: str | None
    dark_mode: bool
    is_active: bool
    created_at: datetime
    updated_at: datetime
    last_login_at: datetime | None = None

    class Config:
        from_attributes = True


class ProfileUpdateRequest(BaseModel):
    full_name: str | None = Field(None, max_length=100)
    avatar_url: str | None = Field(None, max_length=500)


class ThemePreferenceRequest(BaseModel):
    dark_mode: bool
