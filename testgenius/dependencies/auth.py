"""Authentication dependencies for FastAPI."""
from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session as DbSession

from testgenius.database import get_db
from testgenius.models.db.user import User
from testgenius.services.auth_service import (
    extend_session,
    get_active_session,
    get_user_by_id,
    verify_token,
)

security = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    db: Annotated[DbSession, Depends(get_db)],
) -> User:
    """Get the current authenticated user.

    Raises:
        HTTPException: 401 if not authenticated or token is invalid.
    """
    if credentials is None:
        raise _unauthorized("Not authenticated")

    payload = verify_token(credentials.credentials)
    if payload is None:
        raise _unauthorized("Invalid or expired token")

    jti = payload.get("jti")
    if not jti:
        raise _unauthorized("Invalid token payload")
    session = get_active_session(db, jti)
    if session is None:
        raise _unauthorized("Session expired or invalidated")
    extend_session(db, session)

    user_id = payload.get("sub")
    if user_id is None:
        raise _unauthorized("Invalid token payload")

    user = get_user_by_id(db, int(user_id))
    if user is None:
        raise _unauthorized("User not found")
    if not user.is_active:
        raise _unauthorized("User is inactive")
    return user


def get_token_jti(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> str | None:
    """JTI of the presented token, used by logout."""
    if credentials is None:
        return None
    payload = verify_token(credentials.credentials)
    return payload.get("jti") if payload else None
