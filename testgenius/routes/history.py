"""Completed-test history routes."""
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session as DbSession

from testgenius.database import get_db
from testgenius.dependencies.auth import get_current_user
from testgenius.models.auth import MessageResponse
from testgenius.models.db.user import User
from testgenius.serialization import serialize_history_entry
from testgenius.services import history_service
from testgenius.utils import validate_id

router = APIRouter(prefix="/api/history", tags=["history"])


@router.get("")
def list_history(
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[DbSession, Depends(get_db)],
) -> list[dict[str, Any]]:
    """All of the user's tests, newest first."""
    return [
        serialize_history_entry(entry)
        for entry in history_service.list_history(db, current_user.id)
    ]


@router.get("/{entry_id}")
def get_history_entry(
    entry_id: str,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[DbSession, Depends(get_db)],
) -> dict[str, Any]:
    entry = history_service.get_entry(db, current_user.id, validate_id("entry_id", entry_id))
    if entry is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Test not found")
    return serialize_history_entry(entry)


@router.delete("/{entry_id}", response_model=MessageResponse)
def delete_history_entry(
    entry_id: str,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[DbSession, Depends(get_db)],
) -> MessageResponse:
    if not history_service.delete_test(db, current_user.id, validate_id("entry_id", entry_id)):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Test not found")
    return MessageResponse(message="Test deleted")


@router.delete("", response_model=MessageResponse)
def clear_history(
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[DbSession, Depends(get_db)],
) -> MessageResponse:
    if not history_service.clear_history(db, current_user.id):
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to clear history",
        )
    return MessageResponse(message="History cleared")
