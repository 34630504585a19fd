"""Leaderboard routes."""
from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session as DbSession

from testgenius.database import get_db
from testgenius.dependencies.auth import get_current_user
from testgenius.models.db.user import User
from testgenius.models.leaderboard import LeaderboardEntry, LeaderboardResponse
from testgenius.services.leaderboard_service import get_leaderboard

router = APIRouter(prefix="/api/leaderboard", tags=["leaderboard"])

PODIUM_SIZE = 3


@router.get("", response_model=LeaderboardResponse)
def leaderboard(
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[DbSession, Depends(get_db)],
) -> LeaderboardResponse:
    rows, own = get_leaderboard(db, current_user.id)
    entries = [LeaderboardEntry.model_validate(row) for row in rows]
    return LeaderboardResponse(
        podium=entries[:PODIUM_SIZE],
        entries=entries,
        current_user=LeaderboardEntry.model_validate(own) if own else None,
    )
