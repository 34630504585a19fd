"""Leaderboard statistics aggregated from test history."""
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.orm import Session as DbSession

from testgenius.config import LEADERBOARD_LIMIT, LEADERBOARD_TABLE_SIZE
from testgenius.models.db.test_history import TestHistory
from testgenius.models.db.user import User

# Full credit for the average score needs this many completed tests.
TESTS_FOR_FULL_WEIGHT = 5


@dataclass
class LeaderboardRow:
    user_id: int
    username: str
    email: str
    full_name: str | None
    avatar_url: str | None
    tests_completed: int
    avg_score: float
    total_questions_attempted: int
    last_test_date: datetime | None
    final_score: float
    rank: int = 0


def final_score(avg_score: float, tests_completed: int) -> float:
    """Average score weighted by activity, so a single lucky test cannot top the board."""
    weight = min(tests_completed, TESTS_FOR_FULL_WEIGHT) / TESTS_FOR_FULL_WEIGHT
    return round(avg_score * weight, 2)


def compute_leaderboard(db: DbSession) -> list[LeaderboardRow]:
    """Every user with at least one completed test, ranked."""
    stmt = (
        select(
            User.id,
            User.username,
            User.email,
            User.full_name,
            User.avatar_url,
            User.created_at,
            func.count(TestHistory.id),
            func.avg(TestHistory.score_percentage),
            func.sum(TestHistory.attempted_questions),
            func.max(TestHistory.date_completed),
        )
        .join(TestHistory, TestHistory.user_id == User.id)
        .where(User.is_active.is_(True))
        .group_by(User.id)
    )
    rows: list[tuple[LeaderboardRow, datetime]] = []
    for (
        user_id, username, email, full_name, avatar_url, created_at,
        count, avg, attempted, last_date,
    ) in db.execute(stmt).all():
        avg_score = round(float(avg or 0.0), 2)
        rows.append(
            (
                LeaderboardRow(
                    user_id=user_id,
                    username=username,
                    email=email,
                    full_name=full_name,
                    avatar_url=avatar_url,
                    tests_completed=int(count),
                    avg_score=avg_score,
                    total_questions_attempted=int(attempted or 0),
                    last_test_date=last_date,
                    final_score=final_score(avg_score, int(count)),
                ),
                created_at,
            )
        )

    rows.sort(key=lambda item: (-item[0].final_score, -item[0].tests_completed, item[1]))
    ranked = []
    for position, (row, _) in enumerate(rows, start=1):
        row.rank = position
        ranked.append(row)
    return ranked


def get_leaderboard(
    db: DbSession, user_id: int, limit: int = LEADERBOARD_LIMIT
) -> tuple[list[LeaderboardRow], LeaderboardRow | None]:
    """
    Top rows plus the caller's own row.

    Returns:
        Tuple of (top rows, caller row if ranked outside the table, else None)
    """
    ranked = compute_leaderboard(db)
    own = next((row for row in ranked if row.user_id == user_id), None)
    if own is not None and own.rank <= LEADERBOARD_TABLE_SIZE:
        own = None
    return ranked[:limit], own
