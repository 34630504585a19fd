from datetime import datetime, timedelta, timezone

from conftest import make_config
from testgenius.models.db.test_history import TestHistory
from testgenius.models.db.user import User
from testgenius.services.leaderboard_service import (
    compute_leaderboard,
    final_score,
    get_leaderboard,
)


def _user(db, username: str, joined_days_ago: int = 0) -> User:
    user = User(
        username=username,
        email=f"{username}@example.com",
        hashed_password="x",
        created_at=datetime.now(timezone.utc) - timedelta(days=joined_days_ago),
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def _history(db, user: User, *scores: float) -> None:
    for i, score in enumerate(scores):
        row = TestHistory(
            id=f"{user.username}-{i}",
            user_id=user.id,
            test_name=f"Test {i}",
            score_percentage=score,
            total_questions=10,
            correct_answers=int(score / 10),
            attempted_questions=10,
        )
        row.original_config = {"inputMethod": make_config().input_method.value}
        row.questions = []
        db.add(row)
    db.commit()


def test_final_score_weights_activity() -> None:
    assert final_score(100.0, 1) == 20.0
    assert final_score(80.0, 5) == 80.0
    assert final_score(80.0, 12) == 80.0


def test_ranking_rewards_consistency(db) -> None:
    lucky = _user(db, "lucky")
    steady = _user(db, "steady")
    idle = _user(db, "idle")
    _history(db, lucky, 100.0)
    _history(db, steady, 80.0, 70.0, 90.0, 80.0, 80.0)

    rows = compute_leaderboard(db)

    assert [r.username for r in rows] == ["steady", "lucky"]
    assert [r.rank for r in rows] == [1, 2]
    assert rows[0].tests_completed == 5
    assert rows[0].avg_score == 80.0
    assert rows[0].total_questions_attempted == 50
    assert all(r.user_id != idle.id for r in rows)


def test_ties_break_on_tests_then_join_date(db) -> None:
    newer = _user(db, "newer", joined_days_ago=1)
    older = _user(db, "older", joined_days_ago=30)
    busy = _user(db, "busy", joined_days_ago=0)
    _history(db, newer, 50.0, 50.0, 50.0, 50.0, 50.0)
    _history(db, older, 50.0, 50.0, 50.0, 50.0, 50.0)
    _history(db, busy, 50.0, 50.0, 50.0, 50.0, 50.0, 50.0)

    assert [r.username for r in compute_leaderboard(db)] == ["busy", "older", "newer"]


def test_get_leaderboard_reports_own_row_outside_table(db) -> None:
    users = [_user(db, f"user{i:02d}") for i in range(22)]
    for i, user in enumerate(users):
        _history(db, user, *([100.0 - i] * 5))

    top, own = get_leaderboard(db, users[21].id, limit=20)
    assert len(top) == 20
    assert own is not None
    assert own.rank == 22

    top, own = get_leaderboard(db, users[0].id)
    assert top[0].user_id == users[0].id
    assert own is None
