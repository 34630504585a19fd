"""Leaderboard response models."""
from datetime import datetime

from pydantic import BaseModel


class LeaderboardEntry(BaseModel):
    rank: int
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

    class Config:
        from_attributes = True


class LeaderboardResponse(BaseModel):
    podium: list[LeaderboardEntry]
    entries: list[LeaderboardEntry]
    current_user: LeaderboardEntry | None = None
