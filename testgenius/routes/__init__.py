"""API route modules."""
from testgenius.routes import auth, extract, history, leaderboard, review, session, users

__all__ = ["auth", "extract", "history", "leaderboard", "review", "session", "users"]
