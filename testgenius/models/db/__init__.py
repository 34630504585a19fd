"""Database models."""
from testgenius.models.db.user import User, AuthSession
from testgenius.models.db.test_history import TestHistory

__all__ = [
    "User",
    "AuthSession",
    "TestHistory",
]
