"""Pydantic models."""
from testgenius.models.auth import (
    MessageResponse,
    ProfileResponse,
    ProfileUpdateRequest,
    ThemePreferenceRequest,
    TokenResponse,
    UserLogin,
    UserRegister,
)
from testgenius.models.leaderboard import LeaderboardEntry, LeaderboardResponse
from testgenius.models.session import (
    AnswerRequest,
    ChatMessageRequest,
    CorrectionRequest,
    GenerateRequest,
    NavigateRequest,
    QuestionIndexRequest,
    SetupRequest,
    StartRequest,
)

__all__ = [
    "AnswerRequest",
    "ChatMessageRequest",
    "CorrectionRequest",
    "GenerateRequest",
    "LeaderboardEntry",
    "LeaderboardResponse",
    "MessageResponse",
    "NavigateRequest",
    "ProfileResponse",
    "ProfileUpdateRequest",
    "QuestionIndexRequest",
    "SetupRequest",
    "StartRequest",
    "ThemePreferenceRequest",
    "TokenResponse",
    "UserLogin",
    "UserRegister",
]
