"""FastAPI dependencies."""
from testgenius.dependencies.auth import get_current_user, get_token_jti
from testgenius.dependencies.services import (
    get_gemini_client,
    get_question_generator,
    get_session_manager,
)

__all__ = [
    "get_current_user",
    "get_gemini_client",
    "get_question_generator",
    "get_session_manager",
    "get_token_jti",
]
