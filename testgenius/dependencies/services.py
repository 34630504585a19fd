"""Shared service objects handed to routes."""
from fastapi import HTTPException, Request, status

from testgenius.errors import AIServiceError
from testgenius.gemini_client import GeminiClient
from testgenius.services.generation_service import GeminiQuestionGenerator
from testgenius.services.session_service import SessionManager
from testgenius.session_state import QuestionGenerator


def get_session_manager(request: Request) -> SessionManager:
    return request.app.state.session_manager


def get_gemini_client(request: Request) -> GeminiClient:
    """The application's AI client; 503 when no API key is configured."""
    client = getattr(request.app.state, "gemini_client", None)
    if client is not None:
        return client
    try:
        client = GeminiClient()
    except AIServiceError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)
        ) from exc
    request.app.state.gemini_client = client
    return client


def get_question_generator(request: Request) -> QuestionGenerator:
    generator = getattr(request.app.state, "question_generator", None)
    if generator is not None:
        return generator
    return GeminiQuestionGenerator(get_gemini_client(request))
