"""Explanations and the follow-up chat for reviewed questions."""
from typing import Annotated, Any, Iterator

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import StreamingResponse

from testgenius.dependencies.auth import get_current_user
from testgenius.dependencies.services import get_gemini_client, get_session_manager
from testgenius.errors import AIServiceError, SessionError
from testgenius.gemini_client import GeminiClient
from testgenius.models.db.user import User
from testgenius.models.session import ChatMessageRequest
from testgenius.services.explanation_service import FollowUpChat
from testgenius.services.session_service import SessionManager

router = APIRouter(prefix="/api/session/questions", tags=["review"])

CurrentUser = Annotated[User, Depends(get_current_user)]
Manager = Annotated[SessionManager, Depends(get_session_manager)]
Client = Annotated[GeminiClient, Depends(get_gemini_client)]


def _ai_error(exc: AIServiceError) -> HTTPException:
    if exc.is_rate_limited:
        return HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail=str(exc))
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc))


def _chat_view(chat: FollowUpChat) -> dict[str, Any]:
    return {
        "messages": [
            {"id": m.id, "sender": m.sender, "text": m.text, "error": m.error}
            for m in chat.messages
        ]
    }


@router.post("/{index}/explanation")
def explain(index: int, current_user: CurrentUser, manager: Manager, client: Client) -> dict[str, str]:
    try:
        explanation = manager.explain(current_user.id, index, client)
    except SessionError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except AIServiceError as exc:
        raise _ai_error(exc) from exc
    return {"explanation": explanation}


@router.post("/{index}/chat")
def open_chat(index: int, current_user: CurrentUser, manager: Manager, client: Client) -> dict[str, Any]:
    """Start a fresh follow-up chat about one question."""
    try:
        chat = manager.open_chat(current_user.id, index, client)
    except SessionError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    return _chat_view(chat)


@router.get("/{index}/chat")
def get_chat(index: int, current_user: CurrentUser, manager: Manager) -> dict[str, Any]:
    try:
        chat = manager.current_chat(current_user.id, index)
    except SessionError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return _chat_view(chat)


@router.post("/{index}/chat/messages")
def send_chat_message(
    index: int,
    data: ChatMessageRequest,
    current_user: CurrentUser,
    manager: Manager,
) -> StreamingResponse:
    """Stream the assistant's reply as plain text chunks."""
    try:
        stream = manager.chat_stream(current_user.id, index, data.message.strip())
        # pull the first chunk so AI errors still map to a status code
        first = next(stream, "")
    except SessionError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except AIServiceError as exc:
        raise _ai_error(exc) from exc

    def _body() -> Iterator[str]:
        if first:
            yield first
        try:
            yield from stream
        except AIServiceError:
            # FollowUpChat has already logged it and added an error message
            return

    return StreamingResponse(_body(), media_type="text/plain; charset=utf-8")
