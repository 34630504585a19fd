"""Test-session routes: setup, generation, taking, results and history views."""
import json
from typing import Annotated, Any, Callable

from fastapi import APIRouter, Depends, HTTPException, UploadFile, status
from sqlalchemy.orm import Session as DbSession

from testgenius.database import get_db
from testgenius.dependencies.auth import get_current_user
from testgenius.dependencies.services import get_question_generator, get_session_manager
from testgenius.domain import TestHistoryEntry
from testgenius.errors import SessionError
from testgenius.models.db.user import User
from testgenius.models.session import (
    AnswerRequest,
    CorrectionRequest,
    GenerateRequest,
    NavigateRequest,
    QuestionIndexRequest,
    SetupRequest,
    StartRequest,
)
from testgenius.serialization import parse_answer_key
from testgenius.services import history_service
from testgenius.services.session_service import SessionManager, describe_session
from testgenius.session_state import QuestionGenerator, TestSession
from testgenius.utils import read_upload_limited, validate_id

router = APIRouter(prefix="/api/session", tags=["session"])

CurrentUser = Annotated[User, Depends(get_current_user)]
Manager = Annotated[SessionManager, Depends(get_session_manager)]


def _apply(
    manager: SessionManager, user_id: int, action: Callable[[TestSession], Any]
) -> dict[str, Any]:
    """Run one state-machine operation and return the resulting view."""
    try:
        with manager.locked(user_id) as session:
            action(session)
            return describe_session(session)
    except SessionError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc


def _history_entry(db: DbSession, user_id: int, entry_id: str) -> TestHistoryEntry:
    entry_id = validate_id("entry_id", entry_id)
    entry = history_service.get_entry(db, user_id, entry_id)
    if entry is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Test not found")
    return entry


@router.get("")
def get_state(current_user: CurrentUser, manager: Manager) -> dict[str, Any]:
    return manager.describe(current_user.id)


@router.post("/setup")
def setup(data: SetupRequest, current_user: CurrentUser, manager: Manager) -> dict[str, Any]:
    return _apply(manager, current_user.id, lambda s: s.navigate_to_setup(data.inputMethod))


@router.post("/generate")
def generate(
    data: GenerateRequest,
    current_user: CurrentUser,
    manager: Manager,
    generator: Annotated[QuestionGenerator, Depends(get_question_generator)],
) -> dict[str, Any]:
    """Generate questions and move to the confirmation screen.

    A failed generation is reported through the ``error`` field with the
    session back in ``setup``.
    """
    try:
        manager.generate(current_user.id, data.to_config(), generator)
    except SessionError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    return manager.describe(current_user.id)


@router.post("/edit")
def edit_settings(current_user: CurrentUser, manager: Manager) -> dict[str, Any]:
    return _apply(manager, current_user.id, lambda s: s.edit_settings())


@router.post("/start")
def start_test(
    current_user: CurrentUser, manager: Manager, data: StartRequest | None = None
) -> dict[str, Any]:
    name = data.testName if data else None
    return _apply(manager, current_user.id, lambda s: s.start_test(name))


@router.post("/answer")
def select_answer(data: AnswerRequest, current_user: CurrentUser, manager: Manager) -> dict[str, Any]:
    return _apply(
        manager,
        current_user.id,
        lambda s: s.select_answer(data.questionIndex, data.optionIndex),
    )


@router.post("/navigate")
def navigate(data: NavigateRequest, current_user: CurrentUser, manager: Manager) -> dict[str, Any]:
    return _apply(manager, current_user.id, lambda s: s.navigate_question(data.index))


@router.post("/mark")
def toggle_mark(
    data: QuestionIndexRequest, current_user: CurrentUser, manager: Manager
) -> dict[str, Any]:
    return _apply(manager, current_user.id, lambda s: s.toggle_mark_for_review(data.questionIndex))


@router.post("/clear")
def clear_selection(
    data: QuestionIndexRequest, current_user: CurrentUser, manager: Manager
) -> dict[str, Any]:
    return _apply(manager, current_user.id, lambda s: s.clear_selection(data.questionIndex))


@router.post("/submit")
def submit(current_user: CurrentUser, manager: Manager) -> dict[str, Any]:
    return _apply(manager, current_user.id, lambda s: s.submit())


@router.post("/review")
def review(current_user: CurrentUser, manager: Manager) -> dict[str, Any]:
    return _apply(manager, current_user.id, lambda s: s.review())


@router.post("/back")
def back_to_results(current_user: CurrentUser, manager: Manager) -> dict[str, Any]:
    return _apply(manager, current_user.id, lambda s: s.back_to_results())


@router.post("/review/correct")
def override_correct_answer(
    data: CorrectionRequest, current_user: CurrentUser, manager: Manager
) -> dict[str, Any]:
    """Dispute the AI's answer for one question during review."""
    try:
        manager.override_correct_answer(
            current_user.id, data.questionIndex, data.correctAnswerIndex
        )
    except SessionError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    return manager.describe(current_user.id)


@router.post("/corrections")
def apply_corrections(
    current_user: CurrentUser,
    manager: Manager,
    corrections: list[CorrectionRequest] | None = None,
) -> dict[str, Any]:
    """Apply review corrections (plus any sent in the body), re-score and save."""
    overrides = [(item.questionIndex, item.correctAnswerIndex) for item in corrections or []]
    return _apply(manager, current_user.id, lambda s: s.apply_corrections(overrides))


@router.post("/answer-key")
def upload_answer_key(
    file: UploadFile, current_user: CurrentUser, manager: Manager
) -> dict[str, Any]:
    """Apply an official answer key uploaded as a JSON file."""
    raw = read_upload_limited(file)
    try:
        entries = parse_answer_key(json.loads(raw.decode("utf-8")))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Failed to process answer key. Ensure it's a valid JSON file.",
        ) from exc
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)
        ) from exc

    applied = 0

    def _action(session: TestSession) -> None:
        nonlocal applied
        applied = session.apply_answer_key(entries)

    view = _apply(manager, current_user.id, _action)
    view["answerKeyApplied"] = applied
    return view


@router.post("/resume")
def resume(current_user: CurrentUser, manager: Manager) -> dict[str, Any]:
    return _apply(manager, current_user.id, lambda s: s.resume())


@router.post("/cancel")
def cancel_in_progress(current_user: CurrentUser, manager: Manager) -> dict[str, Any]:
    return _apply(manager, current_user.id, lambda s: s.cancel_in_progress())


@router.post("/new")
def start_new_test(current_user: CurrentUser, manager: Manager) -> dict[str, Any]:
    return _apply(manager, current_user.id, lambda s: s.start_new_test())


@router.post("/home")
def navigate_home(current_user: CurrentUser, manager: Manager) -> dict[str, Any]:
    return _apply(manager, current_user.id, lambda s: s.navigate_home())


@router.post("/history")
def navigate_to_history(current_user: CurrentUser, manager: Manager) -> dict[str, Any]:
    return _apply(manager, current_user.id, lambda s: s.navigate_to_history())


@router.post("/retake/{entry_id}")
def retake(
    entry_id: str,
    current_user: CurrentUser,
    manager: Manager,
    db: Annotated[DbSession, Depends(get_db)],
) -> dict[str, Any]:
    entry = _history_entry(db, current_user.id, entry_id)
    history = history_service.list_history(db, current_user.id)
    return _apply(manager, current_user.id, lambda s: s.retake(entry, history))


@router.post("/history/{entry_id}/score")
def view_score(
    entry_id: str,
    current_user: CurrentUser,
    manager: Manager,
    db: Annotated[DbSession, Depends(get_db)],
) -> dict[str, Any]:
    entry = _history_entry(db, current_user.id, entry_id)
    return _apply(manager, current_user.id, lambda s: s.view_score_from_history(entry))


@router.post("/history/{entry_id}/details")
def view_details(
    entry_id: str,
    current_user: CurrentUser,
    manager: Manager,
    db: Annotated[DbSession, Depends(get_db)],
) -> dict[str, Any]:
    entry = _history_entry(db, current_user.id, entry_id)
    return _apply(manager, current_user.id, lambda s: s.view_history_details(entry))
