"""
Per-user test sessions held in memory.

Each user gets one ``TestSession`` guarded by its own lock. While a timed test
is in progress a ``SessionTimer`` thread ticks the session once per second.
Slow AI calls (generation, explanations) run outside the lock so the user can
still poll the session state meanwhile.
"""
import copy
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator

from testgenius.domain import PendingTestConfig, Question, TestPhase
from testgenius.errors import AIServiceError, DocumentError, GenerationError, SessionError
from testgenius.gemini_client import GeminiClient
from testgenius.scoring import score_questions
from testgenius.serialization import (
    serialize_config,
    serialize_question,
    serialize_questions,
)
from testgenius.services.explanation_service import FollowUpChat, generate_explanation
from testgenius.services.history_service import DatabaseHistoryRecorder
from testgenius.services.snapshot_service import UserSnapshotStore
from testgenius.session_state import HistoryRecorder, QuestionGenerator, SnapshotStore, TestSession
from testgenius.timer import TICK_INTERVAL_SECONDS, SessionTimer, format_time

logger = logging.getLogger(__name__)


@dataclass
class _UserSlot:
    session: TestSession
    lock: threading.RLock = field(default_factory=threading.RLock)
    timer: SessionTimer | None = None
    chat: FollowUpChat | None = None
    chat_question_index: int | None = None


class SessionManager:
    """Owns every user's session, timer and follow-up chat."""

    def __init__(
        self,
        recorder_factory: Callable[[int], HistoryRecorder] = DatabaseHistoryRecorder,
        store_factory: Callable[[int], SnapshotStore] = UserSnapshotStore,
        tick_interval: float = TICK_INTERVAL_SECONDS,
    ) -> None:
        self._recorder_factory = recorder_factory
        self._store_factory = store_factory
        self._tick_interval = tick_interval
        self._slots: dict[int, _UserSlot] = {}
        self._lock = threading.Lock()

    def _slot(self, user_id: int) -> _UserSlot:
        with self._lock:
            slot = self._slots.get(user_id)
            if slot is None:
                session = TestSession(
                    recorder=self._recorder_factory(user_id),
                    store=self._store_factory(user_id),
                )
                slot = _UserSlot(session=session)
                self._slots[user_id] = slot
            return slot

    @contextmanager
    def locked(self, user_id: int) -> Iterator[TestSession]:
        """Run session operations under the user's lock, then sync the timer."""
        slot = self._slot(user_id)
        with slot.lock:
            try:
                yield slot.session
            finally:
                self._sync_timer(user_id, slot)
                if slot.session.phase != TestPhase.REVIEW:
                    slot.chat = None
                    slot.chat_question_index = None

    # ------------------------------------------------------------------
    # timer

    def _sync_timer(self, user_id: int, slot: _UserSlot) -> None:
        session = slot.session
        should_run = (
            session.phase == TestPhase.IN_PROGRESS
            and session.is_timed
            and (session.time_remaining_seconds or 0) > 0
        )
        if should_run and slot.timer is None:
            self._start_timer(user_id, slot)
        elif not should_run and slot.timer is not None:
            slot.timer.cancel()
            slot.timer = None

    def _start_timer(self, user_id: int, slot: _UserSlot) -> None:
        timer: SessionTimer | None = None

        def on_tick() -> bool:
            with slot.lock:
                if slot.timer is not timer:
                    return False
                keep_going = slot.session.tick()
                if not keep_going:
                    slot.timer = None
                return keep_going

        timer = SessionTimer(on_tick, interval=self._tick_interval, name=f"session_timer_{user_id}")
        slot.timer = timer
        timer.start()

    def shutdown(self) -> None:
        with self._lock:
            slots = list(self._slots.values())
        for slot in slots:
            with slot.lock:
                if slot.timer is not None:
                    slot.timer.cancel()
                    slot.timer = None

    # ------------------------------------------------------------------
    # generation

    def generate(
        self, user_id: int, config: PendingTestConfig, generator: QuestionGenerator
    ) -> None:
        """Generate a test; the AI call happens without holding the session lock."""
        with self.locked(user_id) as session:
            regenerate = session.begin_generation(config)
            pending = session.config

        questions: list[Question] | None = None
        error: str | None = None
        if regenerate:
            try:
                questions = generator.generate_for_config(pending)
            except (GenerationError, DocumentError, AIServiceError) as exc:
                error = str(exc)

        with self.locked(user_id) as session:
            if session.phase != TestPhase.GENERATING:
                logger.info("Discarding generation result; session left the generating phase")
                session.is_loading = False
                return
            if error is not None:
                session.fail_generation(error)
            else:
                session.complete_generation(questions)

    # ------------------------------------------------------------------
    # explanations and chat

    def _review_question(self, session: TestSession, index: int) -> Question:
        if session.phase not in (TestPhase.REVIEW, TestPhase.VIEW_HISTORY_DETAILS):
            raise SessionError("Explanations are only available while reviewing a test")
        if not 0 <= index < len(session.review_questions):
            raise SessionError(f"Question index {index} is out of range")
        return copy.deepcopy(session.review_questions[index])

    def explain(self, user_id: int, index: int, client: GeminiClient) -> str:
        """Return the question's explanation, generating it once if missing."""
        with self.locked(user_id) as session:
            question = self._review_question(session, index)
        if question.explanation:
            return question.explanation

        explanation = generate_explanation(client, question)
        with self.locked(user_id) as session:
            reviewing = session.phase in (TestPhase.REVIEW, TestPhase.VIEW_HISTORY_DETAILS)
            if reviewing and index < len(session.review_questions):
                current = session.review_questions[index]
                # the answer may have been overridden while the AI was busy
                if (
                    current.id == question.id
                    and current.correct_answer_index == question.correct_answer_index
                ):
                    session.set_explanation(index, explanation)
        return explanation

    def override_correct_answer(self, user_id: int, index: int, option_index: int) -> None:
        slot = self._slot(user_id)
        with self.locked(user_id) as session:
            session.override_correct_answer(index, option_index)
            if slot.chat_question_index == index:
                slot.chat = None
                slot.chat_question_index = None

    def open_chat(self, user_id: int, index: int, client: GeminiClient) -> FollowUpChat:
        slot = self._slot(user_id)
        with self.locked(user_id) as session:
            if session.phase != TestPhase.REVIEW:
                raise SessionError("Follow-up chat is only available while reviewing a test")
            question = self._review_question(session, index)
            slot.chat = FollowUpChat(client, question, question.explanation)
            slot.chat_question_index = index
            return slot.chat

    def current_chat(self, user_id: int, index: int) -> FollowUpChat:
        slot = self._slot(user_id)
        with slot.lock:
            if slot.chat is None or slot.chat_question_index != index:
                raise SessionError("No chat is open for this question")
            return slot.chat

    def chat_stream(self, user_id: int, index: int, message: str) -> Iterator[str]:
        return self.current_chat(user_id, index).send_message_stream(message)

    # ------------------------------------------------------------------
    # views

    def describe(self, user_id: int) -> dict[str, Any]:
        with self.locked(user_id) as session:
            session.refresh_saved_progress()
            return describe_session(session)


def _question_view(question: Question, hide_answer: bool) -> dict[str, Any]:
    payload = serialize_question(question)
    if hide_answer:
        payload.pop("correctAnswerIndex", None)
        payload.pop("explanation", None)
    return payload


def describe_session(session: TestSession) -> dict[str, Any]:
    """camelCase view of the session for the client to render."""
    phase = session.phase
    in_progress = phase == TestPhase.IN_PROGRESS
    view: dict[str, Any] = {
        "phase": phase.value,
        "error": session.error,
        "isLoading": session.is_loading,
        "currentInputMethod": (
            session.current_input_method.value if session.current_input_method else None
        ),
        "testName": session.current_test_name,
        "sessionId": session.session_id,
        "isRetakeMode": session.is_retake_mode,
        "isViewingFromHistory": session.is_viewing_from_history,
        "hasSavedProgress": session.saved_in_progress is not None,
        "config": serialize_config(session.config) if session.config else None,
        "currentQuestionIndex": session.current_question_index,
        "timeRemainingSeconds": session.time_remaining_seconds if session.is_timed else None,
        "testDurationSeconds": session.test_duration_seconds if session.is_timed else None,
        "timeRemaining": format_time(session.time_remaining_seconds if session.is_timed else None),
        "questionCount": len(session.questions),
        "questions": [_question_view(q, hide_answer=in_progress) for q in session.questions]
        if phase in (TestPhase.IN_PROGRESS, TestPhase.COMPLETED)
        else [],
    }
    if phase in (TestPhase.REVIEW, TestPhase.VIEW_HISTORY_DETAILS):
        view["reviewQuestions"] = serialize_questions(session.review_questions)
    if phase == TestPhase.VIEW_HISTORY_DETAILS and session.viewing_history_entry is not None:
        view["historyEntryId"] = session.viewing_history_entry.id
        view["testName"] = session.viewing_history_entry.test_name
    if phase == TestPhase.COMPLETED and session.config is not None:
        summary = score_questions(session.questions, session.config.negative_marking)
        view["score"] = {
            "totalQuestions": summary.total,
            "attempted": summary.attempted,
            "notAttempted": summary.not_attempted,
            "correct": summary.correct,
            "incorrect": summary.incorrect,
            "rawPercentage": round(summary.raw_percentage, 2),
            "finalPercentage": round(summary.final_percentage, 2),
            "penalty": round(summary.penalty, 2),
            "negativeMarking": session.config.negative_marking.enabled,
        }
    return view
