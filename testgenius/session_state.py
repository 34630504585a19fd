"""
Test-session state machine.

A single ``TestPhase`` value decides which screen the client renders:
home -> setup -> generating -> confirmation -> in_progress -> completed ->
review, plus history and history-details views.

The session talks to the outside world through three collaborators:
a question generator (AI), a history recorder (database) and a snapshot
store (the durable in-progress copy used for resume).
"""
from __future__ import annotations

import copy
import logging
import uuid
from dataclasses import replace
from typing import Iterable, Protocol

from testgenius.domain import (
    AnswerKeyEntry,
    InProgressTestState,
    PendingTestConfig,
    Question,
    QuestionStatus,
    TestHistoryEntry,
    TestInputMethod,
    TestPhase,
)
from testgenius.errors import GenerationError, SessionError

logger = logging.getLogger(__name__)

RETAKE_SEPARATOR = " - Retake "
UNTITLED_TEST_NAME = "Untitled Test"


class QuestionGenerator(Protocol):
    def generate_for_config(self, config: PendingTestConfig) -> list[Question]: ...


class HistoryRecorder(Protocol):
    def record(
        self,
        entry_id: str | None,
        test_name: str,
        questions: list[Question],
        config: PendingTestConfig,
        was_corrected: bool,
    ) -> str | None: ...


class SnapshotStore(Protocol):
    def save(self, state: InProgressTestState) -> None: ...

    def load(self) -> InProgressTestState | None: ...

    def clear(self) -> None: ...


def new_session_id() -> str:
    return uuid.uuid4().hex


def default_test_name(
    input_method: TestInputMethod, original_file_name: str | None = None
) -> str:
    if input_method == TestInputMethod.DOCUMENT and original_file_name:
        stem, dot, _ = original_file_name.rpartition(".")
        return stem if dot and stem else original_file_name
    if input_method == TestInputMethod.SYLLABUS:
        return "Syllabus-based Test"
    if input_method == TestInputMethod.TOPIC:
        return "Topic-based Test"
    return f"Test from {input_method.value}"


def retake_base_name(name: str) -> str:
    return name.split(RETAKE_SEPARATOR)[0]


def retake_name(entry: TestHistoryEntry, history: Iterable[TestHistoryEntry]) -> str:
    """Name for a retake: ``"<base> - Retake N"``.

    N is one more than the number of other history entries whose configured
    name shares the same base.
    """
    base = retake_base_name(entry.test_name)
    count = sum(
        1
        for item in history
        if item.id != entry.id
        and retake_base_name(item.original_config.test_name) == base
    )
    return f"{base}{RETAKE_SEPARATOR}{count + 1}"


def reset_question(question: Question) -> Question:
    return replace(
        question,
        status=QuestionStatus.UNVISITED,
        user_answer_index=None,
        explanation=None,
        was_corrected_by_user=False,
        is_marked_for_review=False,
    )


def _same_generation_inputs(prev: PendingTestConfig, new: PendingTestConfig) -> bool:
    if prev.input_method != new.input_method:
        return False
    if prev.input_method == TestInputMethod.DOCUMENT:
        same_core = (
            prev.original_file_name == new.original_file_name
            and prev.mime_type == new.mime_type
            and prev.selected_language == new.selected_language
            and prev.content == new.content
        )
    else:
        same_core = (
            prev.content == new.content
            and prev.num_questions == new.num_questions
            and prev.difficulty_level == new.difficulty_level
            and prev.selected_language == new.selected_language
            and prev.custom_instructions == new.custom_instructions
        )
    return (
        same_core
        and prev.time_settings == new.time_settings
        and prev.negative_marking == new.negative_marking
    )


class TestSession:
    """State of one user's test workflow."""

    def __init__(
        self,
        recorder: HistoryRecorder | None = None,
        store: SnapshotStore | None = None,
    ) -> None:
        self.recorder = recorder
        self.store = store

        self.phase = TestPhase.HOME
        self.questions: list[Question] = []
        self.current_question_index = 0
        self.time_remaining_seconds: int | None = 0
        self.test_duration_seconds: int | None = 0
        self.error: str | None = None
        self.is_loading = False

        self.current_input_method: TestInputMethod | None = None
        self.current_test_name = ""
        self.config: PendingTestConfig | None = None
        self.session_id: str | None = None
        self.is_retake_mode = False

        self.review_questions: list[Question] = []
        self.viewing_history_entry: TestHistoryEntry | None = None
        self.is_viewing_from_history = False

        self.saved_in_progress: InProgressTestState | None = None
        if store is not None:
            self.saved_in_progress = store.load()

        self._regenerate = True

    # ------------------------------------------------------------------
    # helpers

    def _require_phase(self, *phases: TestPhase) -> None:
        if self.phase not in phases:
            allowed = ", ".join(p.value for p in phases)
            raise SessionError(
                f"Not allowed in phase '{self.phase.value}' (expected {allowed})"
            )

    def _question_at(self, index: int, questions: list[Question] | None = None) -> Question:
        questions = self.questions if questions is None else questions
        if not 0 <= index < len(questions):
            raise SessionError(f"Question index {index} is out of range")
        return questions[index]

    def _check_option(self, question: Question, option_index: int) -> None:
        if not 0 <= option_index < len(question.options):
            raise SessionError(f"Option index {option_index} is out of range")

    @property
    def is_timed(self) -> bool:
        return self.test_duration_seconds is not None and self.test_duration_seconds > 0

    def snapshot(self) -> InProgressTestState | None:
        if (
            self.phase != TestPhase.IN_PROGRESS
            or self.config is None
            or not self.session_id
            or not self.questions
        ):
            return None
        return InProgressTestState(
            questions=copy.deepcopy(self.questions),
            current_question_index=self.current_question_index,
            time_remaining_seconds=self.time_remaining_seconds,
            test_duration_seconds=self.test_duration_seconds,
            config=self.config,
            session_id=self.session_id,
        )

    def _persist(self) -> None:
        state = self.snapshot()
        if state is None:
            return
        if self.store is not None:
            self.store.save(state)
        self.saved_in_progress = state

    def _clear_in_progress(self) -> None:
        if self.store is not None:
            self.store.clear()
        self.saved_in_progress = None

    def _record_completion(self, is_correction: bool) -> None:
        if (
            self.recorder is None
            or self.config is None
            or not self.questions
            or not self.session_id
        ):
            return
        name = self.current_test_name or self.config.test_name or UNTITLED_TEST_NAME
        was_corrected = is_correction or any(q.was_corrected_by_user for q in self.questions)
        entry_id = self.recorder.record(
            self.session_id,
            name,
            copy.deepcopy(self.questions),
            replace(self.config, test_name=name),
            was_corrected,
        )
        if entry_id:
            self.session_id = entry_id

    # ------------------------------------------------------------------
    # setup and generation

    def navigate_to_setup(self, method: TestInputMethod) -> None:
        self.current_input_method = method
        if (
            self.phase != TestPhase.SETUP
            or self.config is None
            or self.config.input_method != method
            or self.is_retake_mode
        ):
            self.config = None
        self.is_retake_mode = False
        self.phase = TestPhase.SETUP
        self.error = None

    def begin_generation(self, config: PendingTestConfig) -> bool:
        """Enter the generating phase. Returns True if new questions are needed."""
        self._require_phase(TestPhase.SETUP)
        if self.is_loading:
            raise SessionError("A test is already being generated")
        self.error = None
        self.is_loading = True

        if self.is_retake_mode and self.config is not None:
            name = self.config.test_name
        else:
            name = (
                (self.config.test_name if self.config else "")
                or config.test_name
                or default_test_name(config.input_method, config.original_file_name)
            )
        config = replace(config, test_name=name)

        regenerate = True
        if self.is_retake_mode and self.questions:
            regenerate = False
        elif self.questions and self.config is not None and not self.is_retake_mode:
            if _same_generation_inputs(self.config, config):
                regenerate = False

        self.config = config
        self.current_input_method = config.input_method
        self.current_test_name = name
        self.phase = TestPhase.GENERATING
        self._regenerate = regenerate
        return regenerate

    def complete_generation(self, questions: list[Question] | None = None) -> None:
        self._require_phase(TestPhase.GENERATING)
        if self._regenerate:
            if not questions:
                self.fail_generation(
                    "No questions were generated. Please check your input, selected "
                    "language, difficulty, or try different settings."
                )
                return
            source = questions
        else:
            source = self.questions
        self.questions = [reset_question(q) for q in source]
        self.current_question_index = 0
        total = self.config.time_settings.total_seconds if self.config else None
        self.test_duration_seconds = total
        self.time_remaining_seconds = total
        self.is_loading = False
        self.phase = TestPhase.CONFIRMATION

    def fail_generation(self, message: str) -> None:
        logger.warning("Test generation failed: %s", message)
        self.error = message
        self.is_loading = False
        self.phase = TestPhase.SETUP

    def start_generation(
        self, config: PendingTestConfig, generator: QuestionGenerator
    ) -> None:
        """Run a whole generation round synchronously."""
        regenerate = self.begin_generation(config)
        questions = None
        if regenerate:
            try:
                questions = generator.generate_for_config(self.config)
            except GenerationError as exc:
                self.fail_generation(str(exc))
                return
        self.complete_generation(questions)

    def edit_settings(self) -> None:
        self._require_phase(TestPhase.CONFIRMATION)
        self.phase = TestPhase.SETUP
        self.error = None

    def start_test(self, test_name: str | None = None) -> None:
        self._require_phase(TestPhase.CONFIRMATION)
        name = (test_name or "").strip() or self.current_test_name
        self.current_test_name = name
        if self.config is not None and name:
            self.config = replace(self.config, test_name=name)
        # every attempt gets its own history entry
        self.session_id = new_session_id()
        self.questions = [
            replace(q, was_corrected_by_user=False, is_marked_for_review=False)
            for q in self.questions
        ]
        self.phase = TestPhase.IN_PROGRESS
        self._persist()

    # ------------------------------------------------------------------
    # answering

    def select_answer(self, question_index: int, option_index: int) -> None:
        self._require_phase(TestPhase.IN_PROGRESS)
        question = self._question_at(question_index)
        self._check_option(question, option_index)
        question.user_answer_index = option_index
        question.status = QuestionStatus.ATTEMPTED
        self._persist()

    def navigate_question(self, index: int) -> None:
        self._require_phase(TestPhase.IN_PROGRESS)
        self._question_at(index)
        current = self.questions[self.current_question_index]
        if current.status == QuestionStatus.UNVISITED and self.current_question_index != index:
            current.status = QuestionStatus.SKIPPED
        self.current_question_index = index
        self._persist()

    def toggle_mark_for_review(self, question_index: int) -> None:
        self._require_phase(TestPhase.IN_PROGRESS)
        question = self._question_at(question_index)
        question.is_marked_for_review = not question.is_marked_for_review
        self._persist()

    def clear_selection(self, question_index: int) -> None:
        self._require_phase(TestPhase.IN_PROGRESS)
        question = self._question_at(question_index)
        question.user_answer_index = None
        if question.status == QuestionStatus.ATTEMPTED:
            question.status = QuestionStatus.SKIPPED
        self._persist()

    def tick(self) -> bool:
        """Advance the countdown by one second.

        Returns False once the countdown should stop: the session is not in
        progress, the test is untimed, or time ran out (which submits).
        """
        if self.phase != TestPhase.IN_PROGRESS or not self.is_timed:
            return False
        if self.time_remaining_seconds is None:
            return False
        if self.time_remaining_seconds > 0:
            self.time_remaining_seconds -= 1
        if self.time_remaining_seconds <= 0:
            logger.info("Time is up for session %s, submitting", self.session_id)
            self.submit()
            return False
        self._persist()
        return True

    def submit(self) -> None:
        self._require_phase(TestPhase.IN_PROGRESS)
        for question in self.questions:
            if question.status == QuestionStatus.UNVISITED:
                question.status = QuestionStatus.SKIPPED
        self._record_completion(is_correction=False)
        self._clear_in_progress()
        self.phase = TestPhase.COMPLETED

    # ------------------------------------------------------------------
    # results and review

    def review(self) -> None:
        self._require_phase(TestPhase.COMPLETED)
        self.review_questions = copy.deepcopy(self.questions)
        self.phase = TestPhase.REVIEW

    def back_to_results(self) -> None:
        self._require_phase(TestPhase.REVIEW, TestPhase.VIEW_HISTORY_DETAILS)
        if self.phase == TestPhase.VIEW_HISTORY_DETAILS:
            self.viewing_history_entry = None
            self.phase = TestPhase.HISTORY
        else:
            self.phase = TestPhase.COMPLETED
        self.review_questions = []

    def set_explanation(self, question_index: int, explanation: str) -> None:
        self._require_phase(TestPhase.REVIEW, TestPhase.VIEW_HISTORY_DETAILS)
        self._question_at(question_index, self.review_questions).explanation = explanation

    def override_correct_answer(self, question_index: int, option_index: int) -> None:
        self._require_phase(TestPhase.REVIEW)
        question = self._question_at(question_index, self.review_questions)
        self._check_option(question, option_index)
        question.correct_answer_index = option_index
        question.explanation = None
        question.was_corrected_by_user = True

    def apply_corrections(self, overrides: Iterable[tuple[int, int]]) -> None:
        """Override several answers at once, then apply them. All or nothing."""
        self._require_phase(TestPhase.REVIEW)
        overrides = list(overrides)
        for question_index, option_index in overrides:
            question = self._question_at(question_index, self.review_questions)
            self._check_option(question, option_index)
        for question_index, option_index in overrides:
            self.override_correct_answer(question_index, option_index)
        self.apply_user_corrections()

    def apply_user_corrections(self, questions: list[Question] | None = None) -> None:
        self._require_phase(TestPhase.REVIEW)
        corrected = questions if questions is not None else self.review_questions
        self.questions = copy.deepcopy(corrected)
        self.review_questions = []
        self._record_completion(is_correction=True)
        self._clear_in_progress()
        self.phase = TestPhase.COMPLETED

    def apply_answer_key(self, entries: Iterable[AnswerKeyEntry]) -> int:
        """Replace correct answers from an official key. Returns entries applied."""
        self._require_phase(TestPhase.COMPLETED)
        applied = 0
        for entry in entries:
            if not 0 <= entry.question_index < len(self.questions):
                continue
            question = self.questions[entry.question_index]
            if not 0 <= entry.correct_answer_index < len(question.options):
                logger.info(
                    "Ignoring answer key entry for question %d: option %d out of range",
                    entry.question_index,
                    entry.correct_answer_index,
                )
                continue
            question.correct_answer_index = entry.correct_answer_index
            question.explanation = None
            applied += 1
        if applied:
            self._record_completion(is_correction=True)
        return applied

    # ------------------------------------------------------------------
    # history

    def navigate_to_history(self) -> None:
        self.error = None
        self.is_retake_mode = False
        self.phase = TestPhase.HISTORY

    def navigate_home(self) -> None:
        self.phase = TestPhase.HOME

    def retake(self, entry: TestHistoryEntry, history: Iterable[TestHistoryEntry]) -> None:
        name = retake_name(entry, history)
        self.current_input_method = entry.original_config.input_method
        self.config = replace(entry.original_config, test_name=name)
        self.current_test_name = name
        self.questions = copy.deepcopy(entry.questions)
        self.session_id = new_session_id()
        self.is_retake_mode = True
        self.is_viewing_from_history = False
        self.phase = TestPhase.SETUP
        self.error = None

    def view_score_from_history(self, entry: TestHistoryEntry) -> None:
        self.questions = copy.deepcopy(entry.questions)
        self.config = entry.original_config
        self.current_input_method = entry.original_config.input_method
        self.current_test_name = entry.test_name
        self.session_id = entry.id
        self.is_viewing_from_history = True
        self.phase = TestPhase.COMPLETED

    def view_history_details(self, entry: TestHistoryEntry) -> None:
        self.viewing_history_entry = entry
        self.review_questions = copy.deepcopy(entry.questions)
        self.phase = TestPhase.VIEW_HISTORY_DETAILS

    # ------------------------------------------------------------------
    # resume / reset

    def refresh_saved_progress(self) -> InProgressTestState | None:
        """Re-read the stored snapshot, which cleanup may have purged."""
        if self.store is not None and self.phase != TestPhase.IN_PROGRESS:
            self.saved_in_progress = self.store.load()
        return self.saved_in_progress

    def resume(self) -> None:
        state = self.refresh_saved_progress()
        if state is None:
            raise SessionError("There is no test in progress to resume")
        self.questions = copy.deepcopy(state.questions)
        self.current_question_index = state.current_question_index
        self.time_remaining_seconds = state.time_remaining_seconds
        self.test_duration_seconds = state.test_duration_seconds
        self.config = state.config
        self.current_input_method = state.config.input_method
        self.session_id = state.session_id
        self.current_test_name = state.config.test_name
        self.is_retake_mode = False
        self.error = None
        self.phase = TestPhase.IN_PROGRESS

    def cancel_in_progress(self) -> None:
        if self.phase == TestPhase.IN_PROGRESS:
            self.start_new_test()
            return
        self._clear_in_progress()

    def start_new_test(self) -> None:
        self.questions = []
        self.current_question_index = 0
        self.time_remaining_seconds = 0
        self.test_duration_seconds = 0
        self.error = None
        self.is_loading = False
        self.current_input_method = None
        self.config = None
        self.current_test_name = ""
        self.session_id = None
        self.is_retake_mode = False
        self.review_questions = []
        self.viewing_history_entry = None
        self.is_viewing_from_history = False
        self._clear_in_progress()
        self.phase = TestPhase.HOME
