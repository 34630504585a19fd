from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime


class QuestionStatus(str, enum.Enum):
    UNVISITED = "unvisited"
    ATTEMPTED = "attempted"
    SKIPPED = "skipped"  # left without answering


class TestInputMethod(str, enum.Enum):
    DOCUMENT = "document"  # .txt, .docx, PDFs and images
    SYLLABUS = "syllabus"
    TOPIC = "topic"


class LanguageOption(str, enum.Enum):
    ENGLISH = "English"
    HINDI = "Hindi"


class TestPhase(str, enum.Enum):
    HOME = "home"
    SETUP = "setup"
    CONFIRMATION = "confirmation"
    GENERATING = "generating"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    REVIEW = "review"
    HISTORY = "history"
    VIEW_HISTORY_DETAILS = "view_history_details"


@dataclass
class Question:
    id: str
    question_text: str
    options: list[str]
    correct_answer_index: int
    passage_text: str | None = None  # may contain simple HTML
    user_answer_index: int | None = None
    status: QuestionStatus = QuestionStatus.UNVISITED
    explanation: str | None = None
    was_corrected_by_user: bool = False
    is_marked_for_review: bool = False

    @property
    def is_correct(self) -> bool:
        return (
            self.status == QuestionStatus.ATTEMPTED
            and self.user_answer_index == self.correct_answer_index
        )

    @property
    def is_incorrect(self) -> bool:
        return (
            self.status == QuestionStatus.ATTEMPTED
            and self.user_answer_index is not None
            and self.user_answer_index != self.correct_answer_index
        )


@dataclass(frozen=True)
class TimeSettings:
    total_seconds: int | None = None  # None means untimed

    @classmethod
    def timed(cls, total_seconds: int) -> "TimeSettings":
        if total_seconds <= 0:
            raise ValueError("Timed test duration must be greater than 0 seconds.")
        return cls(total_seconds=total_seconds)

    @classmethod
    def untimed(cls) -> "TimeSettings":
        return cls(total_seconds=None)

    @property
    def is_timed(self) -> bool:
        return self.total_seconds is not None


@dataclass(frozen=True)
class NegativeMarkingSettings:
    enabled: bool = False
    marks_per_question: float = 0.0


@dataclass(frozen=True)
class PendingTestConfig:
    """Parameters of one generation request. Cloned with edits on retake."""

    input_method: TestInputMethod
    content: str  # text, or base64 data for binary uploads
    num_questions: int
    time_settings: TimeSettings
    negative_marking: NegativeMarkingSettings
    test_name: str
    mime_type: str | None = None
    original_file_name: str | None = None
    selected_language: LanguageOption | None = None
    difficulty_level: int | None = None  # 1-5, syllabus/topic only
    custom_instructions: str | None = None  # syllabus/topic only


@dataclass
class TestHistoryEntry:
    id: str
    test_name: str
    date_completed: datetime
    score_percentage: float
    total_questions: int
    correct_answers: int
    attempted_questions: int
    negative_marking: NegativeMarkingSettings
    original_config: PendingTestConfig
    questions: list[Question] = field(default_factory=list)
    was_corrected_by_user: bool = False


@dataclass
class InProgressTestState:
    questions: list[Question]
    current_question_index: int
    time_remaining_seconds: int | None
    test_duration_seconds: int | None
    config: PendingTestConfig
    session_id: str
    test_phase: TestPhase = TestPhase.IN_PROGRESS


@dataclass(frozen=True)
class AnswerKeyEntry:
    question_index: int  # 0-based
    correct_answer_index: int  # 0-3


@dataclass
class ChatMessage:
    id: str
    sender: str  # "user" | "gemini" | "system"
    text: str
    is_loading: bool = False
    error: bool = False
