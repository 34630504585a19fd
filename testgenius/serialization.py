from __future__ import annotations

from typing import Any, Iterable

from testgenius.domain import (
    AnswerKeyEntry,
    InProgressTestState,
    LanguageOption,
    NegativeMarkingSettings,
    PendingTestConfig,
    Question,
    QuestionStatus,
    TestHistoryEntry,
    TestInputMethod,
    TestPhase,
    TimeSettings,
)
from testgenius.utils.time_utils import epoch_millis


def _optional_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    raise ValueError(f"Expected a number, got {value!r}")


def serialize_question(question: Question) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "id": question.id,
        "questionText": question.question_text,
        "options": list(question.options),
        "correctAnswerIndex": question.correct_answer_index,
        "status": question.status.value,
        "wasCorrectedByUser": question.was_corrected_by_user,
        "isMarkedForReview": question.is_marked_for_review,
    }
    if question.passage_text is not None:
        payload["passageText"] = question.passage_text
    if question.user_answer_index is not None:
        payload["userAnswerIndex"] = question.user_answer_index
    if question.explanation is not None:
        payload["explanation"] = question.explanation
    return payload


def deserialize_question(payload: dict[str, Any]) -> Question:
    options = payload.get("options")
    if not isinstance(options, list):
        raise ValueError("Question options must be a list")
    return Question(
        id=str(payload["id"]),
        question_text=str(payload["questionText"]),
        options=[str(option) for option in options],
        correct_answer_index=int(payload["correctAnswerIndex"]),
        passage_text=payload.get("passageText"),
        user_answer_index=_optional_int(payload.get("userAnswerIndex")),
        status=QuestionStatus(payload.get("status", QuestionStatus.UNVISITED.value)),
        explanation=payload.get("explanation"),
        was_corrected_by_user=bool(payload.get("wasCorrectedByUser", False)),
        is_marked_for_review=bool(payload.get("isMarkedForReview", False)),
    )


def serialize_questions(questions: Iterable[Question]) -> list[dict[str, Any]]:
    return [serialize_question(question) for question in questions]


def deserialize_questions(payload: Any) -> list[Question]:
    if not isinstance(payload, list):
        raise ValueError("Questions must be a list")
    return [deserialize_question(item) for item in payload]


def serialize_time_settings(settings: TimeSettings) -> dict[str, Any]:
    if settings.is_timed:
        return {"type": "timed", "totalSeconds": settings.total_seconds}
    return {"type": "untimed"}


def deserialize_time_settings(payload: dict[str, Any] | None) -> TimeSettings:
    if not payload or payload.get("type") != "timed":
        return TimeSettings.untimed()
    return TimeSettings.timed(int(payload["totalSeconds"]))


def serialize_negative_marking(settings: NegativeMarkingSettings) -> dict[str, Any]:
    return {
        "enabled": settings.enabled,
        "marksPerQuestion": settings.marks_per_question,
    }


def deserialize_negative_marking(payload: dict[str, Any] | None) -> NegativeMarkingSettings:
    if not payload:
        return NegativeMarkingSettings()
    return NegativeMarkingSettings(
        enabled=bool(payload.get("enabled", False)),
        marks_per_question=float(payload.get("marksPerQuestion") or 0.0),
    )


def serialize_config(config: PendingTestConfig) -> dict[str, Any]:
    return {
        "inputMethod": config.input_method.value,
        "content": config.content,
        "numQuestions": config.num_questions,
        "timeSettings": serialize_time_settings(config.time_settings),
        "negativeMarking": serialize_negative_marking(config.negative_marking),
        "mimeType": config.mime_type,
        "originalFileName": config.original_file_name,
        "selectedLanguage": (
            config.selected_language.value if config.selected_language else None
        ),
        "difficultyLevel": config.difficulty_level,
        "customInstructions": config.custom_instructions,
        "testName": config.test_name,
    }


def deserialize_config(payload: dict[str, Any]) -> PendingTestConfig:
    language = payload.get("selectedLanguage")
    return PendingTestConfig(
        input_method=TestInputMethod(payload["inputMethod"]),
        content=str(payload.get("content") or ""),
        num_questions=int(payload.get("numQuestions") or 0),
        time_settings=deserialize_time_settings(payload.get("timeSettings")),
        negative_marking=deserialize_negative_marking(payload.get("negativeMarking")),
        test_name=str(payload.get("testName") or ""),
        mime_type=payload.get("mimeType"),
        original_file_name=payload.get("originalFileName"),
        selected_language=LanguageOption(language) if language else None,
        difficulty_level=_optional_int(payload.get("difficultyLevel")),
        custom_instructions=payload.get("customInstructions"),
    )


def serialize_snapshot(state: InProgressTestState) -> dict[str, Any]:
    return {
        "questions": serialize_questions(state.questions),
        "currentQuestionIndex": state.current_question_index,
        "timeRemainingSeconds": state.time_remaining_seconds,
        "testDurationSeconds": state.test_duration_seconds,
        "currentSetupConfig": serialize_config(state.config),
        "currentTestSessionId": state.session_id,
        "testPhase": state.test_phase.value,
    }


def deserialize_snapshot(payload: dict[str, Any]) -> InProgressTestState:
    if not payload.get("questions") or not payload.get("currentSetupConfig"):
        raise ValueError("Snapshot is missing questions or configuration")
    phase = TestPhase(payload.get("testPhase", TestPhase.IN_PROGRESS.value))
    if phase != TestPhase.IN_PROGRESS:
        raise ValueError(f"Snapshot has unexpected phase {phase.value}")
    return InProgressTestState(
        questions=deserialize_questions(payload["questions"]),
        current_question_index=int(payload.get("currentQuestionIndex") or 0),
        time_remaining_seconds=_optional_int(payload.get("timeRemainingSeconds")),
        test_duration_seconds=_optional_int(payload.get("testDurationSeconds")),
        config=deserialize_config(payload["currentSetupConfig"]),
        session_id=str(payload["currentTestSessionId"]),
    )


def serialize_history_entry(entry: TestHistoryEntry) -> dict[str, Any]:
    return {
        "id": entry.id,
        "testName": entry.test_name,
        "dateCompleted": epoch_millis(entry.date_completed),
        "scorePercentage": entry.score_percentage,
        "totalQuestions": entry.total_questions,
        "correctAnswers": entry.correct_answers,
        "attemptedQuestions": entry.attempted_questions,
        "negativeMarkingSettings": serialize_negative_marking(entry.negative_marking),
        "originalConfig": serialize_config(entry.original_config),
        "questions": serialize_questions(entry.questions),
        "wasCorrectedByUser": entry.was_corrected_by_user,
    }


def parse_answer_key(payload: Any) -> list[AnswerKeyEntry]:
    """Validate an uploaded answer key.

    Expected shape: ``[{"questionIndex": 0, "correctAnswerIndex": 2}, ...]``.
    """
    error = (
        "Invalid answer key format. Expected an array of "
        "{questionIndex: number, correctAnswerIndex: number}."
    )
    if not isinstance(payload, list):
        raise ValueError(error)
    entries: list[AnswerKeyEntry] = []
    for item in payload:
        if not isinstance(item, dict):
            raise ValueError(error)
        question_index = item.get("questionIndex")
        correct_index = item.get("correctAnswerIndex")
        for value in (question_index, correct_index):
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValueError(error)
        entries.append(
            AnswerKeyEntry(
                question_index=int(question_index),
                correct_answer_index=int(correct_index),
            )
        )
    return entries
