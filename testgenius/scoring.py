"""Score calculation with optional negative marking."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from testgenius.domain import NegativeMarkingSettings, Question, QuestionStatus


@dataclass(frozen=True)
class ScoreSummary:
    total: int
    attempted: int
    correct: int
    incorrect: int
    raw_percentage: float
    final_percentage: float

    @property
    def not_attempted(self) -> int:
        return self.total - self.attempted

    @property
    def penalty(self) -> float:
        """Marks lost to negative marking, expressed in questions."""
        if self.total == 0:
            return 0.0
        return (self.raw_percentage - self.final_percentage) * self.total / 100


def calculate_score(
    correct: int,
    incorrect: int,
    total: int,
    negative_marking: NegativeMarkingSettings | None = None,
) -> float:
    """Percentage score, clamped at zero.

    ``max(0, (correct - incorrect * penalty) / total * 100)`` when negative
    marking is enabled, ``correct / total * 100`` otherwise.
    """
    if total <= 0:
        return 0.0
    if negative_marking is None or not negative_marking.enabled:
        return correct / total * 100
    marks_obtained = correct - incorrect * negative_marking.marks_per_question
    return max(0.0, marks_obtained / total * 100)


def score_questions(
    questions: Iterable[Question],
    negative_marking: NegativeMarkingSettings | None = None,
) -> ScoreSummary:
    questions = list(questions)
    total = len(questions)
    attempted = sum(1 for q in questions if q.status == QuestionStatus.ATTEMPTED)
    correct = sum(1 for q in questions if q.is_correct)
    incorrect = sum(1 for q in questions if q.is_incorrect)
    return ScoreSummary(
        total=total,
        attempted=attempted,
        correct=correct,
        incorrect=incorrect,
        raw_percentage=calculate_score(correct, incorrect, total),
        final_percentage=calculate_score(correct, incorrect, total, negative_marking),
    )
