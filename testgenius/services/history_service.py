"""Service layer for completed-test history using the SQL database."""
import logging
import uuid
from typing import Callable

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session as DbSession

from testgenius.database import SessionLocal, session_scope
from testgenius.domain import (
    NegativeMarkingSettings,
    PendingTestConfig,
    Question,
    TestHistoryEntry,
)
from testgenius.models.db.test_history import TestHistory
from testgenius.scoring import score_questions
from testgenius.serialization import (
    deserialize_config,
    deserialize_negative_marking,
    deserialize_questions,
    serialize_config,
    serialize_negative_marking,
    serialize_questions,
)
from testgenius.utils import utc_now

logger = logging.getLogger(__name__)


def entry_from_row(row: TestHistory) -> TestHistoryEntry:
    """Convert a database row into a domain history entry."""
    return TestHistoryEntry(
        id=row.id,
        test_name=row.test_name,
        date_completed=row.date_completed,
        score_percentage=row.score_percentage,
        total_questions=row.total_questions,
        correct_answers=row.correct_answers,
        attempted_questions=row.attempted_questions,
        negative_marking=deserialize_negative_marking(row.negative_marking),
        original_config=deserialize_config(row.original_config),
        questions=deserialize_questions(row.questions),
        was_corrected_by_user=row.was_corrected_by_user,
    )


def _get_row(db: DbSession, user_id: int, entry_id: str) -> TestHistory | None:
    return db.execute(
        select(TestHistory).where(
            TestHistory.id == entry_id, TestHistory.user_id == user_id
        )
    ).scalar_one_or_none()


def save_test(
    db: DbSession,
    user_id: int,
    test_name: str,
    questions: list[Question],
    config: PendingTestConfig,
    negative_marking: NegativeMarkingSettings | None = None,
    entry_id: str | None = None,
    was_corrected: bool = False,
) -> str | None:
    """
    Insert a completed test.

    Returns:
        The new entry id, or None if the write failed.
    """
    marking = negative_marking if negative_marking is not None else config.negative_marking
    summary = score_questions(questions, marking)
    row = TestHistory(
        id=entry_id or uuid.uuid4().hex,
        user_id=user_id,
        test_name=test_name,
        date_completed=utc_now(),
        score_percentage=summary.final_percentage,
        total_questions=summary.total,
        correct_answers=summary.correct,
        attempted_questions=summary.attempted,
        was_corrected_by_user=was_corrected or any(q.was_corrected_by_user for q in questions),
    )
    row.negative_marking = serialize_negative_marking(marking)
    row.original_config = serialize_config(config)
    row.questions = serialize_questions(questions)
    try:
        db.add(row)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Error saving test to history: %s", exc)
        return None
    logger.info("Saved test %s for user %s (score %.1f)", row.id, user_id, summary.final_percentage)
    return row.id


def update_test(
    db: DbSession,
    user_id: int,
    entry_id: str,
    questions: list[Question],
    was_corrected: bool = False,
) -> bool:
    """Replace an entry's questions and re-score with its stored negative marking."""
    try:
        row = _get_row(db, user_id, entry_id)
        if row is None:
            return False
        marking = deserialize_negative_marking(row.negative_marking)
        summary = score_questions(questions, marking)
        row.score_percentage = summary.final_percentage
        row.correct_answers = summary.correct
        row.attempted_questions = summary.attempted
        row.total_questions = summary.total
        row.questions = serialize_questions(questions)
        row.was_corrected_by_user = was_corrected or any(
            q.was_corrected_by_user for q in questions
        )
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Error updating test %s in history: %s", entry_id, exc)
        return False
    return True


def list_history(db: DbSession, user_id: int) -> list[TestHistoryEntry]:
    """All entries of a user, newest first. Empty on failure."""
    try:
        rows = db.execute(
            select(TestHistory)
            .where(TestHistory.user_id == user_id)
            .order_by(TestHistory.date_completed.desc())
        ).scalars().all()
    except SQLAlchemyError as exc:
        logger.error("Error fetching test history: %s", exc)
        return []
    entries = []
    for row in rows:
        try:
            entries.append(entry_from_row(row))
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("Skipping unreadable history entry %s: %s", row.id, exc)
    return entries


def get_entry(db: DbSession, user_id: int, entry_id: str) -> TestHistoryEntry | None:
    try:
        row = _get_row(db, user_id, entry_id)
    except SQLAlchemyError as exc:
        logger.error("Error fetching history entry %s: %s", entry_id, exc)
        return None
    if row is None:
        return None
    try:
        return entry_from_row(row)
    except (KeyError, TypeError, ValueError) as exc:
        logger.warning("History entry %s is unreadable: %s", entry_id, exc)
        return None


def delete_test(db: DbSession, user_id: int, entry_id: str) -> bool:
    try:
        row = _get_row(db, user_id, entry_id)
        if row is None:
            return False
        db.delete(row)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Error deleting test %s: %s", entry_id, exc)
        return False
    return True


def clear_history(db: DbSession, user_id: int) -> bool:
    try:
        rows = db.execute(
            select(TestHistory).where(TestHistory.user_id == user_id)
        ).scalars().all()
        for row in rows:
            db.delete(row)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Error clearing test history: %s", exc)
        return False
    return True


class DatabaseHistoryRecorder:
    """Records a session's completed test, inserting once and updating afterwards."""

    def __init__(
        self,
        user_id: int,
        session_factory: Callable[[], DbSession] = SessionLocal,
    ) -> None:
        self.user_id = user_id
        self.session_factory = session_factory

    def record(
        self,
        entry_id: str | None,
        test_name: str,
        questions: list[Question],
        config: PendingTestConfig,
        was_corrected: bool,
    ) -> str | None:
        try:
            with session_scope(self.session_factory) as db:
                if entry_id and _get_row(db, self.user_id, entry_id) is not None:
                    if update_test(db, self.user_id, entry_id, questions, was_corrected):
                        return entry_id
                    return None
                return save_test(
                    db,
                    self.user_id,
                    test_name,
                    questions,
                    config,
                    entry_id=entry_id,
                    was_corrected=was_corrected,
                )
        except SQLAlchemyError as exc:
            logger.error("Error recording test for user %s: %s", self.user_id, exc)
            return None
