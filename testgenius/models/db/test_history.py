"""
Completed test records.
The question set and configuration are stored as camelCase JSON blobs.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

import sqlalchemy as sa
from sqlalchemy import ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from testgenius.database import Base

if TYPE_CHECKING:
    from testgenius.models.db.user import User


def _loads(raw: str | None, default: Any) -> Any:
    if not raw:
        return default
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        return default


class TestHistory(Base):
    """One finished (or corrected) test attempt."""

    __tablename__ = "test_history"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    test_name: Mapped[str] = mapped_column(String(255), nullable=False)
    date_completed: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
    )

    # Score fields
    score_percentage: Mapped[float] = mapped_column(default=0.0, nullable=False)
    total_questions: Mapped[int] = mapped_column(default=0, nullable=False)
    correct_answers: Mapped[int] = mapped_column(default=0, nullable=False)
    attempted_questions: Mapped[int] = mapped_column(default=0, nullable=False)
    was_corrected_by_user: Mapped[bool] = mapped_column(default=False, nullable=False)

    # JSON blobs
    negative_marking_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    original_config_json: Mapped[str] = mapped_column(Text, nullable=False)
    questions_json: Mapped[str] = mapped_column(Text, nullable=False)

    user: Mapped["User"] = relationship("User", back_populates="test_history")

    @property
    def negative_marking(self) -> dict[str, Any]:
        return _loads(self.negative_marking_json, {})

    @negative_marking.setter
    def negative_marking(self, value: dict[str, Any] | None) -> None:
        self.negative_marking_json = json.dumps(value) if value else None

    @property
    def original_config(self) -> dict[str, Any]:
        return _loads(self.original_config_json, {})

    @original_config.setter
    def original_config(self, value: dict[str, Any]) -> None:
        self.original_config_json = json.dumps(value, ensure_ascii=False)

    @property
    def questions(self) -> list[dict[str, Any]]:
        return _loads(self.questions_json, [])

    @questions.setter
    def questions(self, value: list[dict[str, Any]]) -> None:
        self.questions_json = json.dumps(value, ensure_ascii=False)

    def __repr__(self) -> str:
        return f"<TestHistory(id='{self.id}', user_id={self.user_id}, test_name='{self.test_name}')>"
