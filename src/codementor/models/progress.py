"""Progress profile ORM model. One row per user.

Nested collections are stored as JSON:

- ``mistakes``: ``[{"mistake": str, "count": int, "last_seen": iso8601}]``
- ``language_counts``: ``{language: submissions}``
- ``personality``: ``{"label": str, "confidence": float, "traits": [str]}``
- ``folded_sessions``: ids of the sessions already counted, so a
  redelivered job never folds the same session twice

``version`` increases on every write; the repository only accepts a
write whose expected version matches the stored one.
"""

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import JSON, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from codementor.models._ids import new_id
from codementor.models.base import Base


class ProgressProfile(Base):
    __tablename__ = "progress_profiles"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=new_id
    )
    user_id: Mapped[str] = mapped_column(
        ForeignKey("users.id"), unique=True
    )
    total_submissions: Mapped[int] = mapped_column(Integer, default=0)
    mistakes: Mapped[list[dict[str, Any]]] = mapped_column(
        JSON, default=list
    )
    improvement_score: Mapped[int] = mapped_column(Integer, default=0)
    language_counts: Mapped[dict[str, int]] = mapped_column(
        JSON, default=dict
    )
    personality: Mapped[dict[str, Any] | None] = mapped_column(
        JSON, nullable=True
    )
    last_analyzed_at: Mapped[datetime | None] = mapped_column(
        nullable=True
    )
    folded_sessions: Mapped[list[str]] = mapped_column(
        JSON, default=list
    )
    version: Mapped[int] = mapped_column(Integer, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "total_submissions": self.total_submissions,
            "mistakes": list(self.mistakes or []),
            "improvement_score": self.improvement_score,
            "language_counts": dict(self.language_counts or {}),
            "personality": self.personality,
            "last_analyzed_at": (
                self.last_analyzed_at.isoformat()
                if self.last_analyzed_at
                else None
            ),
        }
