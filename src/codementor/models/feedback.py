"""Feedback ORM model. Append-only."""

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from codementor.models._ids import new_id
from codementor.models.base import Base


class Feedback(Base):
    __tablename__ = "feedback"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=new_id
    )
    session_id: Mapped[str] = mapped_column(
        ForeignKey("code_sessions.id", ondelete="CASCADE"), index=True
    )
    snippet_id: Mapped[str] = mapped_column(
        ForeignKey("code_snippets.id", ondelete="CASCADE")
    )
    # Analysis attempt that produced this item; reads show the latest only
    attempt: Mapped[int] = mapped_column(Integer, default=1)
    # Emission order within the attempt: snippet order, then response order
    position: Mapped[int] = mapped_column(Integer, default=0)
    category: Mapped[str] = mapped_column(String(30))
    severity: Mapped[str] = mapped_column(String(10))
    message: Mapped[str] = mapped_column(Text)
    suggestion: Mapped[str] = mapped_column(Text)
    code_example: Mapped[str | None] = mapped_column(Text, nullable=True)
    line_number: Mapped[int | None] = mapped_column(
        Integer, nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        default=lambda: datetime.now(UTC),
        server_default=func.now(),
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "snippet_id": self.snippet_id,
            "category": self.category,
            "severity": self.severity,
            "message": self.message,
            "suggestion": self.suggestion,
            "code_example": self.code_example,
            "line_number": self.line_number,
        }
