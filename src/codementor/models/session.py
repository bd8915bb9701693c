"""Analysis session ORM model."""

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from codementor.constants import SessionOrigin, SessionStatus
from codementor.models._ids import new_id
from codementor.models.base import Base


class CodeSession(Base):
    __tablename__ = "code_sessions"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=new_id
    )
    owner_id: Mapped[str] = mapped_column(
        ForeignKey("users.id"), index=True
    )
    title: Mapped[str] = mapped_column(String(200))
    language: Mapped[str] = mapped_column(String(50))
    origin: Mapped[str] = mapped_column(
        String(20), default=SessionOrigin.SNIPPET
    )
    status: Mapped[str] = mapped_column(
        String(20), default=SessionStatus.PENDING
    )
    # Incremented each time a job picks the session up
    attempt: Mapped[int] = mapped_column(Integer, default=0)
    # Last human-readable status message (error text when failed)
    status_message: Mapped[str | None] = mapped_column(
        Text, nullable=True
    )
    repository_url: Mapped[str | None] = mapped_column(
        String(500), nullable=True
    )
    repository_branch: Mapped[str | None] = mapped_column(
        String(200), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        default=lambda: datetime.now(UTC),
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        default=lambda: datetime.now(UTC),
        server_default=func.now(),
        onupdate=lambda: datetime.now(UTC),
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "title": self.title,
            "language": self.language,
            "origin": self.origin,
            "status": self.status,
            "status_message": self.status_message,
            "repository_url": self.repository_url,
            "repository_branch": self.repository_branch,
            "created_at": self.created_at.isoformat(),
        }
