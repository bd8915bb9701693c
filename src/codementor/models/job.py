"""Durable analysis job ORM model (the queue row)."""

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import JSON, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from codementor.constants import ANALYZE_CODE_JOB, JobStatus
from codementor.models._ids import new_id
from codementor.models.base import Base


class AnalysisJob(Base):
    __tablename__ = "analysis_jobs"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=new_id
    )
    kind: Mapped[str] = mapped_column(
        String(50), default=ANALYZE_CODE_JOB
    )
    payload: Mapped[dict[str, Any]] = mapped_column(JSON)
    status: Mapped[str] = mapped_column(
        String(20), default=JobStatus.QUEUED, index=True
    )
    attempts: Mapped[int] = mapped_column(Integer, default=0)
    worker_id: Mapped[str | None] = mapped_column(
        String(100), nullable=True
    )
    available_at: Mapped[datetime] = mapped_column(
        default=lambda: datetime.now(UTC)
    )
    heartbeat_at: Mapped[datetime | None] = mapped_column(nullable=True)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        default=lambda: datetime.now(UTC),
        server_default=func.now(),
    )
    finished_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind,
            "payload": dict(self.payload),
            "status": self.status,
            "attempts": self.attempts,
            "last_error": self.last_error,
        }
