"""AI usage record ORM model.

One row per analysis run that spent tokens. ``attempt`` is the session
attempt that made the calls, so a redelivered job adds a row for its own
run and never rewrites an earlier one.
"""

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import Float, ForeignKey, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from codementor.models._ids import new_id
from codementor.models.base import Base


class UsageRecord(Base):
    __tablename__ = "usage_records"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=new_id
    )
    user_id: Mapped[str] = mapped_column(
        ForeignKey("users.id"), index=True
    )
    session_id: Mapped[str] = mapped_column(
        ForeignKey("code_sessions.id", ondelete="CASCADE")
    )
    attempt: Mapped[int] = mapped_column(Integer, default=1)
    tokens_used: Mapped[int] = mapped_column(Integer)
    estimated_cost: Mapped[float] = mapped_column(Float)
    model: Mapped[str] = mapped_column(String(100))
    created_at: Mapped[datetime] = mapped_column(
        default=lambda: datetime.now(UTC),
        server_default=func.now(),
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "session_id": self.session_id,
            "attempt": self.attempt,
            "tokens_used": self.tokens_used,
            "estimated_cost": self.estimated_cost,
            "model": self.model,
            "created_at": self.created_at.isoformat(),
        }
