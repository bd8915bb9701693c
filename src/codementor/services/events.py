"""Live event payloads and the notifier seam used by the pipeline."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Protocol

from codementor.constants import LiveEvent

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StatusEvent:
    """``analysis-status`` payload."""

    status: str
    message: str = ""
    timestamp: str = field(
        default_factory=lambda: datetime.now(UTC).isoformat()
    )

    def to_dict(self) -> dict[str, str]:
        return {
            "status": self.status,
            "message": self.message,
            "timestamp": self.timestamp,
        }


def envelope(event: LiveEvent, data: dict[str, Any]) -> dict[str, Any]:
    """Wire frame sent to live channel clients."""
    return {"event": str(event), "data": data}


class Notifier(Protocol):
    """Fire-and-forget fan-out to a session's live subscribers."""

    async def emit_feedback(
        self, session_id: str, item: dict[str, Any]
    ) -> None: ...

    async def emit_status(
        self, session_id: str, status: str, message: str = ""
    ) -> None: ...


class LoggingNotifier:
    """Notifier for processes without live connections (standalone worker).

    Events are only logged; clients reconcile through the read endpoints.
    """

    async def emit_feedback(
        self, session_id: str, item: dict[str, Any]
    ) -> None:
        logger.debug(
            "event=feedback_update session_id=%s feedback_id=%s",
            session_id,
            item.get("id"),
        )

    async def emit_status(
        self, session_id: str, status: str, message: str = ""
    ) -> None:
        logger.info(
            "event=analysis_status session_id=%s status=%s message=%s",
            session_id,
            status,
            message,
        )
