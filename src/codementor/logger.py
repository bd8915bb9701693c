"""Per-job audit trail written as JSON lines to ``<log_dir>/jobs.log``.

Each line carries a ``type`` (``job``, ``stage`` or ``error``), a UTC
timestamp and the ``job_id`` it belongs to, so one delivery can be
followed end to end with ``grep job_id``.
"""

import json
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from codementor.constants import ERROR_TRUNCATION_CHARS

_LOGGER_NAME = "codementor.joblog"
_FILE_NAME = "jobs.log"


class JobLogger:
    def __init__(self, log_dir: Path, level: str = "INFO") -> None:
        log_dir.mkdir(parents=True, exist_ok=True)
        self._logger = logging.getLogger(_LOGGER_NAME)
        self._logger.setLevel(level.upper())
        if not self._logger.handlers:
            sink = logging.FileHandler(log_dir / _FILE_NAME)
            sink.setFormatter(logging.Formatter("%(message)s"))
            self._logger.addHandler(sink)

    def _write(self, level: int, kind: str, job_id: str, **fields: Any) -> None:
        record = {
            "type": kind,
            "timestamp": datetime.now(UTC).isoformat(),
            "job_id": job_id,
            **fields,
        }
        self._logger.log(level, json.dumps(record))

    def log_job(
        self,
        job_id: str,
        session_id: str,
        attempt: int,
        outcome: str,
        duration_ms: float,
        tokens: int = 0,
        cost: float = 0.0,
    ) -> None:
        """One line per delivery, written when the orchestrator returns."""
        self._write(
            logging.INFO,
            "job",
            job_id,
            session_id=session_id,
            attempt=attempt,
            outcome=outcome,
            duration_ms=duration_ms,
            tokens=tokens,
            cost=cost,
        )

    def log_stage(
        self,
        job_id: str,
        stage_name: str,
        status: str,
        duration_ms: float,
        error: str | None = None,
    ) -> None:
        self._write(
            logging.INFO,
            "stage",
            job_id,
            stage=stage_name,
            status=status,
            duration_ms=duration_ms,
            error=error,
        )

    def log_error(self, job_id: str, component: str, error: str) -> None:
        self._write(
            logging.ERROR,
            "error",
            job_id,
            component=component,
            error=error[:ERROR_TRUNCATION_CHARS],
        )
