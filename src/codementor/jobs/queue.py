"""Durable analysis job queue over the ``analysis_jobs`` table.

Delivery is at-least-once:

- ``claim`` leases due jobs to one worker (compare-and-set on status)
  and first returns leases whose heartbeat went stale to the queue.
- ``complete`` marks a job ``done``.
- ``fail`` reschedules with exponential backoff
  (``backoff * 2 ** (attempts - 1)``) until ``max_attempts`` is
  reached, then marks the job ``dead``. Errors that cannot succeed on
  redelivery (missing rows, invalid payloads) go ``dead`` at once.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from typing import Any

from codementor.constants import (
    ANALYZE_CODE_JOB,
    ERROR_TRUNCATION_CHARS,
    JobStatus,
)
from codementor.models.job import AnalysisJob
from codementor.repositories.protocols import JobRepository
from codementor.resilience.errors import error_kind, is_permanent

logger = logging.getLogger(__name__)


class JobQueue:
    def __init__(
        self,
        jobs: JobRepository,
        *,
        max_attempts: int = 3,
        backoff_seconds: float = 15.0,
        stale_seconds: float = 600.0,
    ) -> None:
        self._jobs = jobs
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self.stale_seconds = stale_seconds

    async def enqueue(
        self, payload: dict[str, Any], kind: str = ANALYZE_CODE_JOB
    ) -> AnalysisJob:
        now = datetime.now(UTC)
        job = await self._jobs.create(
            AnalysisJob(
                kind=kind,
                payload=payload,
                status=JobStatus.QUEUED,
                attempts=0,
                available_at=now,
                created_at=now,
            )
        )
        logger.info(
            "event=job_enqueued job_id=%s kind=%s", job.id, job.kind
        )
        return job

    async def get(self, job_id: str) -> AnalysisJob | None:
        return await self._jobs.get_by_id(job_id)

    def backoff_for(self, attempts: int) -> float:
        """Delay before the next delivery after ``attempts`` tries."""
        return self.backoff_seconds * (2 ** max(attempts - 1, 0))

    async def claim(
        self, worker_id: str, limit: int
    ) -> list[AnalysisJob]:
        """Lease up to *limit* due jobs to *worker_id*."""
        if limit < 1:
            return []
        now = datetime.now(UTC)
        reclaimed = await self._jobs.reclaim_stale(
            now - timedelta(seconds=self.stale_seconds)
        )
        if reclaimed:
            logger.warning(
                "event=jobs_reclaimed count=%d worker_id=%s",
                reclaimed,
                worker_id,
            )

        leased: list[AnalysisJob] = []
        for job in await self._jobs.claim_due(worker_id, now, limit):
            # Stale reclaims re-deliver without going through fail()
            if job.attempts > self.max_attempts:
                await self._jobs.finish(
                    job.id,
                    worker_id,
                    JobStatus.DEAD,
                    now,
                    error=job.last_error or "Lease expired too many times",
                )
                logger.error(
                    "event=job_dead job_id=%s attempts=%d reason=stale",
                    job.id,
                    job.attempts,
                )
                continue
            leased.append(job)
        return leased

    async def heartbeat(self, worker_id: str, job_ids: list[str]) -> None:
        await self._jobs.heartbeat(worker_id, job_ids, datetime.now(UTC))

    async def complete(self, job: AnalysisJob, worker_id: str) -> bool:
        done = await self._jobs.finish(
            job.id, worker_id, JobStatus.DONE, datetime.now(UTC)
        )
        if not done:
            logger.warning(
                "event=lease_lost job_id=%s worker_id=%s", job.id, worker_id
            )
        return done

    async def fail(
        self, job: AnalysisJob, worker_id: str, error: BaseException
    ) -> str:
        """Record a failed delivery; returns the job's new status."""
        now = datetime.now(UTC)
        text = f"{type(error).__name__}: {error}"[:ERROR_TRUNCATION_CHARS]

        if is_permanent(error) or job.attempts >= self.max_attempts:
            await self._jobs.finish(
                job.id, worker_id, JobStatus.DEAD, now, error=text
            )
            logger.error(
                "event=job_dead job_id=%s attempts=%d kind=%s error=%s",
                job.id,
                job.attempts,
                error_kind(error),
                text,
            )
            return JobStatus.DEAD

        delay = self.backoff_for(job.attempts)
        await self._jobs.reschedule(
            job.id, worker_id, now + timedelta(seconds=delay), text
        )
        logger.warning(
            "event=job_retry job_id=%s attempts=%d delay_s=%.1f kind=%s"
            " error=%s",
            job.id,
            job.attempts,
            delay,
            error_kind(error),
            text,
        )
        return JobStatus.QUEUED
