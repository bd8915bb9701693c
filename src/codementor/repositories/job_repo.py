"""SQL implementation of JobRepository backing the durable queue table."""

from datetime import datetime

from sqlalchemy import select
from sqlalchemy import update as sa_update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from codementor.constants import JobStatus
from codementor.models.job import AnalysisJob


class SqlJobRepository:
    """Lease-based job storage.

    Claims are compare-and-set updates on ``status`` so two workers
    polling the same table never both win the same row, without
    relying on ``FOR UPDATE SKIP LOCKED`` (unavailable on SQLite).
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        self._session_factory = session_factory

    async def create(self, job: AnalysisJob) -> AnalysisJob:
        async with self._session_factory() as session, session.begin():
            session.add(job)
        return job

    async def get_by_id(self, job_id: str) -> AnalysisJob | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(AnalysisJob).where(AnalysisJob.id == job_id)
            )
            return result.scalar_one_or_none()

    async def claim_due(
        self, worker_id: str, now: datetime, limit: int
    ) -> list[AnalysisJob]:
        async with self._session_factory() as session, session.begin():
            candidates = await session.execute(
                select(AnalysisJob.id)
                .where(
                    AnalysisJob.status == JobStatus.QUEUED,
                    AnalysisJob.available_at <= now,
                )
                .order_by(AnalysisJob.created_at)
                .limit(limit)
            )
            claimed: list[str] = []
            for job_id in candidates.scalars().all():
                result = await session.execute(
                    sa_update(AnalysisJob)
                    .where(
                        AnalysisJob.id == job_id,
                        AnalysisJob.status == JobStatus.QUEUED,
                    )
                    .values(
                        status=JobStatus.RUNNING,
                        worker_id=worker_id,
                        attempts=AnalysisJob.attempts + 1,
                        heartbeat_at=now,
                    )
                )
                if getattr(result, "rowcount", 0):
                    claimed.append(job_id)
            if not claimed:
                return []
            rows = await session.execute(
                select(AnalysisJob)
                .where(AnalysisJob.id.in_(claimed))
                .order_by(AnalysisJob.created_at)
                .execution_options(populate_existing=True)
            )
            return list(rows.scalars().all())

    async def reclaim_stale(self, cutoff: datetime) -> int:
        async with self._session_factory() as session, session.begin():
            result = await session.execute(
                sa_update(AnalysisJob)
                .where(
                    AnalysisJob.status == JobStatus.RUNNING,
                    AnalysisJob.heartbeat_at < cutoff,
                )
                .values(status=JobStatus.QUEUED, worker_id=None)
            )
        return getattr(result, "rowcount", 0) or 0

    async def heartbeat(
        self, worker_id: str, job_ids: list[str], now: datetime
    ) -> None:
        if not job_ids:
            return
        async with self._session_factory() as session, session.begin():
            await session.execute(
                sa_update(AnalysisJob)
                .where(
                    AnalysisJob.id.in_(job_ids),
                    AnalysisJob.worker_id == worker_id,
                )
                .values(heartbeat_at=now)
            )

    async def finish(
        self,
        job_id: str,
        worker_id: str,
        status: str,
        now: datetime,
        error: str | None = None,
    ) -> bool:
        async with self._session_factory() as session, session.begin():
            result = await session.execute(
                sa_update(AnalysisJob)
                .where(
                    AnalysisJob.id == job_id,
                    AnalysisJob.worker_id == worker_id,
                )
                .values(status=status, finished_at=now, last_error=error)
            )
        return bool(getattr(result, "rowcount", 0))

    async def reschedule(
        self,
        job_id: str,
        worker_id: str,
        available_at: datetime,
        error: str,
    ) -> bool:
        async with self._session_factory() as session, session.begin():
            result = await session.execute(
                sa_update(AnalysisJob)
                .where(
                    AnalysisJob.id == job_id,
                    AnalysisJob.worker_id == worker_id,
                )
                .values(
                    status=JobStatus.QUEUED,
                    worker_id=None,
                    available_at=available_at,
                    last_error=error,
                )
            )
        return bool(getattr(result, "rowcount", 0))
