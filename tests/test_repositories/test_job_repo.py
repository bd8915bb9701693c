"""Lease semantics of SqlJobRepository against SQLite."""

from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from codementor.constants import JobStatus
from codementor.models.job import AnalysisJob
from codementor.repositories.job_repo import SqlJobRepository


@pytest.fixture
def repo(
    session_factory: async_sessionmaker[AsyncSession],
) -> SqlJobRepository:
    return SqlJobRepository(session_factory)


async def _queued(
    repo: SqlJobRepository, n: int = 1, delay: float = 0.0
) -> list[AnalysisJob]:
    now = datetime.now(UTC)
    jobs: list[AnalysisJob] = []
    for i in range(n):
        jobs.append(
            await repo.create(
                AnalysisJob(
                    payload={"session_id": f"s{i}", "user_id": "u"},
                    available_at=now + timedelta(seconds=delay),
                    created_at=now + timedelta(microseconds=i),
                )
            )
        )
    return jobs


async def test_claim_leases_in_creation_order(
    repo: SqlJobRepository,
) -> None:
    await _queued(repo, 3)
    claimed = await repo.claim_due("w1", datetime.now(UTC), 2)
    assert [j.payload["session_id"] for j in claimed] == ["s0", "s1"]
    assert all(j.status == JobStatus.RUNNING for j in claimed)
    assert all(j.worker_id == "w1" for j in claimed)
    assert all(j.attempts == 1 for j in claimed)


async def test_claimed_job_not_delivered_twice(
    repo: SqlJobRepository,
) -> None:
    await _queued(repo, 1)
    first = await repo.claim_due("w1", datetime.now(UTC), 5)
    second = await repo.claim_due("w2", datetime.now(UTC), 5)
    assert len(first) == 1
    assert second == []


async def test_future_jobs_not_due(repo: SqlJobRepository) -> None:
    await _queued(repo, 1, delay=60)
    assert await repo.claim_due("w1", datetime.now(UTC), 5) == []


async def test_finish_requires_lease_owner(
    repo: SqlJobRepository,
) -> None:
    (job,) = await _queued(repo)
    await repo.claim_due("w1", datetime.now(UTC), 1)
    now = datetime.now(UTC)
    assert await repo.finish(job.id, "w2", JobStatus.DONE, now) is False
    assert await repo.finish(job.id, "w1", JobStatus.DONE, now) is True
    stored = await repo.get_by_id(job.id)
    assert stored is not None
    assert stored.status == JobStatus.DONE
    assert stored.finished_at is not None


async def test_reschedule_returns_job_to_queue(
    repo: SqlJobRepository,
) -> None:
    (job,) = await _queued(repo)
    await repo.claim_due("w1", datetime.now(UTC), 1)
    later = datetime.now(UTC) + timedelta(seconds=30)
    assert await repo.reschedule(job.id, "w1", later, "RuntimeError: x")
    stored = await repo.get_by_id(job.id)
    assert stored is not None
    assert stored.status == JobStatus.QUEUED
    assert stored.worker_id is None
    assert stored.last_error == "RuntimeError: x"
    assert await repo.claim_due("w1", datetime.now(UTC), 1) == []
    redelivered = await repo.claim_due("w1", later, 1)
    assert [j.attempts for j in redelivered] == [2]


async def test_stale_leases_reclaimed(repo: SqlJobRepository) -> None:
    (job,) = await _queued(repo)
    start = datetime.now(UTC)
    await repo.claim_due("w1", start, 1)
    await repo.heartbeat("w1", [job.id], start)

    assert await repo.reclaim_stale(start - timedelta(seconds=1)) == 0
    assert await repo.reclaim_stale(start + timedelta(seconds=1)) == 1
    stored = await repo.get_by_id(job.id)
    assert stored is not None
    assert stored.status == JobStatus.QUEUED


async def test_heartbeat_ignores_foreign_leases(
    repo: SqlJobRepository,
) -> None:
    (job,) = await _queued(repo)
    start = datetime.now(UTC)
    await repo.claim_due("w1", start, 1)
    await repo.heartbeat("w2", [job.id], start + timedelta(minutes=5))
    # Heartbeat by w2 did not extend w1's lease
    assert await repo.reclaim_stale(start + timedelta(seconds=1)) == 1
