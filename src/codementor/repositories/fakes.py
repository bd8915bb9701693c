"""In-memory fake repositories for testing.

Dict-backed implementations of all repository protocols.
Dict-backed, no I/O; used by the unit tests.
"""

# pyright: reportUnusedFunction=false

from __future__ import annotations

import copy
import uuid
from datetime import UTC, datetime
from typing import Any

from codementor.constants import (
    ID_HEX_LENGTH,
    JobStatus,
    LiveEvent,
    SessionStatus,
)
from codementor.models.feedback import Feedback
from codementor.models.job import AnalysisJob
from codementor.models.progress import ProgressProfile
from codementor.models.session import CodeSession
from codementor.models.snippet import CodeSnippet
from codementor.models.usage import UsageRecord
from codementor.models.user import User
from codementor.services.events import StatusEvent, envelope


def _new_id() -> str:
    return uuid.uuid4().hex[:ID_HEX_LENGTH]


class FakeUserRepository:
    """Dict-backed UserRepository for testing."""

    def __init__(self) -> None:
        self._store: dict[str, User] = {}

    async def get_by_id(self, user_id: str) -> User | None:
        return self._store.get(user_id)

    async def create(self, user: User) -> User:
        if not user.id:
            user.id = _new_id()
        self._store[user.id] = user
        return user


class FakeSessionRepository:
    """Dict-backed SessionRepository that records every status write."""

    def __init__(
        self, snippets: FakeSnippetRepository | None = None
    ) -> None:
        self._store: dict[str, CodeSession] = {}
        self.snippets = snippets or FakeSnippetRepository()
        self.status_history: dict[str, list[str]] = {}

    async def get_by_id(
        self, session_id: str
    ) -> CodeSession | None:
        return self._store.get(session_id)

    async def list_by_owner(self, owner_id: str) -> list[CodeSession]:
        owned = [
            s for s in self._store.values() if s.owner_id == owner_id
        ]
        return sorted(owned, key=lambda s: s.created_at, reverse=True)

    async def create(self, code_session: CodeSession) -> CodeSession:
        if not code_session.id:
            code_session.id = _new_id()
        code_session.created_at = datetime.now(UTC)
        if code_session.attempt is None:
            code_session.attempt = 0
        self._store[code_session.id] = code_session
        self.status_history[code_session.id] = [code_session.status]
        return code_session

    async def create_with_snippets(
        self, code_session: CodeSession, snippets: list[CodeSnippet]
    ) -> CodeSession:
        await self.create(code_session)
        for snippet in snippets:
            snippet.session_id = code_session.id
        await self.snippets.bulk_create(snippets)
        return code_session

    async def delete(self, session_id: str) -> None:
        self._store.pop(session_id, None)
        self.snippets.remove_session(session_id)

    async def try_set_status(
        self,
        session_id: str,
        expected: set[str],
        new_status: str,
        message: str | None = None,
    ) -> bool:
        """CAS: set status only if current status is in expected set."""
        sess = self._store.get(session_id)
        if sess is None or sess.status not in expected:
            return False
        sess.status = new_status
        if message is not None:
            sess.status_message = message
        self.status_history.setdefault(session_id, []).append(new_status)
        return True

    async def start_attempt(
        self,
        session_id: str,
        expected: set[str],
        message: str | None = None,
    ) -> int | None:
        sess = self._store.get(session_id)
        if sess is None or sess.status not in expected:
            return None
        sess.status = SessionStatus.ANALYZING
        sess.status_message = message
        sess.attempt = (sess.attempt or 0) + 1
        self.status_history.setdefault(session_id, []).append(
            SessionStatus.ANALYZING
        )
        return sess.attempt


class FakeSnippetRepository:
    """List-backed SnippetRepository for testing."""

    def __init__(self) -> None:
        self._store: list[CodeSnippet] = []

    async def get_by_id(self, snippet_id: str) -> CodeSnippet | None:
        return next(
            (s for s in self._store if s.id == snippet_id), None
        )

    async def list_by_session(
        self, session_id: str
    ) -> list[CodeSnippet]:
        return sorted(
            (s for s in self._store if s.session_id == session_id),
            key=lambda s: s.position,
        )

    async def bulk_create(
        self, snippets: list[CodeSnippet]
    ) -> list[CodeSnippet]:
        for snippet in snippets:
            if not snippet.id:
                snippet.id = _new_id()
        self._store.extend(snippets)
        return snippets

    def remove_session(self, session_id: str) -> None:
        self._store = [s for s in self._store if s.session_id != session_id]


class FakeFeedbackRepository:
    """List-backed FeedbackRepository for testing."""

    def __init__(self) -> None:
        self._store: list[Feedback] = []

    async def get_by_id(self, feedback_id: str) -> Feedback | None:
        return next(
            (f for f in self._store if f.id == feedback_id), None
        )

    async def list_by_session(
        self, session_id: str, attempt: int | None = None
    ) -> list[Feedback]:
        return sorted(
            (
                f
                for f in self._store
                if f.session_id == session_id
                and (attempt is None or f.attempt == attempt)
            ),
            key=lambda f: f.position,
        )

    async def create(self, feedback: Feedback) -> Feedback:
        if not feedback.id:
            feedback.id = _new_id()
        self._store.append(feedback)
        return feedback


class FakeUsageRepository:
    """List-backed UsageRepository for testing."""

    def __init__(self) -> None:
        self.records: list[UsageRecord] = []

    async def create(self, record: UsageRecord) -> UsageRecord:
        if not record.id:
            record.id = _new_id()
        record.created_at = datetime.now(UTC)
        self.records.append(record)
        return record

    async def list_by_user(self, user_id: str) -> list[UsageRecord]:
        return [r for r in self.records if r.user_id == user_id]


def _clone_profile(profile: ProgressProfile) -> ProgressProfile:
    return ProgressProfile(
        id=profile.id,
        user_id=profile.user_id,
        total_submissions=profile.total_submissions,
        mistakes=copy.deepcopy(profile.mistakes),
        improvement_score=profile.improvement_score,
        language_counts=dict(profile.language_counts),
        personality=copy.deepcopy(profile.personality),
        last_analyzed_at=profile.last_analyzed_at,
        folded_sessions=list(profile.folded_sessions or []),
        version=profile.version,
    )


class FakeProgressRepository:
    """Dict-backed ProgressRepository with version checks.

    Reads return copies so concurrent read-modify-write cycles in
    tests behave like independent database reads.
    """

    def __init__(self) -> None:
        self._store: dict[str, ProgressProfile] = {}
        self.conflicts = 0

    async def get_by_user(
        self, user_id: str
    ) -> ProgressProfile | None:
        stored = self._store.get(user_id)
        return _clone_profile(stored) if stored else None

    async def save(
        self,
        profile: ProgressProfile,
        expected_version: int | None,
    ) -> bool:
        current = self._store.get(profile.user_id)
        current_version = current.version if current else None
        if current_version != expected_version:
            self.conflicts += 1
            return False
        if not profile.id:
            profile.id = _new_id()
        profile.version = (expected_version or 0) + 1
        self._store[profile.user_id] = _clone_profile(profile)
        return True


class FakeJobRepository:
    """Dict-backed JobRepository for testing."""

    def __init__(self) -> None:
        self._store: dict[str, AnalysisJob] = {}

    async def create(self, job: AnalysisJob) -> AnalysisJob:
        if not job.id:
            job.id = _new_id()
        now = datetime.now(UTC)
        job.status = job.status or JobStatus.QUEUED
        job.attempts = job.attempts or 0
        job.available_at = job.available_at or now
        job.created_at = now
        self._store[job.id] = job
        return job

    async def get_by_id(self, job_id: str) -> AnalysisJob | None:
        return self._store.get(job_id)

    async def claim_due(
        self, worker_id: str, now: datetime, limit: int
    ) -> list[AnalysisJob]:
        due = sorted(
            (
                j
                for j in self._store.values()
                if j.status == JobStatus.QUEUED and j.available_at <= now
            ),
            key=lambda j: j.created_at,
        )[:limit]
        for job in due:
            job.status = JobStatus.RUNNING
            job.worker_id = worker_id
            job.attempts += 1
            job.heartbeat_at = now
        return due

    async def reclaim_stale(self, cutoff: datetime) -> int:
        count = 0
        for job in self._store.values():
            if (
                job.status == JobStatus.RUNNING
                and job.heartbeat_at is not None
                and job.heartbeat_at < cutoff
            ):
                job.status = JobStatus.QUEUED
                job.worker_id = None
                count += 1
        return count

    async def heartbeat(
        self, worker_id: str, job_ids: list[str], now: datetime
    ) -> None:
        for job_id in job_ids:
            job = self._store.get(job_id)
            if job and job.worker_id == worker_id:
                job.heartbeat_at = now

    async def finish(
        self,
        job_id: str,
        worker_id: str,
        status: str,
        now: datetime,
        error: str | None = None,
    ) -> bool:
        job = self._store.get(job_id)
        if job is None or job.worker_id != worker_id:
            return False
        job.status = status
        job.finished_at = now
        job.last_error = error
        return True

    async def reschedule(
        self,
        job_id: str,
        worker_id: str,
        available_at: datetime,
        error: str,
    ) -> bool:
        job = self._store.get(job_id)
        if job is None or job.worker_id != worker_id:
            return False
        job.status = JobStatus.QUEUED
        job.worker_id = None
        job.available_at = available_at
        job.last_error = error
        return True


# ── Service fakes ─────────────────────────────────────


class RecordingNotifier:
    """Notifier test double that keeps every emitted frame in order."""

    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []

    async def emit_feedback(
        self, session_id: str, item: dict[str, Any]
    ) -> None:
        self.events.append(
            (session_id, envelope(LiveEvent.FEEDBACK_UPDATE, item))
        )

    async def emit_status(
        self, session_id: str, status: str, message: str = ""
    ) -> None:
        self.events.append(
            (
                session_id,
                envelope(
                    LiveEvent.ANALYSIS_STATUS,
                    StatusEvent(status, message).to_dict(),
                ),
            )
        )

    def of_kind(self, event: LiveEvent) -> list[dict[str, Any]]:
        return [
            frame["data"]
            for _, frame in self.events
            if frame["event"] == event
        ]

    def statuses(self, session_id: str) -> list[str]:
        return [
            frame["data"]["status"]
            for sid, frame in self.events
            if sid == session_id
            and frame["event"] == LiveEvent.ANALYSIS_STATUS
        ]
