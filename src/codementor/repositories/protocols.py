"""Protocol-based repository interfaces.

SQL implementations satisfy these protocols structurally (no inheritance).
Test doubles can be plain classes or mocks matching the same signature.
All cross-entity lookups go through explicit foreign ids; no joins.
"""

from datetime import datetime
from typing import Protocol

from codementor.models.feedback import Feedback
from codementor.models.job import AnalysisJob
from codementor.models.progress import ProgressProfile
from codementor.models.session import CodeSession
from codementor.models.snippet import CodeSnippet
from codementor.models.usage import UsageRecord
from codementor.models.user import User


class UserRepository(Protocol):
    async def get_by_id(self, user_id: str) -> User | None: ...
    async def create(self, user: User) -> User: ...


class SessionRepository(Protocol):
    async def get_by_id(self, session_id: str) -> CodeSession | None: ...
    async def list_by_owner(self, owner_id: str) -> list[CodeSession]: ...
    async def create(self, session: CodeSession) -> CodeSession: ...
    async def create_with_snippets(
        self, session: CodeSession, snippets: list[CodeSnippet]
    ) -> CodeSession: ...
    async def delete(self, session_id: str) -> None: ...
    async def try_set_status(
        self,
        session_id: str,
        expected: set[str],
        new_status: str,
        message: str | None = None,
    ) -> bool: ...
    async def start_attempt(
        self,
        session_id: str,
        expected: set[str],
        message: str | None = None,
    ) -> int | None: ...


class SnippetRepository(Protocol):
    async def get_by_id(self, snippet_id: str) -> CodeSnippet | None: ...
    async def list_by_session(
        self, session_id: str
    ) -> list[CodeSnippet]: ...
    async def bulk_create(
        self, snippets: list[CodeSnippet]
    ) -> list[CodeSnippet]: ...


class FeedbackRepository(Protocol):
    async def get_by_id(self, feedback_id: str) -> Feedback | None: ...
    async def list_by_session(
        self, session_id: str, attempt: int | None = None
    ) -> list[Feedback]: ...
    async def create(self, feedback: Feedback) -> Feedback: ...


class UsageRepository(Protocol):
    async def create(self, record: UsageRecord) -> UsageRecord: ...
    async def list_by_user(self, user_id: str) -> list[UsageRecord]: ...


class ProgressRepository(Protocol):
    async def get_by_user(
        self, user_id: str
    ) -> ProgressProfile | None: ...
    async def save(
        self, profile: ProgressProfile, expected_version: int | None
    ) -> bool: ...


class JobRepository(Protocol):
    async def create(self, job: AnalysisJob) -> AnalysisJob: ...
    async def get_by_id(self, job_id: str) -> AnalysisJob | None: ...
    async def claim_due(
        self, worker_id: str, now: datetime, limit: int
    ) -> list[AnalysisJob]: ...
    async def reclaim_stale(self, cutoff: datetime) -> int: ...
    async def heartbeat(
        self, worker_id: str, job_ids: list[str], now: datetime
    ) -> None: ...
    async def finish(
        self,
        job_id: str,
        worker_id: str,
        status: str,
        now: datetime,
        error: str | None = None,
    ) -> bool: ...
    async def reschedule(
        self,
        job_id: str,
        worker_id: str,
        available_at: datetime,
        error: str,
    ) -> bool: ...
