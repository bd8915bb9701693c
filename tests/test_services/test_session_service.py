"""Tests for session intake, owner-scoped reads and refactor."""

from unittest.mock import AsyncMock

import pytest
from pydantic import ValidationError as PydanticValidationError

from codementor.auth.tokens import Principal
from codementor.config import Settings
from codementor.constants import SessionOrigin, SessionStatus
from codementor.jobs.queue import JobQueue
from codementor.models.feedback import Feedback
from codementor.reasoning.client import ReasoningClient
from codementor.reasoning.schemas import RefactorResult
from codementor.resilience.errors import NotFound, ValidationFailure
from codementor.services.schemas import SessionCreate, SnippetFile
from codementor.services.session_service import SessionService, count_lines
from tests.factories import FakeStores, seed_session


@pytest.fixture
def reasoning() -> AsyncMock:
    return AsyncMock(spec=ReasoningClient)


@pytest.fixture
def service(stores: FakeStores, reasoning: AsyncMock) -> SessionService:
    return SessionService(
        sessions=stores.sessions,
        snippets=stores.snippets,
        feedback=stores.feedback,
        queue=JobQueue(stores.jobs),
        reasoning=reasoning,
        settings=Settings(max_snippet_chars=50),
    )


def test_count_lines() -> None:
    assert count_lines("a") == 1
    assert count_lines("a\nb\n") == 3


# ── create_session ───────────────────────────────────────


async def test_snippet_session_persisted_and_enqueued(
    stores: FakeStores, service: SessionService, principal: Principal
) -> None:
    session = await service.create_session(
        principal,
        SessionCreate(
            title="  My review ", language="python ", code="x = 1\ny = 2"
        ),
    )

    assert session.status == SessionStatus.PENDING
    assert session.title == "My review"
    assert session.language == "python"
    assert session.owner_id == "user-1"

    (snippet,) = await stores.snippets.list_by_session(session.id)
    assert snippet.file_name == "code.txt"
    assert snippet.line_count == 2

    (job,) = await JobQueue(stores.jobs).claim("w1", 10)
    assert job.payload == {"session_id": session.id, "user_id": "user-1"}
    assert job.attempts == 1


async def test_repository_session_keeps_file_order(
    stores: FakeStores, service: SessionService, principal: Principal
) -> None:
    session = await service.create_session(
        principal,
        SessionCreate(
            title="Repo",
            language="go",
            origin=SessionOrigin.REPOSITORY,
            repository_url="https://example.com/repo.git",
            repository_branch="main",
            files=[
                SnippetFile(content="package a", path="cmd/a/main.go"),
                SnippetFile(content="package b", file_name="b.go"),
            ],
        ),
    )
    snippets = await stores.snippets.list_by_session(session.id)
    assert [s.file_name for s in snippets] == ["main.go", "b.go"]
    assert [s.position for s in snippets] == [0, 1]
    assert snippets[0].path == "cmd/a/main.go"
    assert session.repository_branch == "main"


@pytest.mark.parametrize(
    "request_body",
    [
        SessionCreate(title="t", language="python"),
        SessionCreate(title="t", language="python", code="   "),
        SessionCreate(
            title="t",
            language="go",
            origin=SessionOrigin.REPOSITORY,
            files=[SnippetFile(content="x")],
        ),
        SessionCreate(
            title="t",
            language="go",
            origin=SessionOrigin.REPOSITORY,
            repository_url="https://example.com/r.git",
        ),
        SessionCreate(title="t", language="python", code="x" * 51),
    ],
    ids=[
        "no-code",
        "blank-code",
        "no-repo-url",
        "no-files",
        "too-long",
    ],
)
async def test_invalid_requests_rejected_before_persisting(
    stores: FakeStores,
    service: SessionService,
    principal: Principal,
    request_body: SessionCreate,
) -> None:
    with pytest.raises(ValidationFailure):
        await service.create_session(principal, request_body)
    assert await stores.sessions.list_by_owner("user-1") == []


@pytest.mark.parametrize("title", ["", "   ", "\t\n"])
def test_blank_title_rejected(title: str) -> None:
    with pytest.raises(PydanticValidationError, match="title"):
        SessionCreate(title=title, language="python", code="x = 1")


async def test_enqueue_failure_leaves_no_session(
    stores: FakeStores, principal: Principal, reasoning: AsyncMock
) -> None:
    queue = JobQueue(stores.jobs)
    queue.enqueue = AsyncMock(  # type: ignore[method-assign]
        side_effect=ConnectionError("database is locked")
    )
    service = SessionService(
        sessions=stores.sessions,
        snippets=stores.snippets,
        feedback=stores.feedback,
        queue=queue,
        reasoning=reasoning,
    )

    with pytest.raises(ConnectionError):
        await service.create_session(
            principal,
            SessionCreate(title="t", language="python", code="x = 1"),
        )

    assert await stores.sessions.list_by_owner("user-1") == []
    (job_payload,) = queue.enqueue.await_args.args
    assert await stores.sessions.get_by_id(job_payload["session_id"]) is None
    assert (
        await stores.snippets.list_by_session(job_payload["session_id"]) == []
    )


# ── Reads ────────────────────────────────────────────────


async def test_sessions_are_owner_scoped(
    stores: FakeStores, service: SessionService, principal: Principal
) -> None:
    mine = await seed_session(stores, ["x"])
    theirs = await seed_session(stores, ["y"], owner_id="user-2")

    assert (await service.get_session(principal, mine.id)).id == mine.id
    with pytest.raises(NotFound, match="Session not found"):
        await service.get_session(principal, theirs.id)
    listed = await service.list_sessions(principal)
    assert [s.id for s in listed] == [mine.id]


async def test_feedback_read_returns_latest_attempt(
    stores: FakeStores, service: SessionService, principal: Principal
) -> None:
    session = await seed_session(stores, ["x"])
    session.attempt = 2
    for attempt, message in ((1, "old"), (2, "new-1"), (2, "new-2")):
        await stores.feedback.create(
            Feedback(
                session_id=session.id,
                snippet_id="s",
                attempt=attempt,
                position=0 if message != "new-2" else 1,
                category="security",
                severity="low",
                message=message,
                suggestion="",
            )
        )
    items = await service.get_feedback_by_session(principal, session.id)
    assert [f.message for f in items] == ["new-1", "new-2"]


async def test_feedback_before_analysis_is_empty(
    stores: FakeStores, service: SessionService, principal: Principal
) -> None:
    session = await seed_session(stores, ["x"])
    assert await service.get_feedback_by_session(principal, session.id) == []


# ── Refactor ─────────────────────────────────────────────


async def _feedback_for(stores: FakeStores, session_id: str) -> Feedback:
    (snippet,) = await stores.snippets.list_by_session(session_id)
    return await stores.feedback.create(
        Feedback(
            session_id=session_id,
            snippet_id=snippet.id,
            attempt=1,
            position=0,
            category="readability",
            severity="low",
            message="Name is unclear",
            suggestion="Rename x to total",
        )
    )


async def test_refactor_uses_snippet_and_suggestion(
    stores: FakeStores,
    service: SessionService,
    reasoning: AsyncMock,
    principal: Principal,
) -> None:
    session = await seed_session(stores, ["x = 1"])
    item = await _feedback_for(stores, session.id)
    reasoning.refactor.return_value = RefactorResult(
        refactored_code="total = 1", explanation="renamed"
    )

    result = await service.refactor(principal, session.id, item.id)

    assert result.refactored_code == "total = 1"
    reasoning.refactor.assert_awaited_once_with(
        "x = 1", "python", "Rename x to total"
    )


async def test_refactor_rejects_foreign_feedback(
    stores: FakeStores, service: SessionService, principal: Principal
) -> None:
    mine = await seed_session(stores, ["x = 1"])
    other = await seed_session(stores, ["y = 2"])
    item = await _feedback_for(stores, other.id)
    with pytest.raises(NotFound, match="Feedback not found"):
        await service.refactor(principal, mine.id, item.id)


async def test_refactor_requires_ownership(
    stores: FakeStores,
    service: SessionService,
    reasoning: AsyncMock,
    principal: Principal,
) -> None:
    theirs = await seed_session(stores, ["y = 2"], owner_id="user-2")
    item = await _feedback_for(stores, theirs.id)
    with pytest.raises(NotFound, match="Session not found"):
        await service.refactor(principal, theirs.id, item.id)
    reasoning.refactor.assert_not_awaited()

