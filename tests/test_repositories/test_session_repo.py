"""Tests for SqlSessionRepository and SqlSnippetRepository."""

import pytest
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from codementor.constants import SessionStatus
from codementor.models.session import CodeSession
from codementor.models.snippet import CodeSnippet
from codementor.models.user import User
from codementor.repositories.session_repo import SqlSessionRepository
from codementor.repositories.snippet_repo import SqlSnippetRepository
from codementor.repositories.user_repo import SqlUserRepository


@pytest.fixture
def repo(
    session_factory: async_sessionmaker[AsyncSession],
) -> SqlSessionRepository:
    return SqlSessionRepository(session_factory)


@pytest.fixture
async def owner_id(
    session_factory: async_sessionmaker[AsyncSession],
) -> str:
    user = await SqlUserRepository(session_factory).create(
        User(id="owner-1", email="owner@example.com")
    )
    return user.id


async def test_create_and_get(
    repo: SqlSessionRepository, owner_id: str
) -> None:
    created = await repo.create(
        CodeSession(owner_id=owner_id, title="Review", language="python")
    )
    fetched = await repo.get_by_id(created.id)
    assert fetched is not None
    assert fetched.title == "Review"
    assert fetched.status == SessionStatus.PENDING
    assert fetched.attempt == 0


async def test_get_missing_is_none(repo: SqlSessionRepository) -> None:
    assert await repo.get_by_id("nope") is None


async def test_list_by_owner_only_returns_own(
    repo: SqlSessionRepository,
    session_factory: async_sessionmaker[AsyncSession],
    owner_id: str,
) -> None:
    await SqlUserRepository(session_factory).create(
        User(id="other", email="other@example.com")
    )
    await repo.create(
        CodeSession(owner_id=owner_id, title="A", language="go")
    )
    await repo.create(
        CodeSession(owner_id=owner_id, title="B", language="go")
    )
    await repo.create(
        CodeSession(owner_id="other", title="C", language="go")
    )
    titles = {s.title for s in await repo.list_by_owner(owner_id)}
    assert titles == {"A", "B"}


async def test_try_set_status_is_compare_and_set(
    repo: SqlSessionRepository, owner_id: str
) -> None:
    s = await repo.create(
        CodeSession(owner_id=owner_id, title="T", language="python")
    )
    moved = await repo.try_set_status(
        s.id, {SessionStatus.ANALYZING}, SessionStatus.COMPLETED
    )
    assert moved is False

    moved = await repo.try_set_status(
        s.id,
        {SessionStatus.PENDING},
        SessionStatus.FAILED,
        "Analysis failed: boom",
    )
    assert moved is True
    fetched = await repo.get_by_id(s.id)
    assert fetched is not None
    assert fetched.status == SessionStatus.FAILED
    assert fetched.status_message == "Analysis failed: boom"


async def test_start_attempt_bumps_counter(
    repo: SqlSessionRepository, owner_id: str
) -> None:
    s = await repo.create(
        CodeSession(owner_id=owner_id, title="T", language="python")
    )
    first = await repo.start_attempt(
        s.id, {SessionStatus.PENDING}, "Starting"
    )
    assert first == 1

    # Already analyzing: not an expected source status
    assert await repo.start_attempt(s.id, {SessionStatus.PENDING}) is None

    await repo.try_set_status(
        s.id, {SessionStatus.ANALYZING}, SessionStatus.FAILED
    )
    second = await repo.start_attempt(s.id, {SessionStatus.FAILED})
    assert second == 2
    fetched = await repo.get_by_id(s.id)
    assert fetched is not None
    assert fetched.status == SessionStatus.ANALYZING
    assert fetched.attempt == 2


async def test_snippets_listed_in_position_order(
    repo: SqlSessionRepository,
    session_factory: async_sessionmaker[AsyncSession],
    owner_id: str,
) -> None:
    s = await repo.create(
        CodeSession(owner_id=owner_id, title="T", language="python")
    )
    snippets = SqlSnippetRepository(session_factory)
    await snippets.bulk_create([
        CodeSnippet(
            session_id=s.id,
            position=i,
            content=f"x = {i}",
            file_name=f"f{i}.py",
            line_count=1,
        )
        for i in (2, 0, 1)
    ])
    listed = await snippets.list_by_session(s.id)
    assert [sn.file_name for sn in listed] == ["f0.py", "f1.py", "f2.py"]
    assert await snippets.get_by_id(listed[0].id) is not None


async def test_create_with_snippets_links_them(
    repo: SqlSessionRepository,
    session_factory: async_sessionmaker[AsyncSession],
    owner_id: str,
) -> None:
    s = await repo.create_with_snippets(
        CodeSession(owner_id=owner_id, title="T", language="python"),
        [
            CodeSnippet(
                position=0, content="x = 1", file_name="a.py", line_count=1
            )
        ],
    )
    (snippet,) = await SqlSnippetRepository(session_factory).list_by_session(
        s.id
    )
    assert snippet.session_id == s.id


async def test_create_with_snippets_is_all_or_nothing(
    repo: SqlSessionRepository, owner_id: str
) -> None:
    broken = CodeSnippet(position=0, file_name="a.py", line_count=1)

    with pytest.raises(IntegrityError):
        await repo.create_with_snippets(
            CodeSession(owner_id=owner_id, title="T", language="python"),
            [broken],
        )

    assert await repo.list_by_owner(owner_id) == []


async def test_delete_removes_session_and_snippets(
    repo: SqlSessionRepository,
    session_factory: async_sessionmaker[AsyncSession],
    owner_id: str,
) -> None:
    s = await repo.create_with_snippets(
        CodeSession(owner_id=owner_id, title="T", language="python"),
        [
            CodeSnippet(
                position=0, content="x = 1", file_name="a.py", line_count=1
            )
        ],
    )

    await repo.delete(s.id)

    assert await repo.get_by_id(s.id) is None
    snippets = SqlSnippetRepository(session_factory)
    assert await snippets.list_by_session(s.id) == []
