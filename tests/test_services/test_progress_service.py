"""Tests for the progress aggregator."""

import asyncio
from datetime import UTC, datetime

import pytest

from codementor.constants import SessionStatus
from codementor.models.feedback import Feedback
from codementor.models.progress import ProgressProfile
from codementor.models.session import CodeSession
from codementor.resilience.errors import NotFound, PersistenceFailure
from codementor.services.progress_service import (
    ProgressService,
    blend_score,
    merge_mistakes,
    session_score,
    summarize_personality,
)
from tests.factories import FakeStores, seed_session


def _service(stores: FakeStores, **kwargs: int) -> ProgressService:
    return ProgressService(
        stores.progress, stores.feedback, stores.sessions, **kwargs
    )


async def _add_feedback(
    stores: FakeStores,
    session_id: str,
    items: list[tuple[str, str]],
    attempt: int = 1,
) -> None:
    for position, (severity, message) in enumerate(items):
        await stores.feedback.create(
            Feedback(
                session_id=session_id,
                snippet_id="snip",
                attempt=attempt,
                position=position,
                category="readability",
                severity=severity,
                message=message,
                suggestion="",
            )
        )


async def _analyzed_session(
    stores: FakeStores, language: str = "python"
) -> CodeSession:
    session = await seed_session(stores, ["x = 1"], language=language)
    await stores.sessions.start_attempt(session.id, {SessionStatus.PENDING})
    return session


# ── Pure helpers ─────────────────────────────────────────


def test_session_score() -> None:
    def fb(severity: str) -> Feedback:
        return Feedback(severity=severity, message="m")

    assert session_score([]) == 0.0
    assert session_score([fb("low")] * 4) == 100.0
    assert session_score([fb("high"), fb("low"), fb("low"), fb("low")]) == 75.0
    assert session_score([fb("high")]) == 0.0


def test_blend_score() -> None:
    assert blend_score(80, 100) == 90
    assert blend_score(0, 75.0) == 38
    assert blend_score(100, 100) == 100


def test_summarize_personality() -> None:
    assert summarize_personality([]) is None
    summary = summarize_personality(["terse", "pragmatic", "terse"])
    assert summary is not None
    assert summary["label"] == "terse"
    assert summary["confidence"] == pytest.approx(2 / 3)
    assert summary["traits"] == ["terse", "pragmatic"]


def test_merge_mistakes_is_pure() -> None:
    existing = [{"mistake": "a", "count": 1, "last_seen": "old"}]
    merged = merge_mistakes(
        existing,
        [Feedback(message="a"), Feedback(message="b")],
        datetime(2026, 1, 1, tzinfo=UTC),
    )
    assert existing[0]["count"] == 1
    assert {m["mistake"]: m["count"] for m in merged} == {"a": 2, "b": 1}


# ── Update ───────────────────────────────────────────────


async def test_first_update_creates_profile(stores: FakeStores) -> None:
    session = await _analyzed_session(stores)
    await _add_feedback(stores, session.id, [("low", "Missing docstring")])

    profile = await _service(stores).update(
        "user-1", session.id, ["methodical"]
    )

    assert profile.total_submissions == 1
    assert profile.language_counts == {"python": 1}
    assert profile.personality is not None
    assert profile.personality["label"] == "methodical"
    assert profile.last_analyzed_at is not None
    stored = await stores.progress.get_by_user("user-1")
    assert stored is not None
    assert stored.version == 1


async def test_identical_messages_share_one_mistake(
    stores: FakeStores,
) -> None:
    service = _service(stores)
    first = await _analyzed_session(stores)
    await _add_feedback(stores, first.id, [("low", "Unused import")])
    await service.update("user-1", first.id, [])

    second = await _analyzed_session(stores)
    await _add_feedback(stores, second.id, [("medium", "Unused import")])
    profile = await service.update("user-1", second.id, [])

    assert [(m["mistake"], m["count"]) for m in profile.mistakes] == [
        ("Unused import", 2)
    ]


async def test_score_blends_with_previous(stores: FakeStores) -> None:
    await stores.progress.save(
        ProgressProfile(
            user_id="user-1",
            total_submissions=3,
            mistakes=[],
            improvement_score=80,
            language_counts={"python": 3},
            personality=None,
        ),
        None,
    )
    session = await _analyzed_session(stores)
    await _add_feedback(
        stores, session.id, [("low", f"m{i}") for i in range(4)]
    )

    profile = await _service(stores).update("user-1", session.id, [])

    assert profile.improvement_score == 90
    assert profile.total_submissions == 4
    assert profile.language_counts == {"python": 4}


async def test_empty_traits_keep_previous_personality(
    stores: FakeStores,
) -> None:
    service = _service(stores)
    first = await _analyzed_session(stores)
    await service.update("user-1", first.id, ["curious"])
    second = await _analyzed_session(stores)
    profile = await service.update("user-1", second.id, [])
    assert profile.personality is not None
    assert profile.personality["label"] == "curious"


async def test_only_latest_attempt_counted(stores: FakeStores) -> None:
    session = await _analyzed_session(stores)
    await _add_feedback(stores, session.id, [("high", "old")], attempt=0)
    await _add_feedback(stores, session.id, [("low", "new")], attempt=1)
    profile = await _service(stores).update("user-1", session.id, [])
    assert [m["mistake"] for m in profile.mistakes] == ["new"]


async def test_same_session_folded_once(stores: FakeStores) -> None:
    service = _service(stores)
    session = await _analyzed_session(stores)
    await _add_feedback(stores, session.id, [("high", "Bare except")])

    await service.update("user-1", session.id, ["cautious"])
    profile = await service.update("user-1", session.id, ["cautious"])

    assert profile.total_submissions == 1
    assert profile.language_counts == {"python": 1}
    assert [(m["mistake"], m["count"]) for m in profile.mistakes] == [
        ("Bare except", 1)
    ]
    assert profile.folded_sessions == [session.id]
    stored = await stores.progress.get_by_user("user-1")
    assert stored is not None
    assert stored.version == 1


async def test_missing_session(stores: FakeStores) -> None:
    with pytest.raises(NotFound):
        await _service(stores).update("user-1", "ghost", [])


async def test_concurrent_updates_both_applied(stores: FakeStores) -> None:
    service = _service(stores)
    a = await _analyzed_session(stores, "python")
    b = await _analyzed_session(stores, "go")
    await asyncio.gather(
        service.update("user-1", a.id, []),
        service.update("user-1", b.id, []),
    )
    stored = await stores.progress.get_by_user("user-1")
    assert stored is not None
    assert stored.total_submissions == 2
    assert stored.language_counts == {"python": 1, "go": 1}


async def test_conflict_retried(stores: FakeStores) -> None:
    session = await _analyzed_session(stores)
    real_save = stores.progress.save
    calls = 0

    async def flaky_save(
        profile: ProgressProfile, expected_version: int | None
    ) -> bool:
        nonlocal calls
        calls += 1
        if calls == 1:
            return False
        return await real_save(profile, expected_version)

    stores.progress.save = flaky_save  # type: ignore[method-assign]
    profile = await _service(stores).update("user-1", session.id, [])
    assert calls == 2
    assert profile.total_submissions == 1


async def test_conflicts_exhausted(stores: FakeStores) -> None:
    session = await _analyzed_session(stores)

    async def always_conflict(
        profile: ProgressProfile, expected_version: int | None
    ) -> bool:
        return False

    stores.progress.save = always_conflict  # type: ignore[method-assign]
    with pytest.raises(PersistenceFailure, match="lost 3"):
        await _service(stores, max_retries=3).update(
            "user-1", session.id, []
        )


# ── Reads ────────────────────────────────────────────────


async def test_common_mistakes_ranked_and_limited(
    stores: FakeStores,
) -> None:
    await stores.progress.save(
        ProgressProfile(
            user_id="user-1",
            total_submissions=1,
            mistakes=[
                {"mistake": "a", "count": 1, "last_seen": "t"},
                {"mistake": "b", "count": 5, "last_seen": "t"},
                {"mistake": "c", "count": 3, "last_seen": "t"},
            ],
            improvement_score=0,
            language_counts={"rust": 2},
            personality=None,
        ),
        None,
    )
    service = _service(stores)
    top = await service.get_common_mistakes("user-1", limit=2)
    assert top == [
        {"mistake": "b", "count": 5},
        {"mistake": "c", "count": 3},
    ]
    assert await service.get_language_proficiency("user-1") == {"rust": 2}


async def test_reads_without_profile(stores: FakeStores) -> None:
    service = _service(stores)
    assert await service.get_progress("nobody") is None
    assert await service.get_common_mistakes("nobody") == []
    assert await service.get_language_proficiency("nobody") == {}
