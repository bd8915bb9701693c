"""Progress aggregation: folds a finished session into the user's profile.

The fold is one read-modify-write of the user's single profile row.
Writers for the same user are serialized in-process by a ``KeyedLock``
and across processes by the repository's version check; a lost race
re-reads and re-applies the fold, up to ``max_retries`` times.
Each session is folded at most once; a redelivered job whose session is
already in ``folded_sessions`` leaves the profile untouched.
"""

from __future__ import annotations

import logging
from collections import Counter
from datetime import UTC, datetime
from typing import Any

from codementor.constants import (
    DEFAULT_MISTAKES_LIMIT,
    SCORE_MAX,
    SCORE_MIN,
    FeedbackSeverity,
)
from codementor.models.feedback import Feedback
from codementor.models.progress import ProgressProfile
from codementor.repositories.protocols import (
    FeedbackRepository,
    ProgressRepository,
    SessionRepository,
)
from codementor.resilience.errors import NotFound, PersistenceFailure
from codementor.resilience.keyed_lock import KeyedLock

logger = logging.getLogger(__name__)


def session_score(feedback: list[Feedback]) -> float:
    """100 minus the share of high-severity items; 0 with no feedback."""
    if not feedback:
        return 0.0
    high = sum(1 for f in feedback if f.severity == FeedbackSeverity.HIGH)
    return max(0.0, 100 - (high / len(feedback)) * 100)


def blend_score(old_score: int, local_score: float) -> int:
    """Running blend that weights the newest session most heavily."""
    blended = round((old_score + local_score) / 2)
    return max(SCORE_MIN, min(SCORE_MAX, blended))


def summarize_personality(traits: list[str]) -> dict[str, Any] | None:
    """Most frequent trait of this call, with its share and the distinct set.

    Ties resolve to the trait encountered first (``Counter`` keeps
    insertion order); callers should not rely on that.
    """
    if not traits:
        return None
    counts = Counter(traits)
    label, count = counts.most_common(1)[0]
    return {
        "label": label,
        "confidence": count / len(traits),
        "traits": list(counts),
    }


def merge_mistakes(
    mistakes: list[dict[str, Any]],
    feedback: list[Feedback],
    seen_at: datetime,
) -> list[dict[str, Any]]:
    """Count each feedback message; identical text shares one entry."""
    merged = [dict(m) for m in mistakes]
    index = {m["mistake"]: m for m in merged}
    stamp = seen_at.isoformat()
    for item in feedback:
        entry = index.get(item.message)
        if entry is None:
            entry = {"mistake": item.message, "count": 0}
            merged.append(entry)
            index[item.message] = entry
        entry["count"] += 1
        entry["last_seen"] = stamp
    return merged


def _new_profile(user_id: str) -> ProgressProfile:
    return ProgressProfile(
        user_id=user_id,
        total_submissions=0,
        mistakes=[],
        improvement_score=0,
        language_counts={},
        personality=None,
        last_analyzed_at=None,
        folded_sessions=[],
        version=0,
    )


class ProgressService:
    def __init__(
        self,
        progress: ProgressRepository,
        feedback: FeedbackRepository,
        sessions: SessionRepository,
        locks: KeyedLock | None = None,
        max_retries: int = 5,
    ) -> None:
        self._progress = progress
        self._feedback = feedback
        self._sessions = sessions
        self._locks = locks or KeyedLock()
        self._max_retries = max_retries

    async def update(
        self,
        user_id: str,
        session_id: str,
        personality_traits: list[str],
    ) -> ProgressProfile:
        """Fold one completed session into *user_id*'s profile."""
        session = await self._sessions.get_by_id(session_id)
        if session is None:
            raise NotFound(f"Session {session_id} not found")
        feedback = await self._feedback.list_by_session(
            session_id, attempt=session.attempt or None
        )

        async with self._locks.hold(user_id):
            for attempt in range(1, self._max_retries + 1):
                stored = await self._progress.get_by_user(user_id)
                profile = stored or _new_profile(user_id)
                expected = stored.version if stored else None

                if session_id in (profile.folded_sessions or []):
                    logger.info(
                        "event=progress_already_folded user_id=%s"
                        " session_id=%s",
                        user_id,
                        session_id,
                    )
                    return profile
                self._apply(
                    profile,
                    session_id,
                    session.language,
                    feedback,
                    personality_traits,
                )
                if await self._progress.save(profile, expected):
                    logger.info(
                        "event=progress_updated user_id=%s session_id=%s"
                        " submissions=%d score=%d attempt=%d",
                        user_id,
                        session_id,
                        profile.total_submissions,
                        profile.improvement_score,
                        attempt,
                    )
                    return profile
                logger.warning(
                    "event=progress_conflict user_id=%s attempt=%d",
                    user_id,
                    attempt,
                )
        raise PersistenceFailure(
            f"Progress update for user {user_id} lost"
            f" {self._max_retries} concurrent write races"
        )

    @staticmethod
    def _apply(
        profile: ProgressProfile,
        session_id: str,
        language: str,
        feedback: list[Feedback],
        traits: list[str],
    ) -> None:
        now = datetime.now(UTC)
        profile.total_submissions += 1
        profile.last_analyzed_at = now
        profile.folded_sessions = [
            *(profile.folded_sessions or []),
            session_id,
        ]
        profile.mistakes = merge_mistakes(profile.mistakes, feedback, now)

        personality = summarize_personality(traits)
        if personality is not None:
            profile.personality = personality

        profile.improvement_score = blend_score(
            profile.improvement_score, session_score(feedback)
        )

        counts = dict(profile.language_counts)
        counts[language] = counts.get(language, 0) + 1
        profile.language_counts = counts

    # ── Reads ────────────────────────────────────────────

    async def get_progress(self, user_id: str) -> ProgressProfile | None:
        return await self._progress.get_by_user(user_id)

    async def get_common_mistakes(
        self, user_id: str, limit: int = DEFAULT_MISTAKES_LIMIT
    ) -> list[dict[str, Any]]:
        profile = await self._progress.get_by_user(user_id)
        if profile is None:
            return []
        ranked = sorted(
            profile.mistakes, key=lambda m: m["count"], reverse=True
        )
        return [
            {"mistake": m["mistake"], "count": m["count"]}
            for m in ranked[:limit]
        ]

    async def get_language_proficiency(
        self, user_id: str
    ) -> dict[str, int]:
        profile = await self._progress.get_by_user(user_id)
        if profile is None:
            return {}
        return dict(profile.language_counts)
