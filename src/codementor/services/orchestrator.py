"""Analysis orchestrator: runs one analysis job against its session.

Each job walks the session through ``pending -> analyzing`` and then to
``completed`` or ``failed``. Snippets are reviewed in order, each
feedback item is persisted before it is announced, and usage plus
progress are recorded once per successful run.

The ``completed`` write happens inside the guarded block, so a run whose
final status cannot be written still ends ``failed``. Progress folds
once per session, so redelivery after such a failure never counts the
session twice.

Failure path: any exception marks the session ``failed`` with the error
text and is re-raised so the queue can decide whether to retry. If the
``failed`` write itself cannot be made, a ``PersistenceFailure`` chained
to the original error is raised instead.
"""

from __future__ import annotations

import logging
import time
from typing import Any

from tenacity import (
    AsyncRetrying,
    stop_after_attempt,
    wait_fixed,
)

from codementor.config import Settings
from codementor.constants import (
    SESSION_TRANSITIONS,
    STATUS_MESSAGES,
    STATUS_WRITE_ATTEMPTS,
    STATUS_WRITE_WAIT,
    SessionStatus,
    SkillLevel,
)
from codementor.logger import JobLogger
from codementor.models.feedback import Feedback
from codementor.models.job import AnalysisJob
from codementor.models.usage import UsageRecord
from codementor.reasoning.client import (
    ReasoningClient,
    estimate_cost,
    estimate_tokens,
)
from codementor.repositories.protocols import (
    FeedbackRepository,
    SessionRepository,
    SnippetRepository,
    UsageRepository,
    UserRepository,
)
from codementor.resilience.errors import (
    NotFound,
    PersistenceFailure,
    PipelineFailure,
    ValidationFailure,
)
from codementor.services.events import Notifier
from codementor.services.progress_service import ProgressService

logger = logging.getLogger(__name__)

# Statuses a job may pick a session up from
_PICKUP_FROM = frozenset(
    status
    for status, targets in SESSION_TRANSITIONS.items()
    if SessionStatus.ANALYZING in targets
)


def _elapsed(t0: float) -> float:
    return (time.monotonic() - t0) * 1000


class AnalysisOrchestrator:
    def __init__(
        self,
        *,
        sessions: SessionRepository,
        snippets: SnippetRepository,
        feedback: FeedbackRepository,
        usage: UsageRepository,
        users: UserRepository,
        reasoning: ReasoningClient,
        notifier: Notifier,
        progress: ProgressService,
        settings: Settings | None = None,
        job_logger: JobLogger | None = None,
    ) -> None:
        self._sessions = sessions
        self._snippets = snippets
        self._feedback = feedback
        self._usage = usage
        self._users = users
        self._reasoning = reasoning
        self._notifier = notifier
        self._progress = progress
        self._settings = settings or Settings()
        self._job_logger = job_logger

    async def handle(self, job: AnalysisJob) -> None:
        """Queue handler entry point: unpack the payload and run it."""
        payload: dict[str, Any] = job.payload or {}
        session_id = payload.get("session_id")
        user_id = payload.get("user_id")
        if not session_id or not user_id:
            raise ValidationFailure(
                f"Job {job.id} payload needs session_id and user_id"
            )
        await self.handle_job(
            str(session_id),
            str(user_id),
            job_id=job.id,
            delivery=job.attempts or 1,
        )

    async def handle_job(
        self,
        session_id: str,
        user_id: str,
        *,
        job_id: str = "-",
        delivery: int = 1,
    ) -> None:
        """Analyze every snippet of *session_id* on behalf of *user_id*.

        ``delivery`` is the queue attempt number. Redeliveries may also
        resume a session left ``analyzing`` by a worker that died.
        """
        t0 = time.monotonic()
        session = await self._sessions.get_by_id(session_id)
        if session is None:
            raise NotFound(f"Session {session_id} not found")

        expected = set(_PICKUP_FROM)
        if delivery > 1:
            expected.add(SessionStatus.ANALYZING)
        start_message = STATUS_MESSAGES[SessionStatus.ANALYZING]
        attempt = await self._sessions.start_attempt(
            session_id, expected, start_message
        )
        if attempt is None:
            logger.info(
                "event=job_skipped job_id=%s session_id=%s status=%s",
                job_id,
                session_id,
                session.status,
            )
            return

        logger.info(
            "event=analysis_started job_id=%s session_id=%s attempt=%d",
            job_id,
            session_id,
            attempt,
        )
        await self._notify_status(
            session_id, SessionStatus.ANALYZING, start_message
        )

        done_message = STATUS_MESSAGES[SessionStatus.COMPLETED]
        try:
            tokens, cost = await self._run(
                session_id, user_id, session.language, attempt, job_id
            )
            moved = await self._set_status(
                session_id, SessionStatus.COMPLETED, done_message
            )
        except Exception as exc:
            await self._mark_failed(session_id, exc, job_id)
            self._log_job(job_id, session_id, delivery, "failed", t0)
            raise

        if not moved:
            logger.warning(
                "event=complete_skipped session_id=%s", session_id
            )
            return
        await self._notify_status(
            session_id, SessionStatus.COMPLETED, done_message
        )
        self._log_job(
            job_id, session_id, delivery, "completed", t0, tokens, cost
        )
        logger.info(
            "event=analysis_completed job_id=%s session_id=%s"
            " tokens=%d cost=%.6f duration_ms=%.0f",
            job_id,
            session_id,
            tokens,
            cost,
            _elapsed(t0),
        )

    async def _run(
        self,
        session_id: str,
        user_id: str,
        language: str,
        attempt: int,
        job_id: str,
    ) -> tuple[int, float]:
        snippets = await self._snippets.list_by_session(session_id)
        if not snippets:
            raise PipelineFailure(
                "No code snippets found for session", permanent=True
            )

        user = await self._users.get_by_id(user_id)
        if user is None:
            raise PipelineFailure("User not found", permanent=True)
        skill_level = user.skill_level or SkillLevel.BEGINNER

        model = self._settings.usage_model
        total_tokens = 0
        total_cost = 0.0
        traits: list[str] = []
        position = 0

        for snippet in snippets:
            t_snippet = time.monotonic()
            result = await self._reasoning.analyze(
                snippet.content,
                language,
                skill_level,
                include_personality=True,
            )
            for draft in result.feedback:
                item = await self._feedback.create(
                    Feedback(
                        session_id=session_id,
                        snippet_id=snippet.id,
                        attempt=attempt,
                        position=position,
                        category=draft.category,
                        severity=draft.severity,
                        message=draft.message,
                        suggestion=draft.suggestion,
                        code_example=draft.code_example,
                        line_number=draft.line_number,
                    )
                )
                position += 1
                await self._notify_feedback(session_id, item.to_dict())
            traits.extend(result.personality_traits or [])

            tokens = estimate_tokens(snippet.content)
            total_tokens += tokens
            total_cost += estimate_cost(tokens, model)
            if self._job_logger is not None:
                self._job_logger.log_stage(
                    job_id,
                    f"snippet:{snippet.position}",
                    "done",
                    _elapsed(t_snippet),
                )

        await self._usage.create(
            UsageRecord(
                user_id=user_id,
                session_id=session_id,
                attempt=attempt,
                tokens_used=total_tokens,
                estimated_cost=total_cost,
                model=model,
            )
        )
        await self._progress.update(user_id, session_id, traits)
        return total_tokens, total_cost

    async def _mark_failed(
        self, session_id: str, error: Exception, job_id: str
    ) -> None:
        message = f"Analysis failed: {error}"
        logger.error(
            "event=analysis_failed job_id=%s session_id=%s error=%s",
            job_id,
            session_id,
            error,
        )
        if self._job_logger is not None:
            self._job_logger.log_error(job_id, "orchestrator", str(error))
        try:
            moved = await self._set_status(
                session_id, SessionStatus.FAILED, message
            )
        except Exception as cause:
            logger.critical(
                "event=status_write_failed session_id=%s error=%s",
                session_id,
                cause,
            )
            raise PersistenceFailure(
                f"Could not mark session {session_id} failed: {cause}"
            ) from error
        if moved:
            await self._notify_status(
                session_id, SessionStatus.FAILED, message
            )

    async def _set_status(
        self, session_id: str, status: SessionStatus, message: str
    ) -> bool:
        """Move ``analyzing -> status``; write errors are retried.

        Returns False when the session had already left ``analyzing``.
        """
        moved = False
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(STATUS_WRITE_ATTEMPTS),
            wait=wait_fixed(STATUS_WRITE_WAIT),
            reraise=True,
        ):
            with attempt:
                moved = await self._sessions.try_set_status(
                    session_id, {SessionStatus.ANALYZING}, status, message
                )
        return moved

    # ── Notifications (best-effort) ──────────────────────

    async def _notify_status(
        self, session_id: str, status: str, message: str
    ) -> None:
        try:
            await self._notifier.emit_status(session_id, status, message)
        except Exception:
            logger.warning(
                "event=notify_failed session_id=%s kind=status",
                session_id,
                exc_info=True,
            )

    async def _notify_feedback(
        self, session_id: str, item: dict[str, Any]
    ) -> None:
        try:
            await self._notifier.emit_feedback(session_id, item)
        except Exception:
            logger.warning(
                "event=notify_failed session_id=%s kind=feedback",
                session_id,
                exc_info=True,
            )

    def _log_job(
        self,
        job_id: str,
        session_id: str,
        delivery: int,
        outcome: str,
        t0: float,
        tokens: int = 0,
        cost: float = 0.0,
    ) -> None:
        if self._job_logger is None:
            return
        self._job_logger.log_job(
            job_id,
            session_id,
            delivery,
            outcome,
            _elapsed(t0),
            tokens=tokens,
            cost=cost,
        )
