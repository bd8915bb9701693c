"""Typed application state shared by the API lifespan and the CLI worker."""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from codementor.api.hub import NotificationHub
from codementor.auth.tokens import TokenVerifier
from codementor.config import Settings
from codementor.jobs.queue import JobQueue
from codementor.jobs.worker import QueueWorker
from codementor.logger import JobLogger
from codementor.reasoning.client import ReasoningClient
from codementor.repositories.feedback_repo import SqlFeedbackRepository
from codementor.repositories.job_repo import SqlJobRepository
from codementor.repositories.progress_repo import SqlProgressRepository
from codementor.repositories.session_repo import SqlSessionRepository
from codementor.repositories.snippet_repo import SqlSnippetRepository
from codementor.repositories.usage_repo import SqlUsageRepository
from codementor.repositories.user_repo import SqlUserRepository
from codementor.services.events import LoggingNotifier, Notifier
from codementor.services.orchestrator import AnalysisOrchestrator
from codementor.services.progress_service import ProgressService
from codementor.services.session_service import SessionService


@dataclass
class AppState:
    """Typed container for app.state attributes."""

    settings: Settings
    verifier: TokenVerifier
    hub: NotificationHub
    queue: JobQueue
    session_service: SessionService
    progress_service: ProgressService
    orchestrator: AnalysisOrchestrator
    worker: QueueWorker


def build_app_state(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    *,
    job_logger: JobLogger | None = None,
    reasoning: ReasoningClient | None = None,
    live: bool = True,
) -> AppState:
    """Wire SQL repositories, services and the queue worker.

    With ``live=False`` (standalone worker process) pipeline events are
    logged instead of pushed, since no client connections exist there.
    """
    sessions = SqlSessionRepository(session_factory)
    snippets = SqlSnippetRepository(session_factory)
    feedback = SqlFeedbackRepository(session_factory)
    reasoning = reasoning or ReasoningClient(settings)

    verifier = TokenVerifier(settings.auth_secret, settings.token_ttl_seconds)
    hub = NotificationHub(verifier)
    notifier: Notifier = hub if live else LoggingNotifier()

    queue = JobQueue(
        SqlJobRepository(session_factory),
        max_attempts=settings.queue_max_attempts,
        backoff_seconds=settings.queue_backoff_seconds,
        stale_seconds=settings.queue_stale_seconds,
    )
    progress = ProgressService(
        SqlProgressRepository(session_factory),
        feedback,
        sessions,
        max_retries=settings.progress_update_retries,
    )
    orchestrator = AnalysisOrchestrator(
        sessions=sessions,
        snippets=snippets,
        feedback=feedback,
        usage=SqlUsageRepository(session_factory),
        users=SqlUserRepository(session_factory),
        reasoning=reasoning,
        notifier=notifier,
        progress=progress,
        settings=settings,
        job_logger=job_logger,
    )
    worker = QueueWorker(
        queue,
        orchestrator.handle,
        poll_interval=settings.queue_poll_interval,
        max_concurrency=settings.queue_max_concurrency,
        heartbeat_interval=settings.queue_heartbeat_seconds,
    )
    session_service = SessionService(
        sessions=sessions,
        snippets=snippets,
        feedback=feedback,
        queue=queue,
        reasoning=reasoning,
        settings=settings,
    )
    return AppState(
        settings=settings,
        verifier=verifier,
        hub=hub,
        queue=queue,
        session_service=session_service,
        progress_service=progress,
        orchestrator=orchestrator,
        worker=worker,
    )
