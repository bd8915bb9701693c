"""Session intake and owner-scoped reads.

``create_session`` only persists and enqueues; analysis happens later in
the queue worker, so the request returns as soon as the job row exists.
"""

from __future__ import annotations

import logging

from codementor.auth.tokens import Principal
from codementor.config import Settings
from codementor.constants import (
    DEFAULT_SNIPPET_FILE_NAME,
    SessionOrigin,
    SessionStatus,
)
from codementor.jobs.queue import JobQueue
from codementor.models.feedback import Feedback
from codementor.models.session import CodeSession
from codementor.models.snippet import CodeSnippet
from codementor.reasoning.client import ReasoningClient
from codementor.reasoning.schemas import RefactorResult
from codementor.repositories.protocols import (
    FeedbackRepository,
    SessionRepository,
    SnippetRepository,
)
from codementor.resilience.errors import NotFound, ValidationFailure
from codementor.services.schemas import SessionCreate

logger = logging.getLogger(__name__)


def count_lines(content: str) -> int:
    return len(content.split("\n"))


class SessionService:
    def __init__(
        self,
        *,
        sessions: SessionRepository,
        snippets: SnippetRepository,
        feedback: FeedbackRepository,
        queue: JobQueue,
        reasoning: ReasoningClient,
        settings: Settings | None = None,
    ) -> None:
        self._sessions = sessions
        self._snippets = snippets
        self._feedback = feedback
        self._queue = queue
        self._reasoning = reasoning
        self._settings = settings or Settings()

    async def create_session(
        self, principal: Principal, request: SessionCreate
    ) -> CodeSession:
        """Persist a pending session with its snippets and enqueue it.

        Session and snippets are written in one transaction. If the job
        cannot be enqueued they are deleted again, so no pending session
        is left without a job.
        """
        drafts = self._snippet_drafts(request)
        for position, snippet in enumerate(drafts):
            snippet.position = position

        session = await self._sessions.create_with_snippets(
            CodeSession(
                owner_id=principal.user_id,
                title=request.title,
                language=request.language,
                origin=request.origin,
                status=SessionStatus.PENDING,
                attempt=0,
                repository_url=request.repository_url,
                repository_branch=request.repository_branch,
            ),
            drafts,
        )

        try:
            job = await self._queue.enqueue(
                {"session_id": session.id, "user_id": principal.user_id}
            )
        except Exception as exc:
            await self._abandon(session, exc)
            raise
        logger.info(
            "event=session_created session_id=%s user_id=%s"
            " snippets=%d job_id=%s",
            session.id,
            principal.user_id,
            len(drafts),
            job.id,
        )
        return session

    async def _abandon(self, session: CodeSession, error: Exception) -> None:
        logger.error(
            "event=enqueue_failed session_id=%s error=%s", session.id, error
        )
        try:
            await self._sessions.delete(session.id)
        except Exception:
            logger.critical(
                "event=session_orphaned session_id=%s",
                session.id,
                exc_info=True,
            )

    def _snippet_drafts(self, request: SessionCreate) -> list[CodeSnippet]:
        limit = self._settings.max_snippet_chars
        drafts: list[CodeSnippet] = []

        if request.origin == SessionOrigin.SNIPPET:
            if not request.code or not request.code.strip():
                raise ValidationFailure(
                    "Snippet sessions require non-empty code"
                )
            drafts.append(
                _snippet(request.code, request.file_name, None, limit)
            )
        else:
            if not request.repository_url:
                raise ValidationFailure(
                    "Repository sessions require repository_url"
                )
            if not request.files:
                raise ValidationFailure(
                    "Repository sessions require at least one file"
                )
            for item in request.files:
                name = item.file_name or (
                    item.path.rsplit("/", 1)[-1] if item.path else None
                )
                drafts.append(_snippet(item.content, name, item.path, limit))
        return drafts

    async def get_session(
        self, principal: Principal, session_id: str
    ) -> CodeSession:
        session = await self._sessions.get_by_id(session_id)
        if session is None or session.owner_id != principal.user_id:
            raise NotFound("Session not found")
        return session

    async def list_sessions(self, principal: Principal) -> list[CodeSession]:
        return await self._sessions.list_by_owner(principal.user_id)

    async def get_feedback_by_session(
        self, principal: Principal, session_id: str
    ) -> list[Feedback]:
        """Feedback of the session's latest analysis attempt, in order."""
        session = await self.get_session(principal, session_id)
        return await self._feedback.list_by_session(
            session_id, attempt=session.attempt or None
        )

    async def refactor(
        self, principal: Principal, session_id: str, feedback_id: str
    ) -> RefactorResult:
        """Rewrite the snippet behind *feedback_id* using its suggestion."""
        session = await self.get_session(principal, session_id)
        feedback = await self._feedback.get_by_id(feedback_id)
        if feedback is None or feedback.session_id != session.id:
            raise NotFound("Feedback not found")
        snippet = await self._snippets.get_by_id(feedback.snippet_id)
        if snippet is None:
            raise NotFound("Code snippet not found")

        return await self._reasoning.refactor(
            snippet.content, session.language, feedback.suggestion
        )


def _snippet(
    content: str, file_name: str | None, path: str | None, limit: int
) -> CodeSnippet:
    if len(content) > limit:
        raise ValidationFailure(
            f"Snippet {file_name or DEFAULT_SNIPPET_FILE_NAME!r} exceeds"
            f" {limit} characters"
        )
    return CodeSnippet(
        content=content,
        file_name=file_name or DEFAULT_SNIPPET_FILE_NAME,
        line_count=count_lines(content),
        path=path,
    )
