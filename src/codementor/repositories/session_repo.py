"""SQL implementation of SessionRepository."""

from sqlalchemy import delete as sa_delete
from sqlalchemy import select
from sqlalchemy import update as sa_update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from codementor.constants import SessionStatus
from codementor.models.session import CodeSession
from codementor.models.snippet import CodeSnippet


class SqlSessionRepository:
    """Session repo that owns its own sessions.

    Status transitions are written from the background worker while
    API requests read them, so every operation commits in its own
    short-lived transaction.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        self._session_factory = session_factory

    async def get_by_id(
        self, session_id: str
    ) -> CodeSession | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(CodeSession).where(CodeSession.id == session_id)
            )
            return result.scalar_one_or_none()

    async def list_by_owner(self, owner_id: str) -> list[CodeSession]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(CodeSession)
                .where(CodeSession.owner_id == owner_id)
                .order_by(CodeSession.created_at.desc())
            )
            return list(result.scalars().all())

    async def create(self, code_session: CodeSession) -> CodeSession:
        async with self._session_factory() as session, session.begin():
            session.add(code_session)
        return code_session

    async def create_with_snippets(
        self, code_session: CodeSession, snippets: list[CodeSnippet]
    ) -> CodeSession:
        """Insert the session and its snippets in one transaction."""
        async with self._session_factory() as session, session.begin():
            session.add(code_session)
            await session.flush()
            for snippet in snippets:
                snippet.session_id = code_session.id
            session.add_all(snippets)
        return code_session

    async def delete(self, session_id: str) -> None:
        """Remove a session and its snippets in one transaction."""
        async with self._session_factory() as session, session.begin():
            await session.execute(
                sa_delete(CodeSnippet).where(
                    CodeSnippet.session_id == session_id
                )
            )
            await session.execute(
                sa_delete(CodeSession).where(CodeSession.id == session_id)
            )

    async def try_set_status(
        self,
        session_id: str,
        expected: set[str],
        new_status: str,
        message: str | None = None,
    ) -> bool:
        """Atomically set status only if current status matches expected."""
        values: dict[str, str] = {"status": new_status}
        if message is not None:
            values["status_message"] = message
        async with self._session_factory() as session, session.begin():
            result = await session.execute(
                sa_update(CodeSession)
                .where(
                    CodeSession.id == session_id,
                    CodeSession.status.in_(expected),
                )
                .values(**values)
            )
        rowcount: int = getattr(result, "rowcount", 0) or 0
        return rowcount > 0

    async def start_attempt(
        self,
        session_id: str,
        expected: set[str],
        message: str | None = None,
    ) -> int | None:
        """Move the session to analyzing and bump its attempt counter.

        Returns the new attempt number, or None when the current status
        is not in ``expected``.
        """
        async with self._session_factory() as session, session.begin():
            result = await session.execute(
                sa_update(CodeSession)
                .where(
                    CodeSession.id == session_id,
                    CodeSession.status.in_(expected),
                )
                .values(
                    status=SessionStatus.ANALYZING,
                    status_message=message,
                    attempt=CodeSession.attempt + 1,
                )
                .returning(CodeSession.attempt)
            )
            return result.scalar_one_or_none()
