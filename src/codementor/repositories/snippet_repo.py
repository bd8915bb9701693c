"""SQL implementation of SnippetRepository."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from codementor.models.snippet import CodeSnippet


class SqlSnippetRepository:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        self._session_factory = session_factory

    async def get_by_id(self, snippet_id: str) -> CodeSnippet | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(CodeSnippet).where(CodeSnippet.id == snippet_id)
            )
            return result.scalar_one_or_none()

    async def list_by_session(
        self, session_id: str
    ) -> list[CodeSnippet]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(CodeSnippet)
                .where(CodeSnippet.session_id == session_id)
                .order_by(CodeSnippet.position)
            )
            return list(result.scalars().all())

    async def bulk_create(
        self, snippets: list[CodeSnippet]
    ) -> list[CodeSnippet]:
        async with self._session_factory() as session, session.begin():
            session.add_all(snippets)
        return snippets
