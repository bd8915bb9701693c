"""SQL implementation of FeedbackRepository."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from codementor.models.feedback import Feedback


class SqlFeedbackRepository:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        self._session_factory = session_factory

    async def get_by_id(self, feedback_id: str) -> Feedback | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(Feedback).where(Feedback.id == feedback_id)
            )
            return result.scalar_one_or_none()

    async def list_by_session(
        self, session_id: str, attempt: int | None = None
    ) -> list[Feedback]:
        stmt = select(Feedback).where(Feedback.session_id == session_id)
        if attempt is not None:
            stmt = stmt.where(Feedback.attempt == attempt)
        async with self._session_factory() as session:
            result = await session.execute(
                stmt.order_by(Feedback.position, Feedback.id)
            )
            return list(result.scalars().all())

    async def create(self, feedback: Feedback) -> Feedback:
        async with self._session_factory() as session, session.begin():
            session.add(feedback)
        return feedback
