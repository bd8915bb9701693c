"""SQL implementation of UsageRepository."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from codementor.models.usage import UsageRecord


class SqlUsageRepository:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        self._session_factory = session_factory

    async def create(self, record: UsageRecord) -> UsageRecord:
        async with self._session_factory() as session, session.begin():
            session.add(record)
        return record

    async def list_by_user(self, user_id: str) -> list[UsageRecord]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(UsageRecord)
                .where(UsageRecord.user_id == user_id)
                .order_by(UsageRecord.created_at.desc())
            )
            return list(result.scalars().all())
