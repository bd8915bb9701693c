"""SQL implementation of ProgressRepository with optimistic concurrency."""

import logging

from sqlalchemy import select
from sqlalchemy import update as sa_update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from codementor.models.progress import ProgressProfile

logger = logging.getLogger(__name__)


class SqlProgressRepository:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        self._session_factory = session_factory

    async def get_by_user(
        self, user_id: str
    ) -> ProgressProfile | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(ProgressProfile).where(
                    ProgressProfile.user_id == user_id
                )
            )
            return result.scalar_one_or_none()

    async def save(
        self,
        profile: ProgressProfile,
        expected_version: int | None,
    ) -> bool:
        """Write *profile* if nobody else wrote since it was read.

        ``expected_version=None`` means the profile is new; losing the
        insert race to another writer on the unique ``user_id`` returns
        False just like a version mismatch does.
        """
        if expected_version is None:
            profile.version = 1
            try:
                async with (
                    self._session_factory() as session,
                    session.begin(),
                ):
                    session.add(profile)
            except IntegrityError:
                logger.info(
                    "event=progress_insert_conflict user_id=%s",
                    profile.user_id,
                )
                return False
            return True

        async with self._session_factory() as session, session.begin():
            result = await session.execute(
                sa_update(ProgressProfile)
                .where(
                    ProgressProfile.user_id == profile.user_id,
                    ProgressProfile.version == expected_version,
                )
                .values(
                    total_submissions=profile.total_submissions,
                    mistakes=profile.mistakes,
                    improvement_score=profile.improvement_score,
                    language_counts=profile.language_counts,
                    personality=profile.personality,
                    last_analyzed_at=profile.last_analyzed_at,
                    folded_sessions=profile.folded_sessions,
                    version=expected_version + 1,
                )
            )
        rowcount: int = getattr(result, "rowcount", 0) or 0
        if rowcount:
            profile.version = expected_version + 1
        return rowcount > 0
