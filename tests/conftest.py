"""Shared test fixtures: file-backed SQLite, fakes, signed tokens."""

import os

# Placeholder provider keys so no test can reach a real model, set
# before any Settings() is built.
os.environ["ANTHROPIC_API_KEY"] = "for-demo-purposes-only"
os.environ["OPENAI_API_KEY"] = "for-demo-purposes-only"
os.environ["AUTH_SECRET"] = "test-secret"

from collections.abc import AsyncIterator
from pathlib import Path

import pytest
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
)

from codementor.auth.tokens import Principal, TokenVerifier
from codementor.config import Settings, create_app_engine
from codementor.models.base import Base
from tests.factories import TEST_SECRET, FakeStores, fake_stores


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'test.db'}",
        data_dir=tmp_path / "data",
        log_dir=tmp_path / "logs",
        auth_secret=TEST_SECRET,
        queue_backoff_seconds=1.0,
    )


@pytest.fixture
async def engine(settings: Settings) -> AsyncIterator[AsyncEngine]:
    """Per-test SQLite file; repositories open their own sessions."""
    engine = create_app_engine(settings.database_url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(
    engine: AsyncEngine,
) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
def verifier() -> TokenVerifier:
    return TokenVerifier(TEST_SECRET, ttl_seconds=3600)


@pytest.fixture
def principal() -> Principal:
    return Principal(user_id="user-1", email="dev@example.com")


@pytest.fixture
def stores() -> FakeStores:
    return fake_stores()
