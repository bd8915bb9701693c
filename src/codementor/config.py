"""Runtime settings, read from ``.env`` and the process environment.

Field names map one-to-one onto upper-cased environment variables
(``QUEUE_MAX_CONCURRENCY`` sets ``queue_max_concurrency``).
"""

from __future__ import annotations

import logging
from collections import Counter
from pathlib import Path
from typing import Annotated, Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from codementor.constants import DEFAULT_USAGE_MODEL

logger = logging.getLogger(__name__)

_SQLITE_PREFIX = "sqlite:///"
_AIOSQLITE_PREFIX = "sqlite+aiosqlite:///"


class Settings(BaseSettings):
    """All tunables for the API process and the standalone worker."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Reasoning: models are tried in order until one answers
    litellm_model_chain: Annotated[list[str], NoDecode] = [
        "openai/gpt-4-turbo-preview",
        "openai/gpt-4.1-mini",
    ]
    llm_timeout_seconds: int = 60
    analysis_temperature: float = 0.3
    refactor_temperature: float = 0.2
    usage_model: str = DEFAULT_USAGE_MODEL

    # Storage
    database_url: str = "sqlite:///data/codementor.db"
    data_dir: Path = Path("data")
    log_dir: Path = Path("logs")

    log_level: str = "INFO"
    debug_mode: bool = False

    # Bearer tokens and browser origins
    auth_secret: str = "change-me"
    token_ttl_seconds: int = 7 * 24 * 3600
    cors_origins: str = "http://localhost:3000"

    # Analysis job queue
    queue_poll_interval: float = 1.0
    queue_max_concurrency: int = Field(default=4, ge=1)
    queue_max_attempts: int = Field(default=3, ge=1)
    queue_backoff_seconds: float = 15.0
    queue_stale_seconds: float = 600.0
    queue_heartbeat_seconds: float = 30.0
    run_worker_in_process: bool = True

    max_snippet_chars: int = 200_000
    progress_update_retries: int = Field(default=5, ge=1)

    @field_validator("litellm_model_chain", mode="before")
    @classmethod
    def _split_chain(cls, value: Any) -> Any:
        # env vars arrive as "a,b"; lists pass through untouched
        if not isinstance(value, str):
            return value
        return [part.strip() for part in value.split(",") if part.strip()]

    @field_validator("litellm_model_chain")
    @classmethod
    def _check_chain(cls, chain: list[str]) -> list[str]:
        if not chain:
            raise ValueError(
                "litellm_model_chain must contain at least one model"
            )
        repeated = [m for m, n in Counter(chain).items() if n > 1]
        if repeated:
            logger.warning(
                "Duplicate models in LITELLM_MODEL_CHAIN: %s",
                ", ".join(repeated),
            )
        return chain

    @property
    def allowed_origins(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


def _async_url(url: str) -> str:
    if url.startswith(_SQLITE_PREFIX):
        return _AIOSQLITE_PREFIX + url.removeprefix(_SQLITE_PREFIX)
    return url


def create_app_engine(url: str, *, echo: bool = False) -> AsyncEngine:
    """Build the async engine for *url*.

    Plain ``sqlite:///`` URLs are routed through aiosqlite. SQLite
    connections switch to WAL on connect so the worker and API can
    read while the other writes.
    """
    engine = create_async_engine(_async_url(url), echo=echo)
    if engine.dialect.name != "sqlite":
        return engine

    @event.listens_for(engine.sync_engine, "connect")
    def _enable_wal(dbapi_conn: Any, _record: Any) -> None:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    return engine
