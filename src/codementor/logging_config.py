"""Process-wide logging setup, applied in two idempotent phases.

1. ``setup_logging()`` runs before anything imports litellm. litellm
   reads ``LITELLM_LOG`` and attaches its own stream handlers at import
   time, so the env var and the root handler must exist first.
2. ``cleanup_third_party_handlers()`` runs once every import is done and
   strips the handlers litellm attached, leaving root as the only sink.

``apply_log_level()`` re-levels the root logger once ``Settings`` has
been read (the API lifespan and the standalone worker call it), since
phase 1 runs before any configuration is loaded.
"""

import logging
import os

LOG_FORMAT = "%(asctime)s - %(levelname)s - [%(name)s] - %(message)s"
LOG_DATEFMT = "%Y-%m-%dT%H:%M:%S"

# Chatty libraries pinned to WARNING regardless of the app level
_SUPPRESSED_LOGGERS = (
    "LiteLLM",
    "LiteLLM Router",
    "LiteLLM Proxy",
    "openai._base_client",
    "httpx",
    "aiosqlite",
    "sqlalchemy.engine",
    "websockets",
)

# Loggers litellm decorates with its own StreamHandler on import
_LITELLM_LOGGERS = ("LiteLLM", "LiteLLM Router", "LiteLLM Proxy")

_phase1_done = False
_phase2_done = False


def _resolve_level(level: str | None) -> int:
    name = (level or os.environ.get("LOG_LEVEL") or "INFO").upper()
    resolved = logging.getLevelName(name)
    return resolved if isinstance(resolved, int) else logging.INFO


def setup_logging(level: str | None = None) -> None:
    """Phase 1: root handler, format and third-party levels.

    *level* defaults to ``$LOG_LEVEL`` (then INFO). Only the first call
    has any effect.
    """
    global _phase1_done  # noqa: PLW0603
    if _phase1_done:
        return
    _phase1_done = True

    os.environ.setdefault("LITELLM_LOG", "WARNING")

    logging.basicConfig(
        level=_resolve_level(level),
        format=LOG_FORMAT,
        datefmt=LOG_DATEFMT,
    )

    for name in _SUPPRESSED_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def cleanup_third_party_handlers() -> None:
    """Phase 2: drop litellm's handlers so records are emitted once."""
    global _phase2_done  # noqa: PLW0603
    if _phase2_done:
        return
    _phase2_done = True

    for name in _LITELLM_LOGGERS:
        lg = logging.getLogger(name)
        lg.handlers.clear()
        lg.propagate = True


def apply_log_level(level: str) -> None:
    """Set the root level from ``Settings.log_level``.

    Suppressed third-party loggers keep their WARNING floor.
    """
    logging.getLogger().setLevel(_resolve_level(level))
