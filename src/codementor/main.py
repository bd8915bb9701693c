"""ASGI entry point: ``uvicorn codementor.main:app``."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

# litellm reads LITELLM_LOG when first imported, and the services below
# import it, so logging is configured before them.
from codementor.logging_config import setup_logging

setup_logging()

from fastapi import FastAPI  # noqa: E402
from fastapi.middleware.cors import CORSMiddleware  # noqa: E402
from sqlalchemy.ext.asyncio import async_sessionmaker  # noqa: E402

from codementor import __version__  # noqa: E402
from codementor.api.app_state import AppState, build_app_state  # noqa: E402
from codementor.api.errors import register_exception_handlers  # noqa: E402
from codementor.api.middleware.auth import (  # noqa: E402
    BearerAuthMiddleware,
)
from codementor.api.routes import (  # noqa: E402
    health,
    live,
    progress,
    sessions,
)
from codementor.config import Settings, create_app_engine  # noqa: E402
from codementor.logger import JobLogger  # noqa: E402
from codementor.logging_config import (  # noqa: E402
    apply_log_level,
    cleanup_third_party_handlers,
)
from codementor.models.base import Base  # noqa: E402

cleanup_third_party_handlers()

_logger = logging.getLogger(__name__)
_settings = Settings()


def _publish(app: FastAPI, state: AppState) -> None:
    # dependencies read these attributes off request.app.state
    app.state.settings = state.settings
    app.state.verifier = state.verifier
    app.state.hub = state.hub
    app.state.session_service = state.session_service
    app.state.progress_service = state.progress_service


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings = _settings
    apply_log_level(settings.log_level)
    if settings.auth_secret == "change-me":
        _logger.warning("event=default_auth_secret action=set_AUTH_SECRET")

    settings.data_dir.mkdir(parents=True, exist_ok=True)
    engine = create_app_engine(
        settings.database_url, echo=settings.debug_mode
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    state = build_app_state(
        settings,
        async_sessionmaker(engine, expire_on_commit=False),
        job_logger=JobLogger(settings.log_dir, level=settings.log_level),
    )
    _publish(app, state)

    if settings.run_worker_in_process:
        await state.worker.start()
    else:
        _logger.info("event=worker_disabled mode=standalone")

    try:
        yield
    finally:
        if state.worker.running:
            await state.worker.stop()
        await state.hub.close()
        await engine.dispose()


app = FastAPI(
    title="CodeMentor",
    description=(
        "Code review sessions with feedback streamed as it is produced"
        " and a running progress profile per user."
    ),
    version=__version__,
    openapi_url="/api/openapi.json",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    lifespan=lifespan,
)

# Added last so it wraps auth: preflight OPTIONS carries no token.
app.add_middleware(BearerAuthMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.allowed_origins,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
    allow_credentials=False,
)

register_exception_handlers(app)

for _router in (health.router, sessions.router, progress.router, live.router):
    app.include_router(_router)
