"""Command line: ``codementor serve``, ``worker`` and ``token``."""

from __future__ import annotations

# configured before anything below pulls in litellm
from codementor.logging_config import setup_logging

setup_logging()

import argparse  # noqa: E402
import asyncio  # noqa: E402
import signal  # noqa: E402
import sys  # noqa: E402

from codementor import __version__  # noqa: E402
from codementor.config import Settings  # noqa: E402
from codementor.constants import UserRole  # noqa: E402
from codementor.logging_config import (  # noqa: E402
    apply_log_level,
    cleanup_third_party_handlers,
)

cleanup_third_party_handlers()


def main(argv: list[str] | None = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)
    if args.version:
        print(f"codementor {__version__}")
        return

    commands = {
        "serve": _run_serve,
        "worker": _run_worker,
        "token": _run_token,
    }
    handler = commands.get(args.command)
    if handler is None:
        parser.print_help()
        return
    handler(args)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="codementor",
        description=(
            "AI code review service with live feedback"
            " and progress tracking."
        ),
    )
    parser.add_argument(
        "--version",
        action="store_true",
        help="print the version and exit",
    )

    sub = parser.add_subparsers(dest="command")

    serve = sub.add_parser("serve", help="Run the HTTP/websocket API")
    serve.add_argument(
        "--host",
        default="127.0.0.1",
        help="Bind address (default: 127.0.0.1)",
    )
    serve.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port (default: 8000)",
    )
    serve.add_argument(
        "--reload",
        action="store_true",
        help="Reload on code changes (development)",
    )

    worker = sub.add_parser(
        "worker",
        help="Run a standalone analysis queue worker",
    )
    worker.add_argument(
        "--concurrency",
        "-c",
        type=int,
        default=None,
        help=(
            "Jobs processed at once "
            "(default: QUEUE_MAX_CONCURRENCY)"
        ),
    )

    token = sub.add_parser(
        "token",
        help="Issue a bearer token (operators and local development)",
    )
    token.add_argument("user_id", help="Subject user id")
    token.add_argument("--email", default="", help="Email claim")
    token.add_argument(
        "--role",
        choices=[r.value for r in UserRole],
        default=UserRole.USER.value,
        help="Role claim (default: user)",
    )
    token.add_argument(
        "--ttl",
        type=int,
        default=None,
        help="Lifetime in seconds (default: TOKEN_TTL_SECONDS)",
    )

    return parser


def _run_serve(args: argparse.Namespace) -> None:
    """Serve the API (and, by default, an in-process worker)."""
    import uvicorn

    settings = Settings()
    uvicorn.run(
        "codementor.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=settings.log_level.lower(),
    )


def _run_worker(args: argparse.Namespace) -> None:
    settings = Settings()
    if args.concurrency is not None:
        if args.concurrency < 1:
            print("Error: --concurrency must be >= 1", file=sys.stderr)
            sys.exit(1)
        settings.queue_max_concurrency = args.concurrency
    asyncio.run(_worker_main(settings))


async def _worker_main(settings: Settings) -> None:
    """Drain the queue until SIGINT/SIGTERM; events are only logged."""
    from sqlalchemy.ext.asyncio import async_sessionmaker

    from codementor.api.app_state import build_app_state
    from codementor.config import create_app_engine
    from codementor.logger import JobLogger
    from codementor.models.base import Base

    apply_log_level(settings.log_level)
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    engine = create_app_engine(settings.database_url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, expire_on_commit=False)
    state = build_app_state(
        settings,
        session_factory,
        job_logger=JobLogger(settings.log_dir, settings.log_level),
        live=False,
    )

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, state.worker.request_stop)

    print(
        f"Worker {state.worker.worker_id} polling"
        f" (concurrency={settings.queue_max_concurrency})"
    )
    try:
        await state.worker.run_forever()
    finally:
        await engine.dispose()


def _run_token(args: argparse.Namespace) -> None:
    """Print a signed bearer token for *user_id*."""
    from codementor.auth.tokens import Principal, TokenVerifier

    settings = Settings()
    verifier = TokenVerifier(
        settings.auth_secret,
        args.ttl if args.ttl is not None else settings.token_ttl_seconds,
    )
    print(
        verifier.issue(
            Principal(
                user_id=args.user_id,
                email=args.email,
                role=args.role,
            )
        )
    )


if __name__ == "__main__":
    main()
