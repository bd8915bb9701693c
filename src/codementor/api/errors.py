"""Map domain errors onto the response envelope."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.responses import JSONResponse

from codementor.resilience.errors import (
    CodeMentorError,
    NotFound,
    UpstreamFailure,
    ValidationFailure,
)

logger = logging.getLogger(__name__)

_STATUS_CODES: dict[type[CodeMentorError], int] = {
    ValidationFailure: 422,
    NotFound: 404,
    UpstreamFailure: 502,
}


def _envelope(status_code: int, error: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "data": None,
            "error": error,
            "metadata": {},
        },
    )


async def _domain_error(request: Request, exc: Exception) -> JSONResponse:
    status_code = next(
        (
            code
            for kind, code in _STATUS_CODES.items()
            if isinstance(exc, kind)
        ),
        500,
    )
    if status_code >= 500:
        logger.error(
            "event=request_failed path=%s error=%s",
            request.url.path,
            exc,
        )
    return _envelope(status_code, str(exc))


async def _request_validation_error(
    request: Request, exc: Exception
) -> JSONResponse:
    errors = getattr(exc, "errors", list)()
    detail = "; ".join(
        f"{'.'.join(str(p) for p in e.get('loc', ()))}: {e.get('msg')}"
        for e in errors
    )
    return _envelope(422, detail or "Invalid request")


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(CodeMentorError, _domain_error)
    app.add_exception_handler(
        RequestValidationError, _request_validation_error
    )
