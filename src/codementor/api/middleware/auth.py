"""Bearer token authentication middleware."""

from __future__ import annotations

from fastapi import Request, Response
from starlette.middleware.base import (
    BaseHTTPMiddleware,
    RequestResponseEndpoint,
)
from starlette.responses import JSONResponse

from codementor.auth.tokens import InvalidToken, bearer_token
from codementor.constants import (
    AUTH_EXEMPT_PATHS,
    AUTH_EXEMPT_PREFIXES,
)


class BearerAuthMiddleware(BaseHTTPMiddleware):
    """Verify ``Authorization: Bearer`` and attach the principal.

    Health and docs endpoints are always public. The live channel
    authenticates its own handshake, so ``/ws/`` is exempt here.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        path = request.url.path

        # Exempt paths and prefixes are always public
        if (
            request.method == "OPTIONS"
            or path in AUTH_EXEMPT_PATHS
            or path.startswith(AUTH_EXEMPT_PREFIXES)
        ):
            return await call_next(request)

        verifier = request.app.state.verifier
        token = bearer_token(request.headers.get("Authorization"))
        try:
            request.state.principal = verifier.verify(token)
        except InvalidToken:
            return JSONResponse(
                status_code=401,
                content={
                    "success": False,
                    "error": "Invalid or missing bearer token",
                    "data": None,
                    "metadata": {},
                },
            )

        return await call_next(request)
