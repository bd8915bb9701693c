"""FastAPI dependency injection for services and the caller identity."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import HTTPException, Request

from codementor.auth.tokens import Principal

if TYPE_CHECKING:
    from codementor.services.progress_service import ProgressService
    from codementor.services.session_service import SessionService


def get_principal(request: Request) -> Principal:
    """Identity verified by ``BearerAuthMiddleware``."""
    principal: Principal | None = getattr(
        request.state, "principal", None
    )
    if principal is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return principal


def get_session_service(request: Request) -> SessionService:
    """Get SessionService from app.state."""
    return request.app.state.session_service  # type: ignore[no-any-return]


def get_progress_service(request: Request) -> ProgressService:
    """Get ProgressService from app.state."""
    return request.app.state.progress_service  # type: ignore[no-any-return]
