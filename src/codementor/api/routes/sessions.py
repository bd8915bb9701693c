"""Analysis session intake, reads and refactor suggestions."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from starlette.status import HTTP_201_CREATED

from codementor.api.dependencies import (
    get_principal,
    get_session_service,
)
from codementor.api.schemas import APIResponse, RefactorRequest
from codementor.auth.tokens import Principal
from codementor.services.schemas import SessionCreate
from codementor.services.session_service import SessionService

router = APIRouter(prefix="/api/sessions", tags=["sessions"])


@router.post("", status_code=HTTP_201_CREATED)
async def create_session(
    body: SessionCreate,
    principal: Principal = Depends(get_principal),
    service: SessionService = Depends(get_session_service),
) -> APIResponse:
    """Create a pending session and queue it for analysis."""
    session = await service.create_session(principal, body)
    return APIResponse(success=True, data=session.to_dict())


@router.get("")
async def list_sessions(
    principal: Principal = Depends(get_principal),
    service: SessionService = Depends(get_session_service),
) -> APIResponse:
    """List the caller's sessions, newest first."""
    sessions = await service.list_sessions(principal)
    return APIResponse(
        success=True,
        data=[s.to_dict() for s in sessions],
    )


@router.get("/{session_id}")
async def get_session(
    session_id: str,
    principal: Principal = Depends(get_principal),
    service: SessionService = Depends(get_session_service),
) -> APIResponse:
    session = await service.get_session(principal, session_id)
    return APIResponse(success=True, data=session.to_dict())


@router.get("/{session_id}/feedback")
async def get_feedback(
    session_id: str,
    principal: Principal = Depends(get_principal),
    service: SessionService = Depends(get_session_service),
) -> APIResponse:
    """Persisted feedback in emission order.

    Live subscribers that joined late reconcile from here.
    """
    items = await service.get_feedback_by_session(principal, session_id)
    return APIResponse(
        success=True,
        data=[f.to_dict() for f in items],
        metadata={"count": len(items)},
    )


@router.post("/{session_id}/refactor")
async def refactor(
    session_id: str,
    body: RefactorRequest,
    principal: Principal = Depends(get_principal),
    service: SessionService = Depends(get_session_service),
) -> APIResponse:
    result = await service.refactor(
        principal, session_id, body.feedback_id
    )
    return APIResponse(success=True, data=result.model_dump())
