"""Per-user progress reads."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from codementor.api.dependencies import (
    get_principal,
    get_progress_service,
)
from codementor.api.schemas import APIResponse
from codementor.auth.tokens import Principal
from codementor.constants import DEFAULT_MISTAKES_LIMIT
from codementor.services.progress_service import ProgressService

router = APIRouter(prefix="/api/progress", tags=["progress"])


@router.get("")
async def get_progress(
    principal: Principal = Depends(get_principal),
    service: ProgressService = Depends(get_progress_service),
) -> APIResponse:
    """The caller's profile; ``data`` is null before the first analysis."""
    profile = await service.get_progress(principal.user_id)
    return APIResponse(
        success=True,
        data=profile.to_dict() if profile else None,
    )


@router.get("/mistakes")
async def get_common_mistakes(
    limit: int = Query(default=DEFAULT_MISTAKES_LIMIT, ge=1, le=100),
    principal: Principal = Depends(get_principal),
    service: ProgressService = Depends(get_progress_service),
) -> APIResponse:
    mistakes = await service.get_common_mistakes(
        principal.user_id, limit=limit
    )
    return APIResponse(success=True, data=mistakes)


@router.get("/languages")
async def get_language_proficiency(
    principal: Principal = Depends(get_principal),
    service: ProgressService = Depends(get_progress_service),
) -> APIResponse:
    languages = await service.get_language_proficiency(principal.user_id)
    return APIResponse(success=True, data=languages)
