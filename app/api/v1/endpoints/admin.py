from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request

from app.api.deps import get_override_admin_service, get_ruleset_cache
from app.core.rate_limit import limiter
from app.core.ruleset_cache import RulesetCache
from app.schemas.common import OverrideKind, ScopeLayer
from app.schemas.override import (
    InvalidationResult,
    OverrideCreate,
    OverrideOut,
    RulesetScope,
)
from app.schemas.ruleset import CacheStats
from app.services.override_admin import OverrideAdminService

router = APIRouter(prefix="/admin", tags=["Admin"])


@router.get("/overrides", response_model=List[OverrideOut])
async def list_overrides(
    layer: Optional[ScopeLayer] = None,
    scope_key: Optional[str] = Query(None, max_length=130),
    kind: Optional[OverrideKind] = None,
    include_inactive: bool = False,
    service: OverrideAdminService = Depends(get_override_admin_service),
) -> List[OverrideOut]:
    return await service.list_overrides(
        layer=layer,
        scope_key=scope_key,
        kind=kind,
        include_inactive=include_inactive,
    )


@router.post("/overrides", response_model=OverrideOut, status_code=201)
@limiter.limit("30/minute")
async def create_override(
    request: Request,
    request_body: OverrideCreate,
    service: OverrideAdminService = Depends(get_override_admin_service),
) -> OverrideOut:
    """Store an override and invalidate every cached ruleset it affects.

    Rejected with 422 when the payload would be dropped by normalization.
    """
    return await service.create_override(request_body)


@router.delete("/overrides/{override_id}", response_model=OverrideOut)
@limiter.limit("30/minute")
async def deactivate_override(
    request: Request,
    override_id: UUID,
    service: OverrideAdminService = Depends(get_override_admin_service),
) -> OverrideOut:
    """Soft-delete an override; the row is kept for audit."""
    return await service.deactivate_override(override_id)


@router.post("/rulesets/invalidate", response_model=InvalidationResult)
@limiter.limit("30/minute")
async def invalidate_rulesets(
    request: Request,
    scope: RulesetScope,
    service: OverrideAdminService = Depends(get_override_admin_service),
) -> InvalidationResult:
    invalidated = await service.invalidate(scope)
    return InvalidationResult(
        layer=scope.layer,
        scope_key=scope.scope_key,
        invalidated=invalidated,
    )


@router.get("/rulesets/cache-stats", response_model=CacheStats)
async def cache_stats(
    cache: RulesetCache = Depends(get_ruleset_cache),
) -> CacheStats:
    return cache.stats()
