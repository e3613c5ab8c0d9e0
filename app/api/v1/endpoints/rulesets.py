from typing import Optional

from fastapi import APIRouter, Depends, Query

from app.api.deps import get_ruleset_loader
from app.schemas.ruleset import MergedRuleSet, ResolveRequest
from app.services.ruleset_loader import RulesetLoader

router = APIRouter(prefix="/rulesets", tags=["Rulesets"])


@router.post("/resolve", response_model=MergedRuleSet)
async def resolve_ruleset(
    request_body: ResolveRequest,
    loader: RulesetLoader = Depends(get_ruleset_loader),
) -> MergedRuleSet:
    """Return the effective ruleset for an app, locale and organization.

    Falls back to the code base ruleset when stored overrides are
    disabled or unreachable; the response ``source`` tells which.
    """
    return await loader.get_active_ruleset(
        request_body.app_metadata,
        locale=request_body.locale,
        organization_id=request_body.organization_id,
    )


@router.get("/preview", response_model=MergedRuleSet)
async def preview_ruleset(
    vertical: Optional[str] = Query(None, max_length=50),
    market: Optional[str] = Query(None, max_length=10),
    organization_id: Optional[str] = Query(None, max_length=64),
    app_id: Optional[str] = Query(None, max_length=64),
    loader: RulesetLoader = Depends(get_ruleset_loader),
) -> MergedRuleSet:
    """Resolve an explicit scope without vertical or market detection."""
    return await loader.get_ruleset_for_scope(
        vertical=vertical,
        market=market,
        organization_id=organization_id,
        app_id=app_id,
    )
