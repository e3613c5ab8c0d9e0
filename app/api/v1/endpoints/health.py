from fastapi import APIRouter, Depends

from app.api.deps import get_ruleset_cache
from app.core.config import settings
from app.core.ruleset_cache import RulesetCache

router = APIRouter(tags=["Health"])


@router.get("/health")
async def health(cache: RulesetCache = Depends(get_ruleset_cache)) -> dict:
    """Liveness probe; never touches the database."""
    return {
        "status": "ok",
        "ruleset_overrides_enabled": settings.RULESET_DB_OVERRIDES_ENABLED,
        "ruleset_cache_size": len(cache),
    }
