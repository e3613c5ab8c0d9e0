import logging
from typing import Optional

from fastapi import Depends, Request
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.cache import CacheService
from app.core.config import settings
from app.core.database import get_db
from app.core.ruleset_cache import RulesetCache
from app.services.ruleset_loader import RulesetLoader

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Redis client factory
# ---------------------------------------------------------------------------


async def get_redis_client() -> Optional[Redis]:
    """Get an async Redis client instance using connection pooling."""
    try:
        client = Redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
        )
        await client.ping()
        return client
    except Exception:
        logger.warning(
            "Redis unavailable - ruleset invalidations stay local to this worker"
        )
        return None


# ---------------------------------------------------------------------------
# Cache factories
# ---------------------------------------------------------------------------


async def get_cache_service(
    redis_client: Optional[Redis] = Depends(get_redis_client),
) -> CacheService:
    """Build a :class:`CacheService` backed by the shared Redis client."""
    return CacheService(redis_client=redis_client)


def get_ruleset_cache(request: Request) -> RulesetCache:
    """Return the per-application ruleset cache stored on ``app.state``."""
    return request.app.state.ruleset_cache


# ---------------------------------------------------------------------------
# Repository factory functions
# ---------------------------------------------------------------------------


async def get_override_repo(
    db: AsyncSession = Depends(get_db),
):
    from app.repositories.override_repository import OverrideRepository

    return OverrideRepository(db)


# ---------------------------------------------------------------------------
# Service factory functions
# ---------------------------------------------------------------------------


async def get_ruleset_loader(
    override_repo=Depends(get_override_repo),
    cache: RulesetCache = Depends(get_ruleset_cache),
    cache_service: CacheService = Depends(get_cache_service),
) -> RulesetLoader:
    return RulesetLoader(
        override_repo=override_repo,
        cache=cache,
        cache_service=cache_service,
        overrides_enabled=settings.RULESET_DB_OVERRIDES_ENABLED,
        load_timeout=settings.RULESET_LOAD_TIMEOUT_SECONDS,
    )


async def get_metadata_audit_service(
    loader: RulesetLoader = Depends(get_ruleset_loader),
):
    """Build a :class:`MetadataAuditService` around the request's loader."""
    from app.services.metadata_audit import MetadataAuditService

    return MetadataAuditService(loader=loader)


async def get_override_admin_service(
    override_repo=Depends(get_override_repo),
    loader: RulesetLoader = Depends(get_ruleset_loader),
):
    """Build an :class:`OverrideAdminService` with injected dependencies."""
    from app.services.override_admin import OverrideAdminService

    return OverrideAdminService(override_repo=override_repo, loader=loader)
