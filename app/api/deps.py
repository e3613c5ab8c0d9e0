"""API-layer dependency functions.

Re-exports all dependency factories from ``app.dependencies`` so that
endpoint modules only need to import from ``app.api.deps``.
"""

from app.dependencies import (
    # Repository factories
    get_override_repo,
    # Service factories
    get_ruleset_loader,
    get_metadata_audit_service,
    get_override_admin_service,
    # Caches
    get_ruleset_cache,
    get_cache_service,
    # Redis
    get_redis_client,
)

__all__ = [
    "get_override_repo",
    "get_ruleset_loader",
    "get_metadata_audit_service",
    "get_override_admin_service",
    "get_ruleset_cache",
    "get_cache_service",
    "get_redis_client",
]
