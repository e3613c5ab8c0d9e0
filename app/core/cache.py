import logging
from typing import Optional

from redis.asyncio import Redis

from app.core.constants import RULESET_GENERATION_KEY

logger = logging.getLogger(__name__)


class CacheService:
    """Thin wrapper around an async Redis client.

    If *redis_client* is ``None`` (Redis unavailable), every operation
    degrades to a no-op, so callers never need to check for ``None``.
    Redis only carries the ruleset generation counter that tells every
    worker to drop its in-process ruleset cache; the rulesets themselves
    stay in process.
    """

    def __init__(self, redis_client: Optional[Redis] = None) -> None:
        self._redis: Optional[Redis] = redis_client

    # ------------------------------------------------------------------
    # Raw access
    # ------------------------------------------------------------------

    async def get(self, key: str) -> Optional[str]:
        """Return the raw string value for *key*, or ``None``."""
        if self._redis is None:
            return None
        try:
            return await self._redis.get(key)
        except Exception:
            logger.warning("Redis GET failed for key %s", key)
            return None

    # ------------------------------------------------------------------
    # Atomic counter
    # ------------------------------------------------------------------

    async def incr(self, key: str) -> Optional[int]:
        """Increment an integer counter and return the new value.

        Returns ``None`` if Redis is unavailable.
        """
        if self._redis is None:
            return None
        try:
            return await self._redis.incr(key)
        except Exception:
            logger.warning("Redis INCR failed for key %s", key)
            return None

    # ------------------------------------------------------------------
    # Ruleset generation
    # ------------------------------------------------------------------

    async def get_ruleset_generation(self) -> Optional[int]:
        """Return the shared invalidation counter, ``None`` if unknown."""
        raw = await self.get(RULESET_GENERATION_KEY)
        if raw is None:
            return None
        try:
            return int(raw)
        except (TypeError, ValueError):
            logger.warning("Invalid ruleset generation value %r", raw)
            return None

    async def bump_ruleset_generation(self) -> Optional[int]:
        """Tell every worker that its ruleset cache is stale."""
        return await self.incr(RULESET_GENERATION_KEY)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def is_available(self) -> bool:
        """Return ``True`` if a Redis client is configured."""
        return self._redis is not None
