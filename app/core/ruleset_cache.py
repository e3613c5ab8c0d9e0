import logging
import threading
import time
from typing import Callable, Dict, NamedTuple, Optional, Tuple

from app.core.constants import CACHE_KEY_SENTINEL, CACHE_KEY_SEPARATOR
from app.schemas.common import ScopeLayer
from app.schemas.override import RulesetScope
from app.schemas.ruleset import CacheStats, MergedRuleSet

logger = logging.getLogger(__name__)


class CacheKey(NamedTuple):
    vertical: Optional[str] = None
    market: Optional[str] = None
    organization_id: Optional[str] = None
    app_id: Optional[str] = None

    def render(self) -> str:
        """Return the ``vertical|market|org|app`` string form."""
        return CACHE_KEY_SEPARATOR.join(part or CACHE_KEY_SENTINEL for part in self)


def build_cache_key(
    vertical: Optional[str] = None,
    market: Optional[str] = None,
    organization_id: Optional[str] = None,
    app_id: Optional[str] = None,
) -> CacheKey:
    return CacheKey(
        vertical or None,
        market or None,
        organization_id or None,
        app_id or None,
    )


class _Entry(NamedTuple):
    key: CacheKey
    value: MergedRuleSet
    inserted_at: float


class RulesetCache:
    """Bounded, time-expiring memo of merged rulesets.

    Entries are immutable tuples replaced as a whole.  Writers take a lock;
    readers never do, they look up the current entry with a single dict
    access and see either the old entry or the new one.  When full, the
    entry inserted first is evicted (after any expired entries).

    Every invalidation advances ``epoch``.  A writer that read the epoch
    before loading passes it to ``set`` so a result computed before an
    invalidation is never stored.
    """

    def __init__(
        self,
        ttl_seconds: float = 300,
        max_entries: int = 100,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self._ttl = float(ttl_seconds)
        self._max_entries = max_entries
        self._clock = clock
        self._entries: Dict[str, _Entry] = {}
        self._write_lock = threading.Lock()
        self._generation: Optional[int] = None
        self._epoch = 0

    # ------------------------------------------------------------------
    # Read / write
    # ------------------------------------------------------------------

    def get(self, key: CacheKey) -> Optional[MergedRuleSet]:
        """Return the cached ruleset for *key*, or ``None`` on miss/expiry."""
        rendered = key.render()
        entry = self._entries.get(rendered)
        if entry is None:
            return None
        if self._is_expired(entry):
            with self._write_lock:
                # Only drop it if no writer replaced it meanwhile
                if self._entries.get(rendered) is entry:
                    del self._entries[rendered]
            logger.debug("Ruleset cache entry expired: %s", rendered)
            return None
        return entry.value

    def set(
        self, key: CacheKey, value: MergedRuleSet, epoch: Optional[int] = None
    ) -> bool:
        """Store *value*; return ``False`` when *epoch* is stale and nothing was stored."""
        rendered = key.render()
        entry = _Entry(key, value, self._clock())
        with self._write_lock:
            if epoch is not None and epoch != self._epoch:
                logger.debug("Discarding ruleset %s loaded before an invalidation", rendered)
                return False
            # Re-inserting moves the key to the end of the insertion order
            self._entries.pop(rendered, None)
            if len(self._entries) >= self._max_entries:
                self._evict_locked()
            self._entries[rendered] = entry
        return True

    # ------------------------------------------------------------------
    # Invalidation
    # ------------------------------------------------------------------

    def invalidate(self, key: CacheKey) -> bool:
        """Drop the entry for *key*; return whether one existed."""
        with self._write_lock:
            self._epoch += 1
            return self._entries.pop(key.render(), None) is not None

    def invalidate_scope(self, scope: RulesetScope) -> int:
        """Drop every entry the given override scope can affect.

        A base scope clears the whole cache.  Vertical, market and client
        scopes drop entries whose matching component is equal, so a vertical
        mutation also clears every market/client entry under that vertical.
        Returns the number of dropped entries.
        """
        if scope.layer == ScopeLayer.base:
            return self.clear()

        def _matches(key: CacheKey) -> bool:
            if scope.layer == ScopeLayer.vertical:
                return key.vertical == scope.vertical
            if scope.layer == ScopeLayer.market:
                return key.market == scope.market
            if key.organization_id != scope.organization_id:
                return False
            return scope.app_id is None or key.app_id == scope.app_id

        with self._write_lock:
            self._epoch += 1
            doomed = [r for r, entry in self._entries.items() if _matches(entry.key)]
            for rendered in doomed:
                del self._entries[rendered]
        logger.info(
            "Invalidated %d ruleset cache entries for %s scope %s",
            len(doomed),
            scope.layer.value,
            scope.scope_key,
        )
        return len(doomed)

    def clear(self) -> int:
        with self._write_lock:
            count = len(self._entries)
            self._entries = {}
            self._epoch += 1
        return count

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def stats(self) -> CacheStats:
        return CacheStats(
            size=len(self._entries),
            max_size=self._max_entries,
            ttl_seconds=self._ttl,
        )

    @property
    def epoch(self) -> int:
        return self._epoch

    def keys(self) -> Tuple[str, ...]:
        with self._write_lock:
            return tuple(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    # ------------------------------------------------------------------
    # Cross-worker generation
    # ------------------------------------------------------------------

    def sync_generation(self, generation: Optional[int]) -> bool:
        """Clear the cache when the shared generation counter moved.

        The first generation seen is only recorded.  Returns ``True`` when
        the cache was cleared.
        """
        if generation is None:
            return False
        with self._write_lock:
            previous = self._generation
            self._generation = generation
            if previous is None or previous == generation:
                return False
            self._entries = {}
            self._epoch += 1
        logger.info(
            "Ruleset generation moved %s -> %s; cleared local cache",
            previous,
            generation,
        )
        return True

    def mark_generation(self, generation: Optional[int]) -> None:
        """Record a generation this worker produced itself."""
        if generation is not None:
            with self._write_lock:
                self._generation = generation

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _is_expired(self, entry: _Entry) -> bool:
        return self._clock() - entry.inserted_at >= self._ttl

    def _evict_locked(self) -> None:
        expired = [r for r, entry in self._entries.items() if self._is_expired(entry)]
        for rendered in expired:
            del self._entries[rendered]
        while len(self._entries) >= self._max_entries:
            oldest = next(iter(self._entries))
            del self._entries[oldest]
            logger.debug("Evicted ruleset cache entry %s", oldest)
