import asyncio
import logging
from typing import Dict, List, Optional, Tuple

from app.core.cache import CacheService
from app.core.constants import BASE_VERTICAL, DEFAULT_LOCALE
from app.core.exceptions import OverrideStoreUnavailableError
from app.core.ruleset_cache import RulesetCache, build_cache_key
from app.repositories.override_repository import OverrideRepository
from app.schemas.common import OverrideKind, RulesetOrigin, ScopeLayer
from app.schemas.override import RawOverrideRecord, RulesetScope
from app.schemas.ruleset import AppMetadata, CacheStats, MergedRuleSet, NormalizedRuleSet
from app.services.detection import detect_market, detect_vertical
from app.services.leak_detection import with_leak_warnings
from app.services.override_normalizer import empty_ruleset, normalize
from app.services.ruleset_merger import code_base_ruleset, merge
from app.services.ruleset_versioning import build_version_info

logger = logging.getLogger(__name__)


class RulesetLoader:
    """Resolve the effective ruleset for one scoring request.

    Pipeline on a cache miss: load each layer's raw records from the
    override store → normalize per layer → merge base → vertical →
    market → client → stamp versions → cache.  Leak warnings and the
    vertical confidence are added per request on a copy and never stored.

    When stored overrides are disabled, or the store fails or exceeds
    ``load_timeout`` seconds, the code-defined base ruleset is returned
    and nothing is cached, so the next request retries the store.
    A load that overlaps an invalidation is returned but not cached.
    """

    def __init__(
        self,
        override_repo: Optional[OverrideRepository],
        cache: RulesetCache,
        cache_service: Optional[CacheService] = None,
        overrides_enabled: bool = True,
        load_timeout: float = 2.0,
    ) -> None:
        self._repo = override_repo
        self._cache = cache
        self._cache_service = cache_service
        self._overrides_enabled = overrides_enabled
        self._load_timeout = load_timeout

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def get_active_ruleset(
        self,
        app_metadata: AppMetadata,
        locale: Optional[str] = DEFAULT_LOCALE,
        organization_id: Optional[str] = None,
    ) -> MergedRuleSet:
        """Return the merged ruleset that applies to *app_metadata*.

        The vertical comes from the app's category and text, the market
        from *locale*.  Never fails because of stored data or the store.
        """
        if not isinstance(app_metadata, AppMetadata):
            raise TypeError("app_metadata must be an AppMetadata instance")

        detection = detect_vertical(app_metadata)
        market = detect_market(locale)
        ruleset = await self._resolve(
            vertical=detection.vertical_id,
            market=market,
            organization_id=organization_id,
            app_id=app_metadata.app_id if organization_id else None,
        )
        ruleset = ruleset.model_copy(
            update={"vertical_confidence": detection.confidence}
        )
        return with_leak_warnings(ruleset, app_metadata)

    async def get_ruleset_for_scope(
        self,
        vertical: Optional[str] = None,
        market: Optional[str] = None,
        organization_id: Optional[str] = None,
        app_id: Optional[str] = None,
    ) -> MergedRuleSet:
        """Resolve an explicit scope without any detection (admin preview)."""
        return await self._resolve(
            vertical=vertical.strip().lower() if vertical else None,
            market=market.strip().lower() if market else None,
            organization_id=organization_id or None,
            app_id=app_id if organization_id else None,
        )

    async def invalidate(self, scope: RulesetScope) -> int:
        """Drop cached rulesets affected by *scope* on every worker.

        Returns the number of entries dropped locally.
        """
        dropped = self._cache.invalidate_scope(scope)
        if self._cache_service is not None:
            generation = await self._cache_service.bump_ruleset_generation()
            self._cache.mark_generation(generation)
        return dropped

    def get_cache_stats(self) -> CacheStats:
        return self._cache.stats()

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    async def _resolve(
        self,
        vertical: Optional[str],
        market: Optional[str],
        organization_id: Optional[str],
        app_id: Optional[str],
    ) -> MergedRuleSet:
        identifiers = {
            "vertical_id": vertical,
            "market_id": market,
            "organization_id": organization_id,
            "app_id": app_id,
        }
        if not self._overrides_enabled or self._repo is None:
            logger.debug("Stored ruleset overrides disabled; using code base ruleset")
            return code_base_ruleset(**identifiers)

        await self._sync_generation()

        # Invalidations after this point make the loaded result uncacheable
        epoch = self._cache.epoch
        key = build_cache_key(vertical, market, organization_id, app_id)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        try:
            ruleset = await asyncio.wait_for(
                self._load(vertical, market, organization_id, app_id),
                timeout=self._load_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Loading ruleset %s timed out after %.1fs; using code base ruleset",
                key.render(),
                self._load_timeout,
            )
            return code_base_ruleset(**identifiers)
        except OverrideStoreUnavailableError as exc:
            logger.warning(
                "Override store unavailable for %s (%s); using code base ruleset",
                key.render(),
                exc.detail,
            )
            return code_base_ruleset(**identifiers)
        except Exception:
            logger.error(
                "Failed to load ruleset %s; using code base ruleset",
                key.render(),
                exc_info=True,
            )
            return code_base_ruleset(**identifiers)

        if not self._cache.set(key, ruleset, epoch=epoch):
            logger.info("Ruleset %s was invalidated while loading; not cached", key.render())
        logger.info(
            "Resolved ruleset %s (source=%s, layers=%s)",
            key.render(),
            ruleset.source.value,
            [layer.value for layer in ruleset.contributing_layers],
        )
        return ruleset

    async def _sync_generation(self) -> None:
        if self._cache_service is None:
            return
        generation = await self._cache_service.get_ruleset_generation()
        self._cache.sync_generation(generation)

    async def _load(
        self,
        vertical: Optional[str],
        market: Optional[str],
        organization_id: Optional[str],
        app_id: Optional[str],
    ) -> MergedRuleSet:
        layers: Dict[ScopeLayer, NormalizedRuleSet] = {}
        for scope in self._scopes(vertical, market, organization_id, app_id):
            records = await self._load_layer_records(scope)
            layers[scope.layer] = normalize(
                records, scope.layer, RulesetOrigin.database, scope.scope_key
            )

        base = layers.get(ScopeLayer.base)
        if base is None or base.is_empty:
            base = empty_ruleset(ScopeLayer.base, RulesetOrigin.code)

        versions = build_version_info(
            {layer: normalized.version for layer, normalized in layers.items()}
        )
        return merge(
            base=base,
            vertical=layers.get(ScopeLayer.vertical),
            market=layers.get(ScopeLayer.market),
            client=layers.get(ScopeLayer.client),
            versions=versions,
            vertical_id=vertical,
            market_id=market,
            organization_id=organization_id,
            app_id=app_id,
            code_defaults=True,
        )

    async def _load_layer_records(self, scope: RulesetScope) -> List[RawOverrideRecord]:
        # One session per request, so kinds are read one after another
        records: List[RawOverrideRecord] = []
        for kind in OverrideKind:
            records.extend(await self._repo.load_override_records(scope, kind.value))
        return records

    @staticmethod
    def _scopes(
        vertical: Optional[str],
        market: Optional[str],
        organization_id: Optional[str],
        app_id: Optional[str],
    ) -> Tuple[RulesetScope, ...]:
        scopes = [RulesetScope(layer=ScopeLayer.base)]
        if vertical and vertical != BASE_VERTICAL:
            scopes.append(RulesetScope(layer=ScopeLayer.vertical, vertical=vertical))
        if market:
            scopes.append(RulesetScope(layer=ScopeLayer.market, market=market))
        if organization_id:
            scopes.append(
                RulesetScope(
                    layer=ScopeLayer.client,
                    organization_id=organization_id,
                    app_id=app_id,
                )
            )
        return tuple(scopes)
