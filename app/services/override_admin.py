import logging
from typing import List, Optional
from uuid import UUID

from app.core.exceptions import (
    InvalidOverridePayloadError,
    InvalidOverrideScopeError,
    OverrideNotFoundError,
)
from app.repositories.override_repository import OverrideRepository
from app.schemas.common import OverrideKind, ScopeLayer
from app.schemas.override import (
    OverrideCreate,
    OverrideOut,
    RawOverrideRecord,
    RulesetScope,
)
from app.services.override_normalizer import normalize
from app.services.ruleset_loader import RulesetLoader

logger = logging.getLogger(__name__)


class OverrideAdminService:
    """Create, list and deactivate stored overrides.

    Every mutation commits and then invalidates the cached rulesets of
    the affected scope, on this worker directly and on the others through
    the shared generation counter.
    """

    def __init__(self, override_repo: OverrideRepository, loader: RulesetLoader) -> None:
        self._repo = override_repo
        self._loader = loader

    async def list_overrides(
        self,
        layer: Optional[ScopeLayer] = None,
        scope_key: Optional[str] = None,
        kind: Optional[OverrideKind] = None,
        include_inactive: bool = False,
    ) -> List[OverrideOut]:
        scope = None
        if scope_key is not None:
            if layer is None:
                raise InvalidOverrideScopeError("scope_key requires a layer")
            scope = RulesetScope.from_scope_key(layer, scope_key)
        rows = await self._repo.list_overrides(
            layer=layer,
            kind=kind.value if kind else None,
            scope=scope,
            include_inactive=include_inactive,
        )
        return [OverrideOut.model_validate(row) for row in rows]

    async def create_override(self, body: OverrideCreate) -> OverrideOut:
        """Store a new override after checking the normalizer would keep it."""
        self._check_payload(body)

        scope = body.scope
        version = await self._repo.next_version(scope)
        override = await self._repo.create(
            kind=body.kind.value,
            scope_layer=scope.layer.value,
            vertical=scope.vertical,
            market=scope.market,
            organization_id=scope.organization_id,
            app_id=scope.app_id,
            payload=body.payload,
            notes=body.notes,
            version=version,
        )
        await self._repo.commit()
        await self._repo.refresh(override)
        logger.info(
            "Created %s override %s for %s scope %s (version %d)",
            body.kind.value,
            override.override_id,
            scope.layer.value,
            scope.scope_key,
            version,
        )

        await self._loader.invalidate(scope)
        return OverrideOut.model_validate(override)

    async def deactivate_override(self, override_id: UUID) -> OverrideOut:
        override = await self._repo.get_by_id(override_id)
        if override is None or not override.is_active:
            raise OverrideNotFoundError(f"Override {override_id} not found")

        await self._repo.deactivate(override)
        await self._repo.commit()
        await self._repo.refresh(override)
        logger.info("Deactivated override %s", override_id)

        scope = RulesetScope(
            layer=ScopeLayer(override.scope_layer),
            vertical=override.vertical,
            market=override.market,
            organization_id=override.organization_id,
            app_id=override.app_id,
        )
        await self._loader.invalidate(scope)
        return OverrideOut.model_validate(override)

    async def invalidate(self, scope: RulesetScope) -> int:
        return await self._loader.invalidate(scope)

    @staticmethod
    def _check_payload(body: OverrideCreate) -> None:
        record = RawOverrideRecord(
            kind=body.kind.value,
            scope_layer=body.scope.layer,
            scope_key=body.scope.scope_key,
            payload=body.payload,
        )
        normalized = normalize([record], body.scope.layer)
        if normalized.is_empty:
            reasons = "; ".join(d.reason for d in normalized.diagnostics)
            raise InvalidOverridePayloadError(
                f"{body.kind.value} payload rejected: {reasons or 'nothing to apply'}"
            )
