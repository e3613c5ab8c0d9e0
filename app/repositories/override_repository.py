import logging
from typing import Any, List, Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from app.core.exceptions import OverrideStoreUnavailableError
from app.models.override import AsoRulesetOverride
from app.repositories.base import BaseRepository
from app.schemas.common import ScopeLayer
from app.schemas.override import RawOverrideRecord, RulesetScope

logger = logging.getLogger(__name__)


def _scope_filters(scope: RulesetScope, exact: bool = False) -> list:
    """Build WHERE clauses selecting the rows of one scope.

    A client scope with an app id also matches organization-wide rows
    (``app_id IS NULL``) unless *exact* is set.
    """
    model = AsoRulesetOverride
    filters = [model.scope_layer == scope.layer.value]
    if scope.layer == ScopeLayer.vertical:
        filters.append(model.vertical == scope.vertical)
    elif scope.layer == ScopeLayer.market:
        filters.append(model.market == scope.market)
    elif scope.layer == ScopeLayer.client:
        filters.append(model.organization_id == scope.organization_id)
        if scope.app_id is None:
            filters.append(model.app_id.is_(None))
        elif exact:
            filters.append(model.app_id == scope.app_id)
        else:
            filters.append(
                (model.app_id.is_(None)) | (model.app_id == scope.app_id)
            )
    return filters


def to_raw_record(row: AsoRulesetOverride) -> RawOverrideRecord:
    scope = RulesetScope(
        layer=ScopeLayer(row.scope_layer),
        vertical=row.vertical,
        market=row.market,
        organization_id=row.organization_id,
        app_id=row.app_id,
    )
    return RawOverrideRecord(
        override_id=str(row.override_id),
        kind=row.kind,
        scope_layer=scope.layer,
        scope_key=scope.scope_key,
        payload=row.payload,
        version=row.version,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class OverrideRepository(BaseRepository):
    """Encapsulates queries against the ``aso_ruleset_overrides`` table."""

    async def load_override_records(
        self, scope: RulesetScope, kind: Optional[str] = None
    ) -> List[RawOverrideRecord]:
        """Return the active raw records of one scope, oldest change first.

        A scope with no rows yields ``[]``.  Any database failure is raised
        as ``OverrideStoreUnavailableError`` so the loader can fall back
        without caching the result.  Read-only and idempotent.
        """
        model = AsoRulesetOverride
        stmt = select(model).where(model.is_active.is_(True), *_scope_filters(scope))
        if kind is not None:
            stmt = stmt.where(model.kind == kind)
        # Organization-wide rows first so app-specific rows win on merge
        stmt = stmt.order_by(
            model.app_id.is_not(None),
            model.updated_at,
            model.created_at,
        )
        try:
            result = await self._db.execute(stmt)
            rows = list(result.scalars().all())
        except SQLAlchemyError as exc:
            logger.warning(
                "Failed to load %s overrides for %s scope %s: %s",
                kind or "all",
                scope.layer.value,
                scope.scope_key,
                exc,
            )
            raise OverrideStoreUnavailableError(
                f"Could not read {scope.layer.value} overrides"
            ) from exc
        return [to_raw_record(row) for row in rows]

    async def list_overrides(
        self,
        layer: Optional[ScopeLayer] = None,
        kind: Optional[str] = None,
        scope: Optional[RulesetScope] = None,
        include_inactive: bool = False,
    ) -> List[AsoRulesetOverride]:
        """Return override rows for the admin listing, newest first."""
        model = AsoRulesetOverride
        stmt = select(model)
        if scope is not None:
            stmt = stmt.where(*_scope_filters(scope, exact=True))
        elif layer is not None:
            stmt = stmt.where(model.scope_layer == layer.value)
        if kind is not None:
            stmt = stmt.where(model.kind == kind)
        if not include_inactive:
            stmt = stmt.where(model.is_active.is_(True))
        result = await self._db.execute(stmt.order_by(model.updated_at.desc()))
        return list(result.scalars().all())

    async def get_by_id(self, override_id: UUID) -> Optional[AsoRulesetOverride]:
        """Return a single override by primary key, or ``None``."""
        result = await self._db.execute(
            select(AsoRulesetOverride).where(
                AsoRulesetOverride.override_id == override_id
            )
        )
        return result.scalar_one_or_none()

    async def next_version(self, scope: RulesetScope) -> int:
        """Return the version a new record in *scope* should carry."""
        result = await self._db.execute(
            select(func.max(AsoRulesetOverride.version)).where(
                *_scope_filters(scope, exact=True)
            )
        )
        current = result.scalar()
        return (current or 0) + 1

    async def create(self, **kwargs: Any) -> AsoRulesetOverride:
        """Insert a new override and return the model instance."""
        override = AsoRulesetOverride(**kwargs)
        self._db.add(override)
        return override

    async def deactivate(self, override: AsoRulesetOverride) -> None:
        """Soft-delete an override; inactive rows are never loaded."""
        override.is_active = False
