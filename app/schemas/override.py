from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from app.core.exceptions import InvalidOverrideScopeError
from app.schemas.common import OverrideKind, ScopeLayer, SuccessResponse

# Separator between organization and app inside a client scope key
CLIENT_KEY_SEPARATOR = ":"


class RulesetScope(BaseModel):
    """The layer an override belongs to plus the keys that select it.

    ``base`` carries no keys, ``vertical`` and ``market`` carry exactly
    their own id, and ``client`` carries an organization id with an
    optional app id.
    """

    model_config = ConfigDict(frozen=True)

    layer: ScopeLayer
    vertical: Optional[str] = Field(None, max_length=50)
    market: Optional[str] = Field(None, max_length=10)
    organization_id: Optional[str] = Field(None, max_length=64)
    app_id: Optional[str] = Field(None, max_length=64)

    @field_validator("vertical", "market", mode="before")
    @classmethod
    def normalize_ids(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip().lower()
            return value or None
        return value

    @model_validator(mode="after")
    def check_layer_keys(self) -> "RulesetScope":
        keys = {
            "vertical": self.vertical,
            "market": self.market,
            "organization_id": self.organization_id,
            "app_id": self.app_id,
        }
        allowed = {
            ScopeLayer.base: set(),
            ScopeLayer.vertical: {"vertical"},
            ScopeLayer.market: {"market"},
            ScopeLayer.client: {"organization_id", "app_id"},
        }[self.layer]
        present = {name for name, value in keys.items() if value}
        unexpected = present - allowed
        if unexpected:
            raise ValueError(
                f"{self.layer.value} scope does not accept {', '.join(sorted(unexpected))}"
            )
        if self.layer == ScopeLayer.vertical and not self.vertical:
            raise ValueError("vertical scope requires a vertical id")
        if self.layer == ScopeLayer.market and not self.market:
            raise ValueError("market scope requires a market id")
        if self.layer == ScopeLayer.client and not self.organization_id:
            raise ValueError("client scope requires an organization id")
        return self

    @property
    def scope_key(self) -> Optional[str]:
        """Return the single-string key used in raw override records."""
        if self.layer == ScopeLayer.vertical:
            return self.vertical
        if self.layer == ScopeLayer.market:
            return self.market
        if self.layer == ScopeLayer.client:
            if self.app_id:
                return f"{self.organization_id}{CLIENT_KEY_SEPARATOR}{self.app_id}"
            return self.organization_id
        return None

    @classmethod
    def from_scope_key(
        cls, layer: ScopeLayer, scope_key: Optional[str] = None
    ) -> "RulesetScope":
        """Build a scope from a layer and its string key.

        Raises ``InvalidOverrideScopeError`` when the key does not fit
        the layer.
        """
        try:
            if layer == ScopeLayer.base:
                if scope_key:
                    raise ValueError("base scope does not accept a scope key")
                return cls(layer=layer)
            if not scope_key:
                raise ValueError(f"{layer.value} scope requires a scope key")
            if layer == ScopeLayer.vertical:
                return cls(layer=layer, vertical=scope_key)
            if layer == ScopeLayer.market:
                return cls(layer=layer, market=scope_key)
            org, _, app = scope_key.partition(CLIENT_KEY_SEPARATOR)
            return cls(layer=layer, organization_id=org, app_id=app or None)
        except ValueError as exc:
            raise InvalidOverrideScopeError(str(exc)) from exc


class RawOverrideRecord(BaseModel):
    """Unvalidated override record as read from the store.

    ``kind`` stays a plain string so records of kinds this build does not
    know yet can be loaded and then ignored by the normalizer.
    """

    model_config = ConfigDict(frozen=True)

    override_id: Optional[str] = None
    kind: str
    scope_layer: ScopeLayer
    scope_key: Optional[str] = None
    payload: Any = None
    version: int = 1
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class OverrideCreate(BaseModel):
    kind: OverrideKind
    scope: RulesetScope
    payload: Dict[str, Any]
    notes: Optional[str] = Field(None, max_length=2000)


class OverrideOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    override_id: str
    kind: str
    scope_layer: ScopeLayer
    vertical: Optional[str] = None
    market: Optional[str] = None
    organization_id: Optional[str] = None
    app_id: Optional[str] = None
    payload: Dict[str, Any]
    notes: Optional[str] = None
    version: int
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("override_id", mode="before")
    @classmethod
    def stringify_id(cls, value: Any) -> Any:
        return str(value) if value is not None else value


class InvalidationResult(SuccessResponse):
    layer: ScopeLayer
    scope_key: Optional[str] = None
    invalidated: int
