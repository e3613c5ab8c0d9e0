from typing import Annotated, Any, Dict, FrozenSet, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_serializer

from app.schemas.common import (
    DiagnosticSeverity,
    LeakSeverity,
    LeakType,
    RulesetOrigin,
    RulesetSourceTag,
    ScopeLayer,
)

Relevance = Annotated[int, Field(ge=0, le=3)]
Multiplier = Annotated[float, Field(ge=0.5, le=2.0)]


class HookPattern(BaseModel):
    model_config = ConfigDict(frozen=True)

    keywords: Tuple[str, ...] = Field(..., min_length=1)
    weight: Multiplier = 1.0


class FormulaOverride(BaseModel):
    """Formula output multiplier plus per-component weight multipliers.

    ``multiplier`` is ``None`` when the layer did not set one, so a
    component-only override never resets a multiplier from a lower layer.
    """

    model_config = ConfigDict(frozen=True)

    multiplier: Optional[Multiplier] = None
    component_weights: Dict[str, Multiplier] = Field(default_factory=dict)


class NormalizationDiagnostic(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: str
    key: Optional[str] = None
    reason: str
    severity: DiagnosticSeverity = DiagnosticSeverity.warning


class NormalizedRuleSet(BaseModel):
    """Validated overrides of every kind for one layer only."""

    model_config = ConfigDict(frozen=True)

    layer: ScopeLayer
    origin: RulesetOrigin = RulesetOrigin.database
    scope_key: Optional[str] = None
    version: Optional[int] = None

    token_relevance: Dict[str, Relevance] = Field(default_factory=dict)
    hook_patterns: Dict[str, HookPattern] = Field(default_factory=dict)
    stopwords: FrozenSet[str] = Field(default_factory=frozenset)
    kpi_weights: Dict[str, Multiplier] = Field(default_factory=dict)
    formula_overrides: Dict[str, FormulaOverride] = Field(default_factory=dict)
    recommendation_templates: Dict[str, str] = Field(default_factory=dict)

    diagnostics: Tuple[NormalizationDiagnostic, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not (
            self.token_relevance
            or self.hook_patterns
            or self.stopwords
            or self.kpi_weights
            or self.formula_overrides
            or self.recommendation_templates
        )

    @field_serializer("stopwords")
    def serialize_stopwords(self, stopwords: FrozenSet[str]) -> List[str]:
        return sorted(stopwords)


class VersionBlock(BaseModel):
    model_config = ConfigDict(frozen=True)

    base_version: int
    vertical_version: int
    market_version: int
    client_version: int
    kpi_schema_version: str
    formula_schema_version: str


class LeakWarning(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: LeakType
    severity: LeakSeverity
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class MergedRuleSet(BaseModel):
    """Effective ruleset for one (vertical, market, organization, app) context."""

    model_config = ConfigDict(frozen=True)

    vertical_id: Optional[str] = None
    market_id: Optional[str] = None
    organization_id: Optional[str] = None
    app_id: Optional[str] = None

    token_relevance: Dict[str, Relevance] = Field(default_factory=dict)
    hook_patterns: Dict[str, HookPattern] = Field(default_factory=dict)
    stopwords: FrozenSet[str] = Field(default_factory=frozenset)
    kpi_weights: Dict[str, Multiplier] = Field(default_factory=dict)
    formula_overrides: Dict[str, FormulaOverride] = Field(default_factory=dict)
    recommendation_templates: Dict[str, str] = Field(default_factory=dict)

    source: RulesetSourceTag = RulesetSourceTag.code
    contributing_layers: Tuple[ScopeLayer, ...] = ()
    leak_warnings: Tuple[LeakWarning, ...] = ()
    versions: VersionBlock
    vertical_confidence: Optional[float] = None

    @property
    def has_active_overrides(self) -> bool:
        return bool(
            self.token_relevance
            or self.hook_patterns
            or self.stopwords
            or self.kpi_weights
            or self.formula_overrides
            or self.recommendation_templates
        )

    @field_serializer("stopwords")
    def serialize_stopwords(self, stopwords: FrozenSet[str]) -> List[str]:
        return sorted(stopwords)


class CacheStats(BaseModel):
    size: int
    max_size: int
    ttl_seconds: float


class AppMetadata(BaseModel):
    app_id: Optional[str] = Field(None, max_length=64)
    category: Optional[str] = Field(None, max_length=100)
    title: Optional[str] = Field(None, max_length=200)
    subtitle: Optional[str] = Field(None, max_length=200)
    description: Optional[str] = Field(None, max_length=10000)


class ResolveRequest(BaseModel):
    app_metadata: AppMetadata
    locale: str = Field("en-US", max_length=20)
    organization_id: Optional[str] = Field(None, max_length=64)


class VerticalDetection(BaseModel):
    model_config = ConfigDict(frozen=True)

    vertical_id: str
    confidence: float = Field(..., ge=0.0, le=1.0)
    matched_signals: Tuple[str, ...] = ()


class LeakSummary(BaseModel):
    total_warnings: int
    by_severity: Dict[str, int]
    by_type: Dict[str, int]
