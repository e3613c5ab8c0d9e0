"""Pydantic schemas package – re-exports for convenience."""

# Common enums
from app.schemas.common import (
    ScopeLayer as ScopeLayer,
    OverrideKind as OverrideKind,
    RulesetSourceTag as RulesetSourceTag,
    RulesetOrigin as RulesetOrigin,
    DiagnosticSeverity as DiagnosticSeverity,
    LeakSeverity as LeakSeverity,
    LeakType as LeakType,
    MetadataElement as MetadataElement,
    SuccessResponse as SuccessResponse,
)

# Ruleset schemas
from app.schemas.ruleset import (
    HookPattern as HookPattern,
    FormulaOverride as FormulaOverride,
    NormalizationDiagnostic as NormalizationDiagnostic,
    NormalizedRuleSet as NormalizedRuleSet,
    VersionBlock as VersionBlock,
    LeakWarning as LeakWarning,
    LeakSummary as LeakSummary,
    MergedRuleSet as MergedRuleSet,
    CacheStats as CacheStats,
    AppMetadata as AppMetadata,
    ResolveRequest as ResolveRequest,
    VerticalDetection as VerticalDetection,
)

# Override schemas
from app.schemas.override import (
    RulesetScope as RulesetScope,
    RawOverrideRecord as RawOverrideRecord,
    OverrideCreate as OverrideCreate,
    OverrideOut as OverrideOut,
    InvalidationResult as InvalidationResult,
)

# Audit schemas
from app.schemas.audit import (
    KpiResult as KpiResult,
    ElementScore as ElementScore,
    Recommendation as Recommendation,
    MetadataAuditResult as MetadataAuditResult,
)
