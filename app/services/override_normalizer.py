import logging
import math
from collections.abc import Iterable, Mapping
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Set, Tuple, Union

from pydantic import ValidationError

from app.core.constants import (
    DEFAULT_WEIGHT_MULTIPLIER,
    KNOWN_FORMULA_IDS,
    KNOWN_KPI_IDS,
    MAX_RELEVANCE,
    MAX_WEIGHT_MULTIPLIER,
    MIN_RELEVANCE,
    MIN_WEIGHT_MULTIPLIER,
)
from app.schemas.common import (
    DiagnosticSeverity,
    OverrideKind,
    RulesetOrigin,
    ScopeLayer,
)
from app.schemas.override import RawOverrideRecord
from app.schemas.ruleset import (
    FormulaOverride,
    HookPattern,
    NormalizationDiagnostic,
    NormalizedRuleSet,
)

logger = logging.getLogger(__name__)


class _MalformedRecord(Exception):
    """Internal signal: skip the current record with *reason*."""

    def __init__(self, reason: str, key: Optional[str] = None):
        self.reason = reason
        self.key = key
        super().__init__(reason)


class _LayerBuilder:
    """Mutable accumulator for one layer; frozen into a ``NormalizedRuleSet``."""

    def __init__(self) -> None:
        self.token_relevance: Dict[str, int] = {}
        self.hook_patterns: Dict[str, HookPattern] = {}
        self.stopwords: Set[str] = set()
        self.kpi_weights: Dict[str, float] = {}
        self.formula_overrides: Dict[str, FormulaOverride] = {}
        self.recommendation_templates: Dict[str, str] = {}
        self.diagnostics: List[NormalizationDiagnostic] = []
        self.max_version: Optional[int] = None

    def diagnose(
        self,
        kind: str,
        key: Optional[str],
        reason: str,
        severity: DiagnosticSeverity = DiagnosticSeverity.warning,
    ) -> None:
        self.diagnostics.append(
            NormalizationDiagnostic(kind=kind, key=key, reason=reason, severity=severity)
        )
        if severity == DiagnosticSeverity.warning:
            logger.warning("Override %s [%s]: %s", kind, key, reason)
        else:
            logger.info("Override %s [%s]: %s", kind, key, reason)


# ---------------------------------------------------------------------------
# Value helpers
# ---------------------------------------------------------------------------


def _as_number(value: Any) -> Optional[float]:
    """Return *value* as a finite float, or ``None`` if it is not numeric."""
    if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
        return None
    number = float(value)
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def _clean_text(value: Any) -> Optional[str]:
    """Lowercase and trim a string; ``None`` for non-strings and blanks."""
    if not isinstance(value, str):
        return None
    cleaned = value.strip().lower()
    return cleaned or None


def _dedupe(values: Iterable[str]) -> Tuple[str, ...]:
    return tuple(dict.fromkeys(values))


def clamp_multiplier(value: float) -> float:
    return max(MIN_WEIGHT_MULTIPLIER, min(MAX_WEIGHT_MULTIPLIER, value))


def _clamped_multiplier(
    builder: _LayerBuilder, kind: str, key: str, raw: float, label: str
) -> float:
    clamped = clamp_multiplier(raw)
    if clamped != raw:
        builder.diagnose(kind, key, f"{label} {raw} clamped to {clamped}")
    return clamped


# ---------------------------------------------------------------------------
# Per-kind normalizers
# ---------------------------------------------------------------------------


def _normalize_token_relevance(payload: Dict[str, Any], builder: _LayerBuilder) -> None:
    kind = OverrideKind.token_relevance.value
    token = _clean_text(payload.get("token"))
    if token is None:
        raise _MalformedRecord("missing or empty token")

    raw = _as_number(payload.get("relevance"))
    if raw is None:
        raise _MalformedRecord("relevance must be a number", key=token)

    rounded = math.floor(raw + 0.5)
    if rounded != raw:
        builder.diagnose(kind, token, f"relevance {raw} rounded to {rounded}")
    relevance = max(MIN_RELEVANCE, min(MAX_RELEVANCE, rounded))
    if relevance != rounded:
        builder.diagnose(kind, token, f"relevance {rounded} clamped to {relevance}")

    builder.token_relevance[token] = relevance


def _normalize_hook_pattern(payload: Dict[str, Any], builder: _LayerBuilder) -> None:
    kind = OverrideKind.hook_pattern.value
    category = _clean_text(payload.get("category"))
    if category is None:
        raise _MalformedRecord("missing or empty category")

    raw_keywords = payload.get("keywords")
    if not isinstance(raw_keywords, (list, tuple)):
        raise _MalformedRecord("keywords must be a list", key=category)
    keywords = _dedupe(k for k in map(_clean_text, raw_keywords) if k)
    if not keywords:
        raise _MalformedRecord("no non-empty keywords", key=category)

    raw_weight = payload.get("weight", DEFAULT_WEIGHT_MULTIPLIER)
    weight = _as_number(raw_weight)
    if weight is None:
        raise _MalformedRecord("weight must be a number", key=category)

    builder.hook_patterns[category] = HookPattern(
        keywords=keywords,
        weight=_clamped_multiplier(builder, kind, category, weight, "weight"),
    )


def _normalize_stopwords(payload: Dict[str, Any], builder: _LayerBuilder) -> None:
    raw = payload.get("stopwords")
    if not isinstance(raw, (list, tuple)):
        raise _MalformedRecord("stopwords must be a list")
    builder.stopwords.update(word for word in map(_clean_text, raw) if word)


def _normalize_kpi_weight(payload: Dict[str, Any], builder: _LayerBuilder) -> None:
    kind = OverrideKind.kpi_weight.value
    kpi_id = payload.get("kpi_id")
    if not isinstance(kpi_id, str) or not kpi_id.strip():
        raise _MalformedRecord("missing or empty kpi_id")
    kpi_id = kpi_id.strip()

    raw = _as_number(payload.get("weight_multiplier"))
    if raw is None:
        raise _MalformedRecord("weight_multiplier must be a number", key=kpi_id)

    if kpi_id not in KNOWN_KPI_IDS:
        builder.diagnose(
            kind, kpi_id, "unknown KPI id kept", severity=DiagnosticSeverity.info
        )
    builder.kpi_weights[kpi_id] = _clamped_multiplier(
        builder, kind, kpi_id, raw, "weight_multiplier"
    )


def _normalize_formula(payload: Dict[str, Any], builder: _LayerBuilder) -> None:
    kind = OverrideKind.formula.value
    formula_id = payload.get("formula_id")
    if not isinstance(formula_id, str) or not formula_id.strip():
        raise _MalformedRecord("missing or empty formula_id")
    formula_id = formula_id.strip()

    multiplier: Optional[float] = None
    if payload.get("multiplier") is not None:
        raw = _as_number(payload["multiplier"])
        if raw is None:
            raise _MalformedRecord("multiplier must be a number", key=formula_id)
        multiplier = _clamped_multiplier(builder, kind, formula_id, raw, "multiplier")

    components: Dict[str, float] = {}
    raw_components = payload.get("component_weights")
    if raw_components is not None:
        if not isinstance(raw_components, Mapping):
            raise _MalformedRecord("component_weights must be an object", key=formula_id)
        for component_id, raw_weight in raw_components.items():
            weight = _as_number(raw_weight)
            if not isinstance(component_id, str) or weight is None:
                builder.diagnose(
                    kind, f"{formula_id}.{component_id}", "component weight dropped"
                )
                continue
            components[component_id] = _clamped_multiplier(
                builder, kind, f"{formula_id}.{component_id}", weight, "component weight"
            )

    if multiplier is None and not components:
        raise _MalformedRecord("neither multiplier nor component weights", key=formula_id)

    if formula_id not in KNOWN_FORMULA_IDS:
        builder.diagnose(
            kind, formula_id, "unknown formula id kept", severity=DiagnosticSeverity.info
        )
    builder.formula_overrides[formula_id] = FormulaOverride(
        multiplier=multiplier, component_weights=components
    )


def _normalize_recommendation(payload: Dict[str, Any], builder: _LayerBuilder) -> None:
    rec_id = payload.get("recommendation_id")
    if not isinstance(rec_id, str) or not rec_id.strip():
        raise _MalformedRecord("missing or empty recommendation_id")
    rec_id = rec_id.strip()

    message = payload.get("message")
    if not isinstance(message, str) or not message.strip():
        raise _MalformedRecord("missing or empty message", key=rec_id)

    builder.recommendation_templates[rec_id] = message.strip()


_KIND_NORMALIZERS: Dict[str, Callable[[Dict[str, Any], _LayerBuilder], None]] = {
    OverrideKind.token_relevance.value: _normalize_token_relevance,
    OverrideKind.hook_pattern.value: _normalize_hook_pattern,
    OverrideKind.stopword.value: _normalize_stopwords,
    OverrideKind.kpi_weight.value: _normalize_kpi_weight,
    OverrideKind.formula.value: _normalize_formula,
    OverrideKind.recommendation_template.value: _normalize_recommendation,
}


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def empty_ruleset(
    layer: ScopeLayer = ScopeLayer.base,
    origin: RulesetOrigin = RulesetOrigin.code,
) -> NormalizedRuleSet:
    """Return a layer that contributes nothing to a merge."""
    return NormalizedRuleSet(layer=layer, origin=origin)


def normalize(
    records: Iterable[Union[RawOverrideRecord, Mapping[str, Any]]],
    layer: ScopeLayer,
    origin: RulesetOrigin = RulesetOrigin.database,
    scope_key: Optional[str] = None,
) -> NormalizedRuleSet:
    """Convert raw override records of one layer into a ``NormalizedRuleSet``.

    Malformed records are skipped with a diagnostic; the batch is never
    aborted.  Records are applied in order, so for the same key a later
    record replaces an earlier one.  Records of unknown kinds are ignored.

    Raises ``TypeError`` only when *records* is not an iterable of
    records, which is a caller bug rather than bad data.
    """
    if isinstance(records, (str, bytes, Mapping)) or not isinstance(records, Iterable):
        raise TypeError("records must be an iterable of override records")

    builder = _LayerBuilder()

    for item in records:
        if isinstance(item, Mapping):
            try:
                item = RawOverrideRecord.model_validate(item)
            except ValidationError as exc:
                fields = sorted({".".join(str(p) for p in err["loc"]) for err in exc.errors()})
                record_id = item.get("override_id")
                builder.diagnose(
                    str(item.get("kind") or "unknown"),
                    str(record_id) if record_id is not None else None,
                    f"invalid record: {', '.join(fields) or 'unreadable'}",
                )
                continue
        elif not isinstance(item, RawOverrideRecord):
            raise TypeError(
                f"expected RawOverrideRecord, got {type(item).__name__}"
            )

        handler = _KIND_NORMALIZERS.get(item.kind)
        if handler is None:
            logger.debug("Ignoring override of unknown kind %r", item.kind)
            continue

        if not isinstance(item.payload, Mapping):
            builder.diagnose(item.kind, item.override_id, "payload must be an object")
            continue

        try:
            handler(dict(item.payload), builder)
        except _MalformedRecord as exc:
            builder.diagnose(item.kind, exc.key or item.override_id, exc.reason)
            continue

        if builder.max_version is None or item.version > builder.max_version:
            builder.max_version = item.version

    return NormalizedRuleSet(
        layer=layer,
        origin=origin,
        scope_key=scope_key,
        version=builder.max_version,
        token_relevance=builder.token_relevance,
        hook_patterns=builder.hook_patterns,
        stopwords=frozenset(builder.stopwords),
        kpi_weights=builder.kpi_weights,
        formula_overrides=builder.formula_overrides,
        recommendation_templates=builder.recommendation_templates,
        diagnostics=tuple(builder.diagnostics),
    )
