"""Scoring lookups that read a merged ruleset.

Every function takes the ruleset as an optional argument and falls back
to the global tables in ``app.core.default_patterns`` when it is absent
or silent, so scoring works the same with no overrides at all.  Nothing
here raises for business data; only a wrongly-typed argument does.
"""

import logging
import re
from collections.abc import Mapping
from typing import Any, Dict, FrozenSet, List, Optional

from app.core.constants import DEFAULT_WEIGHT_MULTIPLIER
from app.core.default_patterns import (
    BASE_STOPWORDS,
    CORE_INTENT_VERBS,
    DOMAIN_NOUNS,
    GLOBAL_HOOK_CATEGORIES,
    LANGUAGE_TOKENS,
    LOW_VALUE_TOKENS,
)
from app.schemas.ruleset import HookPattern, MergedRuleSet

logger = logging.getLogger(__name__)

_TOKEN_RE = re.compile(r"[\w'#+-]+")
_PLACEHOLDER_RE = re.compile(r"\{(\w+)\}")

_GLOBAL_HOOK_PATTERNS: Dict[str, HookPattern] = {
    name: HookPattern(keywords=tuple(entry["keywords"]), weight=entry["weight"])
    for name, entry in GLOBAL_HOOK_CATEGORIES.items()
}


def _check_ruleset(ruleset: Optional[MergedRuleSet]) -> None:
    if ruleset is not None and not isinstance(ruleset, MergedRuleSet):
        raise TypeError(
            f"ruleset must be a MergedRuleSet or None, got {type(ruleset).__name__}"
        )


def _check_str(value: Any, name: str) -> None:
    if not isinstance(value, str):
        raise TypeError(f"{name} must be a string, got {type(value).__name__}")


def tokenize(text: str) -> List[str]:
    """Split *text* into lowercase word tokens."""
    _check_str(text, "text")
    return _TOKEN_RE.findall(text.lower())


# ---------------------------------------------------------------------------
# Token relevance
# ---------------------------------------------------------------------------


def global_relevance(token: str) -> int:
    """Relevance of *token* from the global tables alone."""
    if not token or token in LOW_VALUE_TOKENS or token.isdigit():
        return 0
    if token in LANGUAGE_TOKENS or token in CORE_INTENT_VERBS:
        return 3
    if token in DOMAIN_NOUNS:
        return 2
    return 1


def relevance(token: str, ruleset: Optional[MergedRuleSet] = None) -> int:
    """Return the 0..3 relevance level of *token*.

    The ruleset's override map is consulted first (case-insensitive);
    on a miss the global tables decide.  Every string maps to exactly
    one level.
    """
    _check_str(token, "token")
    _check_ruleset(ruleset)
    normalized = token.strip().lower()
    if ruleset is not None:
        level = ruleset.token_relevance.get(normalized)
        if level is not None:
            return level
    return global_relevance(normalized)


# ---------------------------------------------------------------------------
# Hooks
# ---------------------------------------------------------------------------


def hook_categories(ruleset: Optional[MergedRuleSet] = None) -> Dict[str, HookPattern]:
    """Return the ruleset's hook categories, or the global ones if it has none."""
    _check_ruleset(ruleset)
    if ruleset is not None and ruleset.hook_patterns:
        return ruleset.hook_patterns
    return _GLOBAL_HOOK_PATTERNS


def matched_hook_categories(
    text: str, ruleset: Optional[MergedRuleSet] = None
) -> List[str]:
    """Return the hook categories with at least one keyword in *text*."""
    _check_str(text, "text")
    lowered = text.lower()
    return [
        name
        for name, pattern in hook_categories(ruleset).items()
        if any(keyword in lowered for keyword in pattern.keywords)
    ]


def hook_score(text: str, ruleset: Optional[MergedRuleSet] = None) -> float:
    """Weighted average of ``100 × weight`` over the matched hook categories.

    Returns 0 when nothing matches; the result is clamped to [0, 100].
    """
    categories = hook_categories(ruleset)
    matched = matched_hook_categories(text, ruleset)
    if not matched:
        return 0.0
    total = sum(100.0 * categories[name].weight for name in matched)
    return max(0.0, min(100.0, total / len(matched)))


# ---------------------------------------------------------------------------
# Weights
# ---------------------------------------------------------------------------


def _normalize(weights: Dict[str, float]) -> Dict[str, float]:
    if not weights:
        return {}
    total = sum(weights.values())
    if total <= 0:
        share = 1.0 / len(weights)
        return {key: share for key in weights}
    return {key: value / total for key, value in weights.items()}


def _check_weights(weights: Any, name: str) -> Dict[str, float]:
    if not isinstance(weights, Mapping):
        raise TypeError(f"{name} must be a mapping of id to weight")
    checked: Dict[str, float] = {}
    for key, value in weights.items():
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise TypeError(f"weight for {key!r} must be a number")
        if value < 0:
            raise ValueError(f"weight for {key!r} must not be negative")
        checked[key] = float(value)
    return checked


def normalize_family_weights(
    base_weights: Mapping[str, float], ruleset: Optional[MergedRuleSet] = None
) -> Dict[str, float]:
    """Apply KPI multipliers to one family's base weights and renormalize.

    The result always sums to 1.0.  An all-zero family is split evenly
    and an empty one yields ``{}``.
    """
    _check_ruleset(ruleset)
    weights = _check_weights(base_weights, "base_weights")
    multipliers = ruleset.kpi_weights if ruleset is not None else {}
    return _normalize(
        {
            kpi_id: weight * multipliers.get(kpi_id, DEFAULT_WEIGHT_MULTIPLIER)
            for kpi_id, weight in weights.items()
        }
    )


def formula_multiplier(formula_id: str, ruleset: Optional[MergedRuleSet] = None) -> float:
    """Multiplier applied to a formula's output (1.0 without an override)."""
    _check_str(formula_id, "formula_id")
    _check_ruleset(ruleset)
    if ruleset is None:
        return DEFAULT_WEIGHT_MULTIPLIER
    override = ruleset.formula_overrides.get(formula_id)
    if override is None or override.multiplier is None:
        return DEFAULT_WEIGHT_MULTIPLIER
    return override.multiplier


def component_weights(
    formula_id: str,
    base_components: Mapping[str, float],
    ruleset: Optional[MergedRuleSet] = None,
) -> Dict[str, float]:
    """Apply a formula's component multipliers and renormalize to 1.0."""
    _check_str(formula_id, "formula_id")
    _check_ruleset(ruleset)
    weights = _check_weights(base_components, "base_components")
    multipliers: Mapping[str, float] = {}
    if ruleset is not None and formula_id in ruleset.formula_overrides:
        multipliers = ruleset.formula_overrides[formula_id].component_weights
    return _normalize(
        {
            component: weight * multipliers.get(component, DEFAULT_WEIGHT_MULTIPLIER)
            for component, weight in weights.items()
        }
    )


# ---------------------------------------------------------------------------
# Stopwords and messages
# ---------------------------------------------------------------------------


def merged_stopwords(ruleset: Optional[MergedRuleSet] = None) -> FrozenSet[str]:
    """Base stopwords plus whatever the ruleset adds; never fewer."""
    _check_ruleset(ruleset)
    if ruleset is None or not ruleset.stopwords:
        return BASE_STOPWORDS
    return BASE_STOPWORDS | ruleset.stopwords


def message(
    rec_id: str,
    fallback_text: str,
    ruleset: Optional[MergedRuleSet] = None,
    context: Optional[Mapping[str, Any]] = None,
) -> str:
    """Return the recommendation text for *rec_id*.

    The ruleset template wins over *fallback_text*.  When *context* is
    given, ``{name}`` placeholders are filled from it; placeholders
    without a value are left as they are.
    """
    _check_str(rec_id, "rec_id")
    _check_str(fallback_text, "fallback_text")
    _check_ruleset(ruleset)
    text = fallback_text
    if ruleset is not None:
        text = ruleset.recommendation_templates.get(rec_id, fallback_text)
    if not context:
        return text

    def _fill(match: "re.Match[str]") -> str:
        key = match.group(1)
        return str(context[key]) if key in context else match.group(0)

    return _PLACEHOLDER_RE.sub(_fill, text)
