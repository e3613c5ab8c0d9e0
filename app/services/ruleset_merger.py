import logging
from typing import Dict, List, Optional, Set, Tuple

from app.core.constants import DEFAULT_WEIGHT_MULTIPLIER, LAYER_PRECEDENCE
from app.schemas.common import RulesetOrigin, RulesetSourceTag, ScopeLayer
from app.schemas.ruleset import (
    FormulaOverride,
    HookPattern,
    MergedRuleSet,
    NormalizedRuleSet,
    VersionBlock,
)
from app.services.override_normalizer import empty_ruleset
from app.services.ruleset_versioning import build_version_info

logger = logging.getLogger(__name__)


def _merge_formulas(
    merged: Dict[str, FormulaOverride], layer: Dict[str, FormulaOverride]
) -> None:
    """Deep-merge *layer* formula overrides into *merged* in place.

    Component weights are merged key by key.  The multiplier only replaces
    the lower layer's value when this layer set one explicitly.
    """
    for formula_id, override in layer.items():
        current = merged.get(formula_id)
        if current is None:
            merged[formula_id] = override
            continue
        components = dict(current.component_weights)
        components.update(override.component_weights)
        merged[formula_id] = FormulaOverride(
            multiplier=(
                override.multiplier
                if override.multiplier is not None
                else current.multiplier
            ),
            component_weights=components,
        )


def _source_tag(
    contributing: List[NormalizedRuleSet], code_defaults: bool = False
) -> RulesetSourceTag:
    origins = {layer.origin for layer in contributing}
    if code_defaults:
        origins.add(RulesetOrigin.code)
    if RulesetOrigin.database not in origins:
        return RulesetSourceTag.code
    if RulesetOrigin.code in origins:
        return RulesetSourceTag.hybrid
    return RulesetSourceTag.database


def merge(
    base: Optional[NormalizedRuleSet] = None,
    vertical: Optional[NormalizedRuleSet] = None,
    market: Optional[NormalizedRuleSet] = None,
    client: Optional[NormalizedRuleSet] = None,
    versions: Optional[VersionBlock] = None,
    vertical_id: Optional[str] = None,
    market_id: Optional[str] = None,
    organization_id: Optional[str] = None,
    app_id: Optional[str] = None,
    code_defaults: bool = False,
) -> MergedRuleSet:
    """Combine up to four normalized layers into one effective ruleset.

    Layers are applied in the order base → vertical → market → client:

    * map-valued fields are last-wins by key
    * stopwords are the union of every layer
    * formula overrides are deep-merged (see ``_merge_formulas``)

    Absent layers contribute nothing.  When *versions* is not given it is
    built from each layer's own ``version``.  Pass *code_defaults* when the
    code-defined global tables sit underneath the layers; any stored layer
    then makes the result ``hybrid``.  The function is pure; calling
    it twice with the same inputs gives equal results.
    """
    layers: Tuple[Optional[NormalizedRuleSet], ...] = (base, vertical, market, client)
    for expected, layer in zip(LAYER_PRECEDENCE, layers):
        if layer is not None and not isinstance(layer, NormalizedRuleSet):
            raise TypeError(
                f"{expected.value} layer must be a NormalizedRuleSet, "
                f"got {type(layer).__name__}"
            )

    token_relevance: Dict[str, int] = {}
    hook_patterns: Dict[str, HookPattern] = {}
    stopwords: Set[str] = set()
    kpi_weights: Dict[str, float] = {}
    formula_overrides: Dict[str, FormulaOverride] = {}
    recommendation_templates: Dict[str, str] = {}
    contributing: List[NormalizedRuleSet] = []

    for layer in layers:
        if layer is None or layer.is_empty:
            continue
        contributing.append(layer)
        token_relevance.update(layer.token_relevance)
        hook_patterns.update(layer.hook_patterns)
        stopwords.update(layer.stopwords)
        kpi_weights.update(layer.kpi_weights)
        _merge_formulas(formula_overrides, layer.formula_overrides)
        recommendation_templates.update(layer.recommendation_templates)

    formula_overrides = {
        formula_id: (
            override
            if override.multiplier is not None
            else override.model_copy(update={"multiplier": DEFAULT_WEIGHT_MULTIPLIER})
        )
        for formula_id, override in formula_overrides.items()
    }

    if versions is None:
        versions = build_version_info(
            {
                layer_id: layer.version
                for layer_id, layer in zip(LAYER_PRECEDENCE, layers)
                if layer is not None and layer.origin == RulesetOrigin.database
            }
        )

    source = _source_tag(contributing, code_defaults)
    logger.debug(
        "Merged ruleset vertical=%s market=%s org=%s app=%s source=%s layers=%s",
        vertical_id,
        market_id,
        organization_id,
        app_id,
        source.value,
        [layer.layer.value for layer in contributing],
    )

    return MergedRuleSet(
        vertical_id=vertical_id,
        market_id=market_id,
        organization_id=organization_id,
        app_id=app_id,
        token_relevance=token_relevance,
        hook_patterns=hook_patterns,
        stopwords=frozenset(stopwords),
        kpi_weights=kpi_weights,
        formula_overrides=formula_overrides,
        recommendation_templates=recommendation_templates,
        source=source,
        contributing_layers=tuple(layer.layer for layer in contributing),
        versions=versions,
    )


def code_base_ruleset(
    vertical_id: Optional[str] = None,
    market_id: Optional[str] = None,
    organization_id: Optional[str] = None,
    app_id: Optional[str] = None,
) -> MergedRuleSet:
    """Return the ruleset used when stored overrides are off or unreachable."""
    return merge(
        base=empty_ruleset(ScopeLayer.base, RulesetOrigin.code),
        vertical_id=vertical_id,
        market_id=market_id,
        organization_id=organization_id,
        app_id=app_id,
    )
