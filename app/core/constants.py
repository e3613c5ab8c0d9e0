from typing import Dict, FrozenSet, Tuple

from app.schemas.common import OverrideKind, ScopeLayer

# Merge order; later layers win for map-valued fields
LAYER_PRECEDENCE: Tuple[ScopeLayer, ...] = (
    ScopeLayer.base,
    ScopeLayer.vertical,
    ScopeLayer.market,
    ScopeLayer.client,
)

VALID_OVERRIDE_KINDS: FrozenSet[str] = frozenset(k.value for k in OverrideKind)
VALID_SCOPE_LAYERS: FrozenSet[str] = frozenset(s.value for s in ScopeLayer)

SCOPE_LAYER_CHECK_CLAUSE: str = (
    f"scope_layer IN ({', '.join(repr(s.value) for s in ScopeLayer)})"
)

# Scope columns must match the layer they belong to
SCOPE_COLUMNS_CHECK_CLAUSE: str = (
    "(scope_layer = 'base' AND vertical IS NULL AND market IS NULL "
    "AND organization_id IS NULL AND app_id IS NULL) OR "
    "(scope_layer = 'vertical' AND vertical IS NOT NULL AND market IS NULL "
    "AND organization_id IS NULL AND app_id IS NULL) OR "
    "(scope_layer = 'market' AND market IS NOT NULL AND vertical IS NULL "
    "AND organization_id IS NULL AND app_id IS NULL) OR "
    "(scope_layer = 'client' AND organization_id IS NOT NULL "
    "AND vertical IS NULL AND market IS NULL)"
)

# Value ranges enforced by the normalizer
MIN_RELEVANCE: int = 0
MAX_RELEVANCE: int = 3
MIN_WEIGHT_MULTIPLIER: float = 0.5
MAX_WEIGHT_MULTIPLIER: float = 2.0
DEFAULT_WEIGHT_MULTIPLIER: float = 1.0

# Version stamping
DEFAULT_LAYER_VERSION: int = 1
KPI_SCHEMA_VERSION: str = "kpi-payload.v1"
FORMULA_SCHEMA_VERSION: str = "formula-payload.v1"

# Cache key sentinel for absent scope components
CACHE_KEY_SENTINEL: str = "none"
CACHE_KEY_SEPARATOR: str = "|"

# Redis key holding the cross-worker invalidation counter
RULESET_GENERATION_KEY: str = "ruleset:generation"

DEFAULT_LOCALE: str = "en-US"
DEFAULT_MARKET: str = "us"
BASE_VERTICAL: str = "base"

# ---------------------------------------------------------------------------
# KPI catalog: family id → {kpi id: base weight}
# ---------------------------------------------------------------------------

KPI_FAMILIES: Dict[str, Dict[str, float]] = {
    "title": {
        "title_char_usage": 0.25,
        "title_high_value_keyword_count": 0.40,
        "title_noise_ratio": 0.20,
        "title_word_count": 0.15,
    },
    "subtitle": {
        "subtitle_char_usage": 0.25,
        "subtitle_high_value_incremental_keywords": 0.40,
        "subtitle_noise_ratio": 0.20,
        "subtitle_word_count": 0.15,
    },
    "description": {
        "description_hook_strength": 0.50,
        "description_keyword_coverage": 0.30,
        "description_length": 0.20,
    },
}

KNOWN_KPI_IDS: FrozenSet[str] = frozenset(
    kpi_id for family in KPI_FAMILIES.values() for kpi_id in family
)

# ---------------------------------------------------------------------------
# Formula catalog: formula id → base component weights
# ---------------------------------------------------------------------------

FORMULA_COMPONENTS: Dict[str, Dict[str, float]] = {
    "title_element_score": {},
    "subtitle_element_score": {},
    "description_element_score": {},
    "overall_metadata_score": {"title_score": 0.65, "subtitle_score": 0.35},
}

KNOWN_FORMULA_IDS: FrozenSet[str] = frozenset(FORMULA_COMPONENTS)

# Character limits used by the char-usage KPIs
ELEMENT_CHAR_LIMITS: Dict[str, int] = {
    "title": 30,
    "subtitle": 30,
    "description": 4000,
}
