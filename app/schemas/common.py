from enum import Enum
from pydantic import BaseModel


class ScopeLayer(str, Enum):
    base = "base"
    vertical = "vertical"
    market = "market"
    client = "client"


class OverrideKind(str, Enum):
    token_relevance = "token_relevance"
    hook_pattern = "hook_pattern"
    stopword = "stopword"
    kpi_weight = "kpi_weight"
    formula = "formula"
    recommendation_template = "recommendation_template"


class RulesetSourceTag(str, Enum):
    code = "code"
    database = "database"
    hybrid = "hybrid"


class RulesetOrigin(str, Enum):
    code = "code"
    database = "database"


class DiagnosticSeverity(str, Enum):
    info = "info"
    warning = "warning"


class LeakSeverity(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"


class LeakType(str, Enum):
    pattern_leak = "pattern_leak"
    recommendation_leak = "recommendation_leak"
    vertical_mismatch = "vertical_mismatch"


class MetadataElement(str, Enum):
    title = "title"
    subtitle = "subtitle"
    description = "description"


class SuccessResponse(BaseModel):
    """Generic success response base."""

    success: bool = True
