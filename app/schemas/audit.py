from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from app.schemas.common import MetadataElement, RulesetSourceTag
from app.schemas.ruleset import LeakWarning, VersionBlock


class KpiResult(BaseModel):
    kpi_id: str
    value: float = Field(..., ge=0, le=100)
    weight: float = Field(..., ge=0, le=1)


class ElementScore(BaseModel):
    element: MetadataElement
    text: str = ""
    score: float = Field(..., ge=0, le=100)
    formula_multiplier: float
    kpis: List[KpiResult] = Field(default_factory=list)
    high_value_keywords: List[str] = Field(default_factory=list)
    matched_hooks: List[str] = Field(default_factory=list)


class Recommendation(BaseModel):
    recommendation_id: str
    element: MetadataElement
    message: str


class MetadataAuditResult(BaseModel):
    overall_score: float = Field(..., ge=0, le=100)
    elements: Dict[MetadataElement, ElementScore]
    recommendations: List[Recommendation] = Field(default_factory=list)
    vertical_id: Optional[str] = None
    vertical_confidence: Optional[float] = None
    market_id: Optional[str] = None
    ruleset_source: RulesetSourceTag
    versions: VersionBlock
    leak_warnings: Tuple[LeakWarning, ...] = ()
