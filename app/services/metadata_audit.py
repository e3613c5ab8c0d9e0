import logging
from typing import Dict, List, Optional

from app.core.constants import (
    DEFAULT_LOCALE,
    ELEMENT_CHAR_LIMITS,
    FORMULA_COMPONENTS,
    KPI_FAMILIES,
)
from app.core.default_patterns import DEFAULT_RECOMMENDATION_MESSAGES
from app.schemas.audit import (
    ElementScore,
    KpiResult,
    MetadataAuditResult,
    Recommendation,
)
from app.schemas.common import MetadataElement
from app.schemas.ruleset import AppMetadata, MergedRuleSet
from app.services import scoring
from app.services.ruleset_loader import RulesetLoader
from app.services.ruleset_merger import code_base_ruleset

logger = logging.getLogger(__name__)

# A token at or above this relevance counts as a high-value keyword
HIGH_VALUE_RELEVANCE = 2
# High-value keywords needed for a full keyword-count KPI
KEYWORDS_FOR_FULL_SCORE = 2
# Word count range that earns a full word-count KPI
IDEAL_WORD_COUNT = (2, 5)
WORD_COUNT_PENALTY = 15.0
# Description length that earns a full length KPI
IDEAL_DESCRIPTION_LENGTH = 1000

# Recommendation thresholds
NOISE_RATIO_WARNING = 0.5
CHAR_USAGE_WARNING = 70.0
KEYWORD_COVERAGE_WARNING = 50.0

OVERALL_FORMULA_ID = "overall_metadata_score"


def _clamp(value: float) -> float:
    return max(0.0, min(100.0, value))


class _ElementTokens:
    """Tokens of one element split by what the KPIs need."""

    def __init__(self, text: str, ruleset: Optional[MergedRuleSet]) -> None:
        stopwords = scoring.merged_stopwords(ruleset)
        self.tokens = scoring.tokenize(text)
        self.noise = [
            t for t in self.tokens
            if t in stopwords or scoring.relevance(t, ruleset) == 0
        ]
        self.high_value = list(
            dict.fromkeys(
                t for t in self.tokens
                if t not in stopwords
                and scoring.relevance(t, ruleset) >= HIGH_VALUE_RELEVANCE
            )
        )

    @property
    def noise_ratio(self) -> float:
        if not self.tokens:
            return 0.0
        return len(self.noise) / len(self.tokens)


def _char_usage(text: str, element: MetadataElement) -> float:
    return _clamp(len(text) / ELEMENT_CHAR_LIMITS[element.value] * 100)


def _keyword_count(count: int) -> float:
    return _clamp(count / KEYWORDS_FOR_FULL_SCORE * 100)


def _noise(tokens: _ElementTokens) -> float:
    if not tokens.tokens:
        return 0.0
    return _clamp((1 - tokens.noise_ratio) * 100)


def _word_count(count: int) -> float:
    low, high = IDEAL_WORD_COUNT
    if count == 0:
        return 0.0
    if count < low:
        return _clamp(count / low * 100)
    if count <= high:
        return 100.0
    return _clamp(100 - (count - high) * WORD_COUNT_PENALTY)


class MetadataAuditService:
    """Score an app's title, subtitle and description against its ruleset.

    The ruleset is resolved once per audit and handed to every scoring
    lookup, so vertical, market and client overrides shape token
    relevance, hooks, KPI weights, formulas and recommendation text.
    """

    def __init__(self, loader: RulesetLoader) -> None:
        self._loader = loader

    async def audit(
        self,
        app_metadata: AppMetadata,
        locale: Optional[str] = DEFAULT_LOCALE,
        organization_id: Optional[str] = None,
    ) -> MetadataAuditResult:
        ruleset = await self._loader.get_active_ruleset(
            app_metadata, locale=locale, organization_id=organization_id
        )
        return self.score(app_metadata, ruleset)

    def score(
        self, app_metadata: AppMetadata, ruleset: Optional[MergedRuleSet] = None
    ) -> MetadataAuditResult:
        """Score *app_metadata* with an already resolved ruleset.

        Without a ruleset the code base ruleset is used, which scores the
        same as applying no overrides at all.
        """
        if ruleset is None:
            ruleset = code_base_ruleset()

        title = app_metadata.title or ""
        subtitle = app_metadata.subtitle or ""
        description = app_metadata.description or ""

        title_tokens = _ElementTokens(title, ruleset)
        subtitle_tokens = _ElementTokens(subtitle, ruleset)
        description_tokens = _ElementTokens(description, ruleset)
        incremental = [
            t for t in subtitle_tokens.high_value if t not in title_tokens.high_value
        ]

        recommendations: List[Recommendation] = []

        title_score = self._score_element(
            MetadataElement.title,
            title,
            {
                "title_char_usage": _char_usage(title, MetadataElement.title),
                "title_high_value_keyword_count": _keyword_count(
                    len(title_tokens.high_value)
                ),
                "title_noise_ratio": _noise(title_tokens),
                "title_word_count": _word_count(len(title_tokens.tokens)),
            },
            ruleset,
            high_value_keywords=title_tokens.high_value,
        )
        recommendations.extend(
            self._short_element_recommendations(
                MetadataElement.title, title, title_tokens.high_value,
                title_tokens, ruleset,
            )
        )

        subtitle_score = self._score_element(
            MetadataElement.subtitle,
            subtitle,
            {
                "subtitle_char_usage": _char_usage(subtitle, MetadataElement.subtitle),
                "subtitle_high_value_incremental_keywords": _keyword_count(
                    len(incremental)
                ),
                "subtitle_noise_ratio": _noise(subtitle_tokens),
                "subtitle_word_count": _word_count(len(subtitle_tokens.tokens)),
            },
            ruleset,
            high_value_keywords=incremental,
        )
        recommendations.extend(
            self._short_element_recommendations(
                MetadataElement.subtitle, subtitle, incremental,
                subtitle_tokens, ruleset,
            )
        )

        matched_hooks = scoring.matched_hook_categories(description, ruleset)
        coverage = self._keyword_coverage(
            title_tokens.high_value + incremental, description_tokens
        )
        description_score = self._score_element(
            MetadataElement.description,
            description,
            {
                "description_hook_strength": scoring.hook_score(description, ruleset),
                "description_keyword_coverage": coverage if coverage is not None else 0.0,
                "description_length": _clamp(
                    len(description) / IDEAL_DESCRIPTION_LENGTH * 100
                ),
            },
            ruleset,
            high_value_keywords=description_tokens.high_value,
            matched_hooks=matched_hooks,
        )
        recommendations.extend(
            self._description_recommendations(matched_hooks, coverage, ruleset)
        )

        overall = self._overall_score(title_score.score, subtitle_score.score, ruleset)

        logger.debug(
            "Audited app %s: overall=%.1f title=%.1f subtitle=%.1f description=%.1f",
            app_metadata.app_id,
            overall,
            title_score.score,
            subtitle_score.score,
            description_score.score,
        )

        return MetadataAuditResult(
            overall_score=round(overall, 2),
            elements={
                MetadataElement.title: title_score,
                MetadataElement.subtitle: subtitle_score,
                MetadataElement.description: description_score,
            },
            recommendations=recommendations,
            vertical_id=ruleset.vertical_id,
            vertical_confidence=ruleset.vertical_confidence,
            market_id=ruleset.market_id,
            ruleset_source=ruleset.source,
            versions=ruleset.versions,
            leak_warnings=ruleset.leak_warnings,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _score_element(
        element: MetadataElement,
        text: str,
        kpi_values: Dict[str, float],
        ruleset: Optional[MergedRuleSet],
        high_value_keywords: List[str],
        matched_hooks: Optional[List[str]] = None,
    ) -> ElementScore:
        weights = scoring.normalize_family_weights(KPI_FAMILIES[element.value], ruleset)
        multiplier = scoring.formula_multiplier(f"{element.value}_element_score", ruleset)
        raw = sum(kpi_values[kpi_id] * weight for kpi_id, weight in weights.items())
        return ElementScore(
            element=element,
            text=text,
            score=round(_clamp(raw * multiplier), 2),
            formula_multiplier=multiplier,
            kpis=[
                KpiResult(
                    kpi_id=kpi_id,
                    value=round(kpi_values[kpi_id], 2),
                    weight=min(1.0, weight),
                )
                for kpi_id, weight in weights.items()
            ],
            high_value_keywords=high_value_keywords,
            matched_hooks=matched_hooks or [],
        )

    @staticmethod
    def _keyword_coverage(
        keywords: List[str], description_tokens: _ElementTokens
    ) -> Optional[float]:
        if not keywords:
            return None
        present = set(description_tokens.tokens)
        covered = sum(1 for keyword in keywords if keyword in present)
        return _clamp(covered / len(keywords) * 100)

    @staticmethod
    def _overall_score(
        title_score: float, subtitle_score: float, ruleset: Optional[MergedRuleSet]
    ) -> float:
        components = scoring.component_weights(
            OVERALL_FORMULA_ID, FORMULA_COMPONENTS[OVERALL_FORMULA_ID], ruleset
        )
        values = {"title_score": title_score, "subtitle_score": subtitle_score}
        raw = sum(values[name] * weight for name, weight in components.items())
        return _clamp(raw * scoring.formula_multiplier(OVERALL_FORMULA_ID, ruleset))

    @staticmethod
    def _recommend(
        rec_id: str,
        element: MetadataElement,
        ruleset: Optional[MergedRuleSet],
        **context: object,
    ) -> Recommendation:
        text = scoring.message(
            rec_id,
            DEFAULT_RECOMMENDATION_MESSAGES[rec_id],
            ruleset,
            context={"element": element.value, **context},
        )
        return Recommendation(recommendation_id=rec_id, element=element, message=text)

    def _short_element_recommendations(
        self,
        element: MetadataElement,
        text: str,
        high_value_keywords: List[str],
        tokens: _ElementTokens,
        ruleset: Optional[MergedRuleSet],
    ) -> List[Recommendation]:
        recs = []
        if not high_value_keywords:
            recs.append(self._recommend("missing_high_value_keyword", element, ruleset))
        if tokens.noise_ratio > NOISE_RATIO_WARNING:
            recs.append(self._recommend("high_noise_ratio", element, ruleset))
        if _char_usage(text, element) < CHAR_USAGE_WARNING:
            recs.append(
                self._recommend(
                    "underused_characters",
                    element,
                    ruleset,
                    used=len(text),
                    limit=ELEMENT_CHAR_LIMITS[element.value],
                )
            )
        return recs

    def _description_recommendations(
        self,
        matched_hooks: List[str],
        coverage: Optional[float],
        ruleset: Optional[MergedRuleSet],
    ) -> List[Recommendation]:
        recs = []
        if not matched_hooks:
            recs.append(
                self._recommend("missing_hook", MetadataElement.description, ruleset)
            )
        if coverage is not None and coverage < KEYWORD_COVERAGE_WARNING:
            recs.append(
                self._recommend(
                    "low_keyword_coverage", MetadataElement.description, ruleset
                )
            )
        return recs
