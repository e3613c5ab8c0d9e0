import logging
import re
from typing import Dict, List, Optional, Tuple

from app.core.constants import BASE_VERTICAL, DEFAULT_MARKET
from app.core.default_patterns import (
    CATEGORY_VERTICALS,
    LANGUAGE_MARKETS,
    REGION_MARKETS,
    VERTICAL_SIGNATURES,
)
from app.schemas.ruleset import AppMetadata, VerticalDetection

logger = logging.getLogger(__name__)

# Share of the confidence carried by the store category vs. keyword signals
CATEGORY_CONFIDENCE = 0.6
SIGNAL_CONFIDENCE = 0.4
# Number of keyword hits that saturates the signal share
SIGNALS_FOR_FULL_CONFIDENCE = 3

_SUBTAG_SPLIT_RE = re.compile(r"[-_]")


def _signal_pattern(keyword: str) -> "re.Pattern[str]":
    return re.compile(r"(?<!\w)" + re.escape(keyword) + r"(?!\w)")


_SIGNATURE_PATTERNS: Dict[str, List[Tuple[str, "re.Pattern[str]"]]] = {
    vertical: [(keyword, _signal_pattern(keyword)) for keyword in keywords]
    for vertical, keywords in VERTICAL_SIGNATURES.items()
}


def detect_vertical(app_metadata: AppMetadata) -> VerticalDetection:
    """Pick the vertical whose rules should apply to an app.

    The store category counts for ``CATEGORY_CONFIDENCE`` and keyword
    signatures found in the title, subtitle and description fill the
    rest.  Apps with neither fall back to ``base`` with zero confidence.
    The confidence is informational; it never decides whether vertical
    overrides are applied.
    """
    if not isinstance(app_metadata, AppMetadata):
        raise TypeError("app_metadata must be an AppMetadata instance")

    category = (app_metadata.category or "").strip().lower()
    category_vertical = CATEGORY_VERTICALS.get(category)
    text = " ".join(
        part
        for part in (app_metadata.title, app_metadata.subtitle, app_metadata.description)
        if part
    ).lower()

    best: Optional[VerticalDetection] = None
    for vertical, patterns in _SIGNATURE_PATTERNS.items():
        hits = tuple(keyword for keyword, pattern in patterns if pattern.search(text))
        confidence = CATEGORY_CONFIDENCE if vertical == category_vertical else 0.0
        confidence += SIGNAL_CONFIDENCE * min(
            1.0, len(hits) / SIGNALS_FOR_FULL_CONFIDENCE
        )
        if confidence <= 0:
            continue
        signals = hits
        if vertical == category_vertical:
            signals = (f"category:{category}",) + hits
        candidate = VerticalDetection(
            vertical_id=vertical,
            confidence=round(confidence, 4),
            matched_signals=signals,
        )
        if best is None or candidate.confidence > best.confidence:
            best = candidate

    if best is None:
        logger.debug("No vertical signals for category %r; using base", category)
        return VerticalDetection(vertical_id=BASE_VERTICAL, confidence=0.0)
    return best


def detect_market(locale: Optional[str]) -> str:
    """Map a storefront locale such as ``en-US`` to a market id (``us``).

    The region subtag wins when present (``en-GB`` → ``uk``); a bare
    language goes through ``LANGUAGE_MARKETS``; anything else is the
    default market.
    """
    if locale is None:
        return DEFAULT_MARKET
    if not isinstance(locale, str):
        raise TypeError("locale must be a string")

    subtags = [s for s in _SUBTAG_SPLIT_RE.split(locale.strip().lower()) if s]
    if not subtags:
        return DEFAULT_MARKET

    # Skip script subtags such as "hant" in "zh-Hant-TW"
    for subtag in subtags[1:]:
        if len(subtag) == 2 and subtag.isalpha():
            return REGION_MARKETS.get(subtag, subtag)

    return LANGUAGE_MARKETS.get(subtags[0], DEFAULT_MARKET)
