"""Cross-vertical contamination checks for merged rulesets.

Leaks are warnings only: they are attached to the ruleset handed to a
single request and never block scoring or change any score.
"""

import logging
from typing import Iterable, List, Optional, Tuple

from app.core.constants import BASE_VERTICAL
from app.core.default_patterns import EXPECTED_VERTICALS_BY_CATEGORY
from app.schemas.common import LeakSeverity, LeakType
from app.schemas.ruleset import AppMetadata, LeakSummary, LeakWarning, MergedRuleSet

logger = logging.getLogger(__name__)

LEARNING_CATEGORIES = frozenset({"education"})
REWARD_CATEGORIES = frozenset({"entertainment", "lifestyle", "shopping"})
FINANCE_CATEGORIES = frozenset({"finance", "business"})

LEARNING_TOKENS: Tuple[str, ...] = ("learn", "study", "lesson", "course", "fluency")
LEARNING_HOOK_MARKERS: Tuple[str, ...] = ("learning",)
REWARD_HOOK_MARKERS: Tuple[str, ...] = ("earning", "reward", "redemption")
FINANCE_HOOK_MARKERS: Tuple[str, ...] = ("investing", "trading")
LEARNING_TEMPLATE_EXAMPLES: Tuple[str, ...] = (
    "learn spanish",
    "language lessons",
    "fluency",
)


def _category(app_metadata: AppMetadata) -> str:
    return (app_metadata.category or "").strip().lower()


def _hook_categories_with(ruleset: MergedRuleSet, markers: Iterable[str]) -> List[str]:
    # Match on name segments so "earning" does not hit "learning_educational"
    markers = tuple(markers)
    return sorted(
        name
        for name in ruleset.hook_patterns
        if any(part.startswith(markers) for part in name.split("_"))
    )


def _hook_leak(
    ruleset: MergedRuleSet,
    app_metadata: AppMetadata,
    markers: Tuple[str, ...],
    expected_categories: frozenset,
    label: str,
) -> Optional[LeakWarning]:
    if _category(app_metadata) in expected_categories:
        return None
    leaked = _hook_categories_with(ruleset, markers)
    if not leaked:
        return None
    return LeakWarning(
        type=LeakType.pattern_leak,
        severity=LeakSeverity.medium,
        message=f"{label} hook patterns detected in an app outside their categories",
        details={
            "category": app_metadata.category,
            "vertical": ruleset.vertical_id,
            "hook_categories": leaked,
        },
    )


def _learning_token_leak(
    ruleset: MergedRuleSet, app_metadata: AppMetadata
) -> Optional[LeakWarning]:
    if _category(app_metadata) in LEARNING_CATEGORIES:
        return None
    tokens = [t for t in LEARNING_TOKENS if ruleset.token_relevance.get(t) == 3]
    if not tokens:
        return None
    return LeakWarning(
        type=LeakType.pattern_leak,
        severity=LeakSeverity.low,
        message="Language-learning token patterns detected in non-Education app",
        details={"category": app_metadata.category, "tokens": tokens},
    )


def _recommendation_leaks(
    ruleset: MergedRuleSet, app_metadata: AppMetadata
) -> List[LeakWarning]:
    if _category(app_metadata) in LEARNING_CATEGORIES:
        return []
    warnings = []
    for rec_id, template in sorted(ruleset.recommendation_templates.items()):
        lowered = template.lower()
        if any(example in lowered for example in LEARNING_TEMPLATE_EXAMPLES):
            warnings.append(
                LeakWarning(
                    type=LeakType.recommendation_leak,
                    severity=LeakSeverity.high,
                    message=(
                        "Hard-coded language-learning examples in non-Education "
                        "app recommendations"
                    ),
                    details={
                        "recommendation_id": rec_id,
                        "category": app_metadata.category,
                        "template": lowered,
                    },
                )
            )
    return warnings


def detect_vertical_mismatch(
    ruleset: MergedRuleSet, app_metadata: AppMetadata
) -> Optional[LeakWarning]:
    """Warn when the resolved vertical is unusual for the store category."""
    category = _category(app_metadata)
    if not ruleset.vertical_id or not category:
        return None
    expected = EXPECTED_VERTICALS_BY_CATEGORY.get(category, [BASE_VERTICAL])
    if ruleset.vertical_id in expected:
        return None
    return LeakWarning(
        type=LeakType.vertical_mismatch,
        severity=LeakSeverity.medium,
        message=(
            f"Rule set vertical '{ruleset.vertical_id}' may not match app "
            f"category '{app_metadata.category}'"
        ),
        details={
            "vertical_id": ruleset.vertical_id,
            "category": app_metadata.category,
            "expected_verticals": list(expected),
        },
    )


def detect_leaks(
    ruleset: MergedRuleSet, app_metadata: AppMetadata
) -> Tuple[LeakWarning, ...]:
    """Run every leak check against *ruleset* for one app."""
    warnings: List[LeakWarning] = []
    for check in (
        _hook_leak(
            ruleset, app_metadata, LEARNING_HOOK_MARKERS, LEARNING_CATEGORIES,
            "Language-learning",
        ),
        _learning_token_leak(ruleset, app_metadata),
        _hook_leak(
            ruleset, app_metadata, REWARD_HOOK_MARKERS, REWARD_CATEGORIES, "Reward"
        ),
        _hook_leak(
            ruleset, app_metadata, FINANCE_HOOK_MARKERS, FINANCE_CATEGORIES, "Finance"
        ),
    ):
        if check is not None:
            warnings.append(check)
    warnings.extend(_recommendation_leaks(ruleset, app_metadata))

    mismatch = detect_vertical_mismatch(ruleset, app_metadata)
    if mismatch is not None:
        warnings.append(mismatch)

    if warnings:
        logger.info(
            "Detected %d ruleset leak warning(s) for vertical=%s category=%s",
            len(warnings),
            ruleset.vertical_id,
            app_metadata.category,
        )
    return tuple(warnings)


def with_leak_warnings(
    ruleset: MergedRuleSet, app_metadata: AppMetadata
) -> MergedRuleSet:
    """Return a copy of *ruleset* carrying the leak warnings for this app.

    The input is left untouched, so a cached ruleset never accumulates
    warnings from other requests.
    """
    return ruleset.model_copy(
        update={"leak_warnings": detect_leaks(ruleset, app_metadata)}
    )


def leak_summary(ruleset: MergedRuleSet) -> LeakSummary:
    warnings = ruleset.leak_warnings
    return LeakSummary(
        total_warnings=len(warnings),
        by_severity={
            severity.value: sum(1 for w in warnings if w.severity == severity)
            for severity in LeakSeverity
        },
        by_type={
            leak_type.value: sum(1 for w in warnings if w.type == leak_type)
            for leak_type in LeakType
        },
    )
