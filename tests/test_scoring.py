import math

import pytest

from app.core.constants import FORMULA_COMPONENTS, KPI_FAMILIES
from app.core.default_patterns import BASE_STOPWORDS
from app.schemas.common import ScopeLayer
from app.schemas.ruleset import FormulaOverride, HookPattern, NormalizedRuleSet
from app.services.ruleset_merger import code_base_ruleset, merge
from app.services import scoring


def _merged(**fields):
    return merge(vertical=NormalizedRuleSet(layer=ScopeLayer.vertical, **fields))


class TestTokenize:
    def test_lowercases_and_splits(self):
        assert scoring.tokenize("Learn Spanish - Fast!") == ["learn", "spanish", "-", "fast"]

    def test_rejects_non_string(self):
        with pytest.raises(TypeError):
            scoring.tokenize(None)


class TestRelevance:
    @pytest.mark.parametrize(
        "token, expected",
        [
            ("spanish", 3),
            ("Learn", 3),
            ("lessons", 2),
            ("best", 0),
            ("2024", 0),
            ("", 0),
            ("banana", 1),
        ],
    )
    def test_global_levels(self, token, expected):
        assert scoring.relevance(token) == expected

    def test_override_wins_case_insensitively(self):
        ruleset = _merged(token_relevance={"banana": 3, "spanish": 0})
        assert scoring.relevance("BANANA", ruleset) == 3
        assert scoring.relevance("Spanish", ruleset) == 0

    def test_miss_falls_back_to_global(self):
        ruleset = _merged(token_relevance={"banana": 3})
        assert scoring.relevance("lessons", ruleset) == 2

    def test_rejects_wrong_types(self):
        with pytest.raises(TypeError):
            scoring.relevance(5)
        with pytest.raises(TypeError):
            scoring.relevance("x", ruleset={"x": 3})


class TestHookScore:
    def test_weighted_average_is_clamped_to_100(self):
        ruleset = _merged(
            hook_patterns={
                "learning": HookPattern(keywords=("learn",), weight=1.3),
                "trust": HookPattern(keywords=("secure",), weight=1.4),
            }
        )
        assert scoring.matched_hook_categories("Learn to stay secure", ruleset) == [
            "learning",
            "trust",
        ]
        assert scoring.hook_score("Learn to stay secure", ruleset) == 100.0

    def test_average_below_cap(self):
        ruleset = _merged(
            hook_patterns={
                "learning": HookPattern(keywords=("learn",), weight=0.6),
                "trust": HookPattern(keywords=("secure",), weight=0.8),
            }
        )
        assert scoring.hook_score("learn and stay secure", ruleset) == pytest.approx(70.0)

    def test_no_match_scores_zero(self):
        assert scoring.hook_score("nothing here") == 0.0

    def test_global_categories_used_without_ruleset(self):
        assert scoring.hook_score("Easy and secure") == 100.0
        assert set(scoring.matched_hook_categories("Easy and secure")) == {
            "ease_of_use",
            "trust_safety",
        }

    def test_ruleset_without_hooks_falls_back_to_global(self):
        assert scoring.hook_categories(code_base_ruleset()) == scoring.hook_categories()


class TestWeights:
    def test_family_weights_sum_to_one_without_overrides(self):
        weights = scoring.normalize_family_weights(KPI_FAMILIES["title"])
        assert math.isclose(sum(weights.values()), 1.0, abs_tol=1e-9)
        assert weights == pytest.approx(KPI_FAMILIES["title"])

    def test_extreme_multipliers_still_sum_to_one(self):
        ruleset = _merged(
            kpi_weights={"title_char_usage": 2.0, "title_noise_ratio": 0.5, "title_word_count": 2.0}
        )
        weights = scoring.normalize_family_weights(KPI_FAMILIES["title"], ruleset)
        assert math.isclose(sum(weights.values()), 1.0, abs_tol=1e-9)
        assert weights["title_char_usage"] > KPI_FAMILIES["title"]["title_char_usage"]

    def test_all_zero_family_is_split_evenly(self):
        weights = scoring.normalize_family_weights({"a": 0, "b": 0})
        assert weights == {"a": 0.5, "b": 0.5}

    def test_empty_family(self):
        assert scoring.normalize_family_weights({}) == {}

    def test_invalid_weights(self):
        with pytest.raises(TypeError):
            scoring.normalize_family_weights({"a": "heavy"})
        with pytest.raises(TypeError):
            scoring.normalize_family_weights({"a": True})
        with pytest.raises(ValueError):
            scoring.normalize_family_weights({"a": -1})
        with pytest.raises(TypeError):
            scoring.normalize_family_weights([0.5, 0.5])

    def test_formula_multiplier_defaults_to_one(self):
        assert scoring.formula_multiplier("title_element_score") == 1.0
        assert scoring.formula_multiplier("title_element_score", code_base_ruleset()) == 1.0

    def test_formula_multiplier_from_override(self):
        ruleset = _merged(formula_overrides={"title_element_score": FormulaOverride(multiplier=1.5)})
        assert scoring.formula_multiplier("title_element_score", ruleset) == 1.5

    def test_component_weights_renormalize(self):
        ruleset = _merged(
            formula_overrides={
                "overall_metadata_score": FormulaOverride(
                    component_weights={"subtitle_score": 2.0}
                )
            }
        )
        base = FORMULA_COMPONENTS["overall_metadata_score"]
        weights = scoring.component_weights("overall_metadata_score", base, ruleset)
        assert math.isclose(sum(weights.values()), 1.0, abs_tol=1e-9)
        assert weights["subtitle_score"] == pytest.approx(0.70 / 1.35)


class TestStopwords:
    def test_base_set_without_ruleset(self):
        assert scoring.merged_stopwords() == BASE_STOPWORDS

    def test_ruleset_adds_but_never_removes(self):
        ruleset = _merged(stopwords=frozenset({"der", "die"}))
        stopwords = scoring.merged_stopwords(ruleset)
        assert BASE_STOPWORDS <= stopwords
        assert {"der", "die"} <= stopwords


class TestMessage:
    def test_fallback_when_no_template(self):
        assert scoring.message("missing_hook", "Add a hook.") == "Add a hook."

    def test_template_wins(self):
        ruleset = _merged(recommendation_templates={"missing_hook": "Lead with a lesson."})
        assert scoring.message("missing_hook", "Add a hook.", ruleset) == "Lead with a lesson."

    def test_placeholders_are_filled_from_context(self):
        text = scoring.message(
            "underused_characters",
            "Your {element} uses {used} of {limit} characters.",
            context={"element": "title", "used": 12, "limit": 30},
        )
        assert text == "Your title uses 12 of 30 characters."

    def test_unknown_placeholders_are_left_alone(self):
        text = scoring.message("x", "Your {element} lacks {thing}.", context={"element": "title"})
        assert text == "Your title lacks {thing}."

    def test_rejects_non_string_fallback(self):
        with pytest.raises(TypeError):
            scoring.message("x", None)
