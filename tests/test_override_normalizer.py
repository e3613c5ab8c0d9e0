import logging
import math
from decimal import Decimal

import pytest

from app.schemas.common import (
    DiagnosticSeverity,
    OverrideKind,
    RulesetOrigin,
    ScopeLayer,
)
from app.services.override_normalizer import empty_ruleset, normalize


class TestTokenRelevance:
    """Token relevance records: lowercase, trim, round, clamp."""

    def test_token_is_lowercased_and_trimmed(self, make_record):
        ruleset = normalize(
            [make_record(OverrideKind.token_relevance, {"token": "  Spanish ", "relevance": 2})],
            ScopeLayer.vertical,
        )
        assert ruleset.token_relevance == {"spanish": 2}
        assert ruleset.diagnostics == ()

    def test_empty_token_is_skipped_with_diagnostic(self, make_record):
        ruleset = normalize(
            [make_record(OverrideKind.token_relevance, {"token": "   ", "relevance": 2})],
            ScopeLayer.vertical,
        )
        assert ruleset.token_relevance == {}
        assert len(ruleset.diagnostics) == 1
        assert ruleset.diagnostics[0].kind == "token_relevance"
        assert "token" in ruleset.diagnostics[0].reason

    @pytest.mark.parametrize(
        "raw, expected",
        [(7, 3), (-4, 0), (3, 3), (0, 0)],
    )
    def test_relevance_is_clamped(self, make_record, raw, expected):
        ruleset = normalize(
            [make_record(OverrideKind.token_relevance, {"token": "learn", "relevance": raw})],
            ScopeLayer.base,
        )
        assert ruleset.token_relevance["learn"] == expected

    def test_non_integer_relevance_is_rounded_and_logged(self, make_record, caplog):
        caplog.set_level(logging.WARNING)
        ruleset = normalize(
            [
                make_record(OverrideKind.token_relevance, {"token": "a", "relevance": 2.5}),
                make_record(OverrideKind.token_relevance, {"token": "b", "relevance": 1.4}),
                make_record(
                    OverrideKind.token_relevance, {"token": "c", "relevance": Decimal("0.6")}
                ),
            ],
            ScopeLayer.base,
        )
        assert ruleset.token_relevance == {"a": 3, "b": 1, "c": 1}
        assert len(ruleset.diagnostics) == 3
        assert "rounded" in caplog.text

    @pytest.mark.parametrize("bad", ["2", None, True, math.nan, math.inf, [1]])
    def test_wrong_typed_relevance_is_skipped(self, make_record, bad):
        ruleset = normalize(
            [make_record(OverrideKind.token_relevance, {"token": "x", "relevance": bad})],
            ScopeLayer.base,
        )
        assert ruleset.token_relevance == {}
        assert ruleset.diagnostics[0].key == "x"

    def test_later_record_wins_within_layer(self, make_record):
        ruleset = normalize(
            [
                make_record(OverrideKind.token_relevance, {"token": "x", "relevance": 1}),
                make_record(OverrideKind.token_relevance, {"token": "X", "relevance": 3}),
            ],
            ScopeLayer.market,
        )
        assert ruleset.token_relevance == {"x": 3}


class TestHookPatterns:
    def test_keywords_are_cleaned_and_deduplicated(self, make_record):
        ruleset = normalize(
            [
                make_record(
                    OverrideKind.hook_pattern,
                    {
                        "category": "Learning",
                        "keywords": ["Learn", " learn ", "", "Master", 5],
                        "weight": 1.3,
                    },
                )
            ],
            ScopeLayer.vertical,
        )
        pattern = ruleset.hook_patterns["learning"]
        assert pattern.keywords == ("learn", "master")
        assert pattern.weight == 1.3

    def test_category_without_keywords_is_dropped(self, make_record):
        ruleset = normalize(
            [
                make_record(
                    OverrideKind.hook_pattern,
                    {"category": "trust", "keywords": ["  ", ""], "weight": 1.0},
                )
            ],
            ScopeLayer.vertical,
        )
        assert ruleset.hook_patterns == {}
        assert ruleset.diagnostics[0].key == "trust"

    @pytest.mark.parametrize("raw, expected", [(5.0, 2.0), (0.1, 0.5), (1.1, 1.1)])
    def test_weight_is_clamped(self, make_record, raw, expected):
        ruleset = normalize(
            [
                make_record(
                    OverrideKind.hook_pattern,
                    {"category": "trust", "keywords": ["secure"], "weight": raw},
                )
            ],
            ScopeLayer.vertical,
        )
        assert ruleset.hook_patterns["trust"].weight == expected

    def test_missing_weight_defaults_to_one(self, make_record):
        ruleset = normalize(
            [make_record(OverrideKind.hook_pattern, {"category": "trust", "keywords": ["safe"]})],
            ScopeLayer.vertical,
        )
        assert ruleset.hook_patterns["trust"].weight == 1.0


class TestStopwords:
    def test_stopwords_are_cleaned_deduplicated_and_unioned(self, make_record):
        ruleset = normalize(
            [
                make_record(OverrideKind.stopword, {"stopwords": ["Der", "die", " DER ", ""]}),
                make_record(OverrideKind.stopword, {"stopwords": ["das"]}),
            ],
            ScopeLayer.market,
        )
        assert ruleset.stopwords == frozenset({"der", "die", "das"})

    def test_non_list_payload_is_skipped(self, make_record):
        ruleset = normalize(
            [make_record(OverrideKind.stopword, {"stopwords": "der die"})],
            ScopeLayer.market,
        )
        assert ruleset.stopwords == frozenset()
        assert len(ruleset.diagnostics) == 1


class TestKpiAndFormula:
    def test_kpi_weight_is_clamped(self, make_record):
        ruleset = normalize(
            [
                make_record(
                    OverrideKind.kpi_weight,
                    {"kpi_id": "title_char_usage", "weight_multiplier": 9},
                )
            ],
            ScopeLayer.vertical,
        )
        assert ruleset.kpi_weights == {"title_char_usage": 2.0}

    def test_unknown_kpi_id_is_kept_and_flagged(self, make_record):
        ruleset = normalize(
            [
                make_record(
                    OverrideKind.kpi_weight,
                    {"kpi_id": "future_kpi", "weight_multiplier": 1.2},
                )
            ],
            ScopeLayer.vertical,
        )
        assert ruleset.kpi_weights == {"future_kpi": 1.2}
        assert ruleset.diagnostics[0].severity == DiagnosticSeverity.info
        assert ruleset.diagnostics[0].key == "future_kpi"

    def test_formula_multiplier_and_components(self, make_record):
        ruleset = normalize(
            [
                make_record(
                    OverrideKind.formula,
                    {
                        "formula_id": "overall_metadata_score",
                        "multiplier": 0.2,
                        "component_weights": {"title_score": 1.5, "subtitle_score": "x"},
                    },
                )
            ],
            ScopeLayer.client,
        )
        override = ruleset.formula_overrides["overall_metadata_score"]
        assert override.multiplier == 0.5
        assert override.component_weights == {"title_score": 1.5}

    def test_component_only_formula_leaves_multiplier_unset(self, make_record):
        ruleset = normalize(
            [
                make_record(
                    OverrideKind.formula,
                    {
                        "formula_id": "overall_metadata_score",
                        "component_weights": {"title_score": 1.2},
                    },
                )
            ],
            ScopeLayer.vertical,
        )
        assert ruleset.formula_overrides["overall_metadata_score"].multiplier is None

    def test_empty_formula_is_dropped(self, make_record):
        ruleset = normalize(
            [make_record(OverrideKind.formula, {"formula_id": "title_element_score"})],
            ScopeLayer.vertical,
        )
        assert ruleset.formula_overrides == {}


class TestRecommendationTemplates:
    def test_template_requires_id_and_message(self, make_record):
        ruleset = normalize(
            [
                make_record(
                    OverrideKind.recommendation_template,
                    {"recommendation_id": "missing_hook", "message": "Add a hook."},
                ),
                make_record(
                    OverrideKind.recommendation_template,
                    {"recommendation_id": "high_noise_ratio", "message": "   "},
                ),
                make_record(OverrideKind.recommendation_template, {"message": "orphan"}),
            ],
            ScopeLayer.vertical,
        )
        assert ruleset.recommendation_templates == {"missing_hook": "Add a hook."}
        assert len(ruleset.diagnostics) == 2


class TestBatchBehaviour:
    def test_malformed_records_never_abort_the_batch(self, make_record):
        ruleset = normalize(
            [
                make_record(OverrideKind.token_relevance, "not a dict"),
                make_record(OverrideKind.token_relevance, {"relevance": 2}),
                make_record(OverrideKind.token_relevance, {"token": "ok", "relevance": 2}),
            ],
            ScopeLayer.vertical,
        )
        assert ruleset.token_relevance == {"ok": 2}
        assert len(ruleset.diagnostics) == 2

    def test_unknown_kind_is_ignored(self, make_record):
        ruleset = normalize(
            [make_record("intent_pattern", {"intent": "learn"})],
            ScopeLayer.vertical,
        )
        assert ruleset.is_empty
        assert ruleset.diagnostics == ()

    def test_mappings_are_accepted_as_records(self):
        ruleset = normalize(
            [
                {
                    "kind": "token_relevance",
                    "scope_layer": "vertical",
                    "scope_key": "finance",
                    "payload": {"token": "invest", "relevance": 3},
                }
            ],
            ScopeLayer.vertical,
        )
        assert ruleset.token_relevance == {"invest": 3}

    def test_mapping_without_kind_is_skipped(self):
        ruleset = normalize(
            [
                {"scope_layer": "base", "payload": {"token": "x", "relevance": 2}},
                {
                    "kind": "token_relevance",
                    "scope_layer": "base",
                    "payload": {"token": "y", "relevance": 2},
                },
            ],
            ScopeLayer.base,
        )
        assert ruleset.token_relevance == {"y": 2}
        assert len(ruleset.diagnostics) == 1
        assert ruleset.diagnostics[0].kind == "unknown"
        assert "kind" in ruleset.diagnostics[0].reason

    def test_mapping_with_non_integer_version_is_skipped(self):
        ruleset = normalize(
            [
                {
                    "override_id": "ovr-7",
                    "kind": "stopword",
                    "scope_layer": "market",
                    "scope_key": "de",
                    "payload": {"stopwords": ["der"]},
                    "version": "v2",
                },
                {
                    "kind": "stopword",
                    "scope_layer": "market",
                    "scope_key": "de",
                    "payload": {"stopwords": ["die"]},
                },
            ],
            ScopeLayer.market,
        )
        assert ruleset.stopwords == frozenset({"die"})
        assert ruleset.version == 1
        diagnostic = ruleset.diagnostics[0]
        assert diagnostic.kind == "stopword"
        assert diagnostic.key == "ovr-7"
        assert "version" in diagnostic.reason

    def test_version_is_highest_applied_record(self, make_record):
        ruleset = normalize(
            [
                make_record(OverrideKind.stopword, {"stopwords": ["a"]}, version=2),
                make_record(OverrideKind.stopword, {"stopwords": ["b"]}, version=5),
                make_record(OverrideKind.stopword, {"stopwords": 3}, version=9),
            ],
            ScopeLayer.market,
        )
        assert ruleset.version == 5

    def test_empty_input_gives_empty_layer(self):
        ruleset = normalize([], ScopeLayer.client)
        assert ruleset.is_empty
        assert ruleset.version is None
        assert ruleset.origin == RulesetOrigin.database

    @pytest.mark.parametrize("bad", [None, "records", {"kind": "stopword"}, 42])
    def test_non_iterable_input_is_a_type_error(self, bad):
        with pytest.raises(TypeError):
            normalize(bad, ScopeLayer.base)

    def test_wrong_item_type_is_a_type_error(self):
        with pytest.raises(TypeError):
            normalize([object()], ScopeLayer.base)


class TestEmptyRuleset:
    def test_empty_ruleset_is_code_origin_by_default(self):
        ruleset = empty_ruleset()
        assert ruleset.layer == ScopeLayer.base
        assert ruleset.origin == RulesetOrigin.code
        assert ruleset.is_empty
