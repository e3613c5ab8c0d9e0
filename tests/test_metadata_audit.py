import pytest

from app.schemas.common import MetadataElement, OverrideKind, RulesetSourceTag, ScopeLayer
from app.schemas.ruleset import AppMetadata, FormulaOverride, NormalizedRuleSet
from app.services.metadata_audit import MetadataAuditService
from app.services.ruleset_loader import RulesetLoader
from app.services.ruleset_merger import code_base_ruleset, merge

APP = AppMetadata(
    app_id="app-1",
    category="Education",
    title="Learn Spanish",
    subtitle="Vocabulary lessons",
    description="Learn Spanish with short vocabulary lessons. Easy and fun.",
)


def _ruleset(**fields):
    return merge(
        vertical=NormalizedRuleSet(layer=ScopeLayer.vertical, **fields),
        vertical_id="language_learning",
        market_id="us",
    )


@pytest.fixture
def service(fake_repo, ruleset_cache):
    return MetadataAuditService(RulesetLoader(fake_repo, ruleset_cache))


class TestScore:
    def test_title_kpis_and_score(self, service):
        result = service.score(APP)
        title = result.elements[MetadataElement.title]

        kpis = {kpi.kpi_id: kpi.value for kpi in title.kpis}
        assert kpis == {
            "title_char_usage": 43.33,
            "title_high_value_keyword_count": 100.0,
            "title_noise_ratio": 100.0,
            "title_word_count": 100.0,
        }
        assert title.score == 85.83
        assert title.high_value_keywords == ["learn", "spanish"]
        assert title.formula_multiplier == 1.0

    def test_subtitle_counts_only_new_keywords(self, service):
        result = service.score(
            AppMetadata(title="Learn Spanish", subtitle="Learn vocabulary")
        )
        assert result.elements[MetadataElement.subtitle].high_value_keywords == ["vocabulary"]

    def test_description_hooks(self, service):
        description = service.score(APP).elements[MetadataElement.description]
        assert set(description.matched_hooks) == {"learning_educational", "ease_of_use"}

    def test_without_ruleset_matches_code_base(self, service):
        assert service.score(APP) == service.score(APP, code_base_ruleset())

    def test_scores_are_bounded(self, service):
        result = service.score(APP)
        assert 0 <= result.overall_score <= 100
        for element in result.elements.values():
            assert 0 <= element.score <= 100
            assert sum(kpi.weight for kpi in element.kpis) == pytest.approx(1.0)

    def test_empty_metadata(self, service):
        result = service.score(AppMetadata())
        assert result.overall_score == 0
        ids = [(r.recommendation_id, r.element) for r in result.recommendations]
        assert ("missing_high_value_keyword", MetadataElement.title) in ids
        assert ("missing_hook", MetadataElement.description) in ids
        assert not any(r == "low_keyword_coverage" for r, _ in ids)


class TestOverridesShapeScores:
    def test_formula_multiplier_scales_element(self, service):
        plain = service.score(APP).elements[MetadataElement.title].score
        boosted = service.score(
            APP,
            _ruleset(formula_overrides={"title_element_score": FormulaOverride(multiplier=0.5)}),
        ).elements[MetadataElement.title]
        assert boosted.formula_multiplier == 0.5
        # Both scores are rounded once, so they agree within 0.0075
        assert boosted.score == pytest.approx(plain * 0.5, abs=0.01)

    def test_token_override_changes_high_value_keywords(self, service):
        result = service.score(APP, _ruleset(token_relevance={"spanish": 0}))
        title = result.elements[MetadataElement.title]
        assert title.high_value_keywords == ["learn"]

    def test_component_weights_move_overall_score(self, service):
        app = AppMetadata(title="Learn Spanish", subtitle="best top")
        plain = service.score(app).overall_score
        subtitle_heavy = service.score(
            app,
            _ruleset(
                formula_overrides={
                    "overall_metadata_score": FormulaOverride(
                        component_weights={"subtitle_score": 2.0}
                    )
                }
            ),
        ).overall_score
        assert subtitle_heavy < plain

    def test_recommendation_template_is_used(self, service):
        result = service.score(
            AppMetadata(title="Learn Spanish"),
            _ruleset(
                recommendation_templates={
                    "underused_characters": "Only {used}/{limit} used in the {element}."
                }
            ),
        )
        messages = {
            (r.recommendation_id, r.element): r.message for r in result.recommendations
        }
        assert messages[("underused_characters", MetadataElement.title)] == (
            "Only 13/30 used in the title."
        )

    def test_default_message_is_filled(self, service):
        result = service.score(AppMetadata(title="Learn Spanish"))
        messages = {
            (r.recommendation_id, r.element): r.message for r in result.recommendations
        }
        assert messages[("underused_characters", MetadataElement.title)].startswith(
            "Your title uses 13 of 30 characters."
        )


class TestAudit:
    @pytest.mark.asyncio
    async def test_audit_uses_resolved_ruleset(self, service, fake_repo):
        fake_repo.add(
            ScopeLayer.vertical,
            "language_learning",
            OverrideKind.formula,
            {"formula_id": "title_element_score", "multiplier": 0.5},
            version=3,
        )

        result = await service.audit(APP)

        assert result.vertical_id == "language_learning"
        assert result.vertical_confidence == 1.0
        assert result.market_id == "us"
        assert result.ruleset_source == RulesetSourceTag.hybrid
        assert result.versions.vertical_version == 3
        assert result.elements[MetadataElement.title].formula_multiplier == 0.5
        assert result.leak_warnings == ()

    @pytest.mark.asyncio
    async def test_audit_survives_store_failure(self, service, fake_repo):
        fake_repo.fail = True
        result = await service.audit(APP)
        assert result.ruleset_source == RulesetSourceTag.code
        assert result.elements[MetadataElement.title].score == 85.83
