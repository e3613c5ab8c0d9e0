"""Sample override seeder for local development.

Loads a handful of vertical and market overrides so the resolve and
audit endpoints return something other than the code base ruleset.
Re-running replaces every previously seeded row.
"""

import asyncio
from typing import Any, Dict, List

from sqlalchemy import func, select, text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core.config import settings
from app.models import AsoRulesetOverride
from app.schemas.common import OverrideKind, ScopeLayer
from app.schemas.override import RawOverrideRecord, RulesetScope
from app.services.override_normalizer import normalize

SEED_NOTE = "seed: sample data"


def _override(
    scope: RulesetScope, kind: OverrideKind, payload: Dict[str, Any]
) -> Dict[str, Any]:
    return {
        "scope": scope,
        "kind": kind,
        "payload": payload,
    }


LANGUAGE_LEARNING = RulesetScope(layer=ScopeLayer.vertical, vertical="language_learning")
REWARDS = RulesetScope(layer=ScopeLayer.vertical, vertical="rewards")
FINANCE = RulesetScope(layer=ScopeLayer.vertical, vertical="finance")
MARKET_DE = RulesetScope(layer=ScopeLayer.market, market="de")
MARKET_UK = RulesetScope(layer=ScopeLayer.market, market="uk")

SAMPLE_OVERRIDES: List[Dict[str, Any]] = [
    # language learning vertical
    _override(LANGUAGE_LEARNING, OverrideKind.token_relevance, {"token": "fluent", "relevance": 3}),
    _override(LANGUAGE_LEARNING, OverrideKind.token_relevance, {"token": "vocabulary", "relevance": 3}),
    _override(
        LANGUAGE_LEARNING,
        OverrideKind.hook_pattern,
        {"category": "learning_educational", "keywords": ["learn", "master", "fluent"], "weight": 1.3},
    ),
    _override(LANGUAGE_LEARNING, OverrideKind.kpi_weight, {"kpi_id": "title_high_value_keyword_count", "weight_multiplier": 1.3}),
    _override(
        LANGUAGE_LEARNING,
        OverrideKind.recommendation_template,
        {
            "recommendation_id": "missing_high_value_keyword",
            "message": "Your {element} should name the language or skill people search for.",
        },
    ),
    # rewards vertical
    _override(REWARDS, OverrideKind.token_relevance, {"token": "cashback", "relevance": 3}),
    _override(
        REWARDS,
        OverrideKind.hook_pattern,
        {"category": "earning_rewards", "keywords": ["earn", "get paid", "cash back"], "weight": 1.4},
    ),
    _override(
        REWARDS,
        OverrideKind.formula,
        {"formula_id": "overall_metadata_score", "component_weights": {"subtitle_score": 1.2}},
    ),
    # finance vertical
    _override(FINANCE, OverrideKind.token_relevance, {"token": "invest", "relevance": 3}),
    _override(
        FINANCE,
        OverrideKind.hook_pattern,
        {"category": "trust_safety", "keywords": ["secure", "fdic", "encrypted"], "weight": 1.5},
    ),
    # markets
    _override(MARKET_DE, OverrideKind.stopword, {"stopwords": ["der", "die", "das", "und", "mit"]}),
    _override(MARKET_UK, OverrideKind.stopword, {"stopwords": ["whilst", "amongst"]}),
]


async def seed():
    engine = create_async_engine(settings.DATABASE_URL, echo=False)
    session_maker = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )

    async with session_maker() as session:
        print("Seeding sample ruleset overrides")

        await session.execute(
            text("DELETE FROM aso_ruleset_overrides WHERE notes = :note"),
            {"note": SEED_NOTE},
        )
        await session.commit()
        print("Cleared previously seeded overrides")

        for item in SAMPLE_OVERRIDES:
            scope: RulesetScope = item["scope"]
            record = RawOverrideRecord(
                kind=item["kind"].value,
                scope_layer=scope.layer,
                scope_key=scope.scope_key,
                payload=item["payload"],
            )
            # Seed data goes through the same validation as admin writes
            if normalize([record], scope.layer).is_empty:
                raise ValueError(f"Sample override rejected: {item['payload']}")
            session.add(
                AsoRulesetOverride(
                    kind=item["kind"].value,
                    scope_layer=scope.layer.value,
                    vertical=scope.vertical,
                    market=scope.market,
                    organization_id=scope.organization_id,
                    app_id=scope.app_id,
                    payload=item["payload"],
                    notes=SEED_NOTE,
                )
            )
        await session.commit()

        count = (
            await session.execute(
                select(func.count()).select_from(AsoRulesetOverride)
            )
        ).scalar()
        print("\nValidation:")
        print(f"  Seeded overrides: {len(SAMPLE_OVERRIDES)}")
        print(f"  Total overrides: {count}")
        print("Seeding complete")

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(seed())
