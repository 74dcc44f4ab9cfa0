"""
creatorai/features/policy/table.py

Feature policy table.

The access matrix is static configuration. Token costs start from static
defaults and can be overridden at runtime through `feature_token_costs`
(admin panel); callers load the effective cost table once per request and
pass it to the evaluator.
"""

import logging
from typing import Dict, List, Optional

from sqlalchemy import select, insert, update
from sqlalchemy.exc import IntegrityError

from creatorai.core.database import get_db_session, feature_token_costs
from creatorai.core.errors import ConfigurationError, ValidationError
from creatorai.models.feature import AccessTier, FeatureCost, FeatureId
from creatorai.models.plan import Plan


logger = logging.getLogger(__name__)

FULL = AccessTier.FULL
LIMITED = AccessTier.LIMITED
DENIED = AccessTier.DENIED

FEATURE_MATRIX: Dict[FeatureId, Dict[Plan, AccessTier]] = {
    FeatureId.IDEA_GENERATION: {Plan.FREE: FULL, Plan.CREATOR: FULL, Plan.PRO: FULL},
    FeatureId.HOOK_GENERATOR: {Plan.FREE: LIMITED, Plan.CREATOR: FULL, Plan.PRO: FULL},
    FeatureId.SHORT_SCRIPTS: {Plan.FREE: LIMITED, Plan.CREATOR: FULL, Plan.PRO: FULL},
    FeatureId.LONG_SCRIPTS: {Plan.FREE: DENIED, Plan.CREATOR: FULL, Plan.PRO: FULL},
    FeatureId.THUMBNAIL_PROMPTS: {Plan.FREE: DENIED, Plan.CREATOR: FULL, Plan.PRO: FULL},
    FeatureId.IMAGE_GENERATION: {Plan.FREE: FULL, Plan.CREATOR: FULL, Plan.PRO: FULL},
    FeatureId.ADVANCED_VIDEO_SCRIPTING: {Plan.FREE: DENIED, Plan.CREATOR: DENIED, Plan.PRO: FULL},
    FeatureId.CONTENT_CALENDAR: {Plan.FREE: DENIED, Plan.CREATOR: DENIED, Plan.PRO: FULL},
    FeatureId.BATCH_GENERATION: {Plan.FREE: DENIED, Plan.CREATOR: DENIED, Plan.PRO: FULL},
    FeatureId.ADVANCED_PROMPT_CONTROLS: {Plan.FREE: DENIED, Plan.CREATOR: DENIED, Plan.PRO: FULL},
    FeatureId.MULTI_LANGUAGE: {Plan.FREE: DENIED, Plan.CREATOR: DENIED, Plan.PRO: FULL},
    FeatureId.PRIORITY_IMAGE_GENERATION: {Plan.FREE: DENIED, Plan.CREATOR: DENIED, Plan.PRO: FULL},
    FeatureId.BRAND_PROFILE: {Plan.FREE: DENIED, Plan.CREATOR: FULL, Plan.PRO: FULL},
    FeatureId.AI_CHAT: {Plan.FREE: LIMITED, Plan.CREATOR: FULL, Plan.PRO: FULL},
    FeatureId.NICHE_ANALYZER: {Plan.FREE: LIMITED, Plan.CREATOR: FULL, Plan.PRO: FULL},
    FeatureId.CONTENT_ANALYTICS: {Plan.FREE: LIMITED, Plan.CREATOR: FULL, Plan.PRO: FULL},
}

DEFAULT_TOKEN_COSTS: Dict[FeatureId, int] = {
    FeatureId.IDEA_GENERATION: 1,
    FeatureId.HOOK_GENERATOR: 1,
    FeatureId.SHORT_SCRIPTS: 2,
    FeatureId.LONG_SCRIPTS: 4,
    FeatureId.THUMBNAIL_PROMPTS: 2,
    FeatureId.IMAGE_GENERATION: 5,
    FeatureId.ADVANCED_VIDEO_SCRIPTING: 4,
    FeatureId.CONTENT_CALENDAR: 0,
    FeatureId.BATCH_GENERATION: 10,
    FeatureId.ADVANCED_PROMPT_CONTROLS: 0,
    FeatureId.MULTI_LANGUAGE: 2,
    FeatureId.PRIORITY_IMAGE_GENERATION: 5,
    FeatureId.BRAND_PROFILE: 2,
    FeatureId.AI_CHAT: 1,
    FeatureId.NICHE_ANALYZER: 2,
    FeatureId.CONTENT_ANALYTICS: 1,
}

FEATURE_NAMES: Dict[FeatureId, str] = {
    FeatureId.IDEA_GENERATION: "Video Idea Generation",
    FeatureId.HOOK_GENERATOR: "Hook Generator",
    FeatureId.SHORT_SCRIPTS: "Short-form Scripts",
    FeatureId.LONG_SCRIPTS: "Long-form Scripts",
    FeatureId.THUMBNAIL_PROMPTS: "Thumbnail Prompts",
    FeatureId.IMAGE_GENERATION: "Thumbnail Image Generation",
    FeatureId.ADVANCED_VIDEO_SCRIPTING: "Advanced Video Scripting",
    FeatureId.CONTENT_CALENDAR: "Content Calendar",
    FeatureId.BATCH_GENERATION: "Batch Generation",
    FeatureId.ADVANCED_PROMPT_CONTROLS: "Advanced Prompt Controls",
    FeatureId.MULTI_LANGUAGE: "Multi-language Output",
    FeatureId.PRIORITY_IMAGE_GENERATION: "Priority Image Generation",
    FeatureId.BRAND_PROFILE: "Branding Kit",
    FeatureId.AI_CHAT: "AI Chat Assistant",
    FeatureId.NICHE_ANALYZER: "Niche Analyzer",
    FeatureId.CONTENT_ANALYTICS: "Content Analytics",
}


def parse_feature_id(feature_id) -> FeatureId:
    """Resolve a raw feature id, raising ConfigurationError for unknown ids."""
    if isinstance(feature_id, FeatureId):
        return feature_id
    try:
        return FeatureId(feature_id)
    except ValueError:
        logger.error(
            "[policy] unknown feature id",
            extra={"feature": str(feature_id), "error_code": ConfigurationError.code},
        )
        raise ConfigurationError(f"Unknown feature: {feature_id}")


def load_token_costs() -> Dict[FeatureId, int]:
    """Effective cost table: static defaults overlaid with admin overrides."""
    costs = dict(DEFAULT_TOKEN_COSTS)
    with get_db_session() as session:
        rows = session.execute(
            select(feature_token_costs.c.feature_id, feature_token_costs.c.token_cost)
        ).fetchall()
    for row in rows:
        try:
            costs[FeatureId(row.feature_id)] = int(row.token_cost)
        except ValueError:
            # Stale row for a retired feature id
            logger.warning("[policy] ignoring cost override for unknown feature", extra={"feature": row.feature_id})
    return costs


def list_token_costs() -> List[FeatureCost]:
    with get_db_session() as session:
        rows = session.execute(select(feature_token_costs)).fetchall()
    overrides = {row.feature_id: row for row in rows}

    result = []
    for feature in FeatureId:
        row = overrides.get(feature.value)
        result.append(
            FeatureCost(
                feature_id=feature,
                feature_name=row.feature_name if row else FEATURE_NAMES[feature],
                description=row.description if row else None,
                token_cost=int(row.token_cost) if row else DEFAULT_TOKEN_COSTS[feature],
                is_default=row is None,
            )
        )
    return result


def set_token_cost(feature_id, token_cost: int, description: Optional[str] = None) -> FeatureCost:
    """Admin operation: override a feature's token cost (upsert)."""
    feature = parse_feature_id(feature_id)
    if token_cost < 0:
        raise ValidationError("token_cost must be >= 0")

    with get_db_session() as session:
        result = session.execute(
            update(feature_token_costs)
            .where(feature_token_costs.c.feature_id == feature.value)
            .values(token_cost=token_cost, description=description)
        )
        if result.rowcount == 0:
            session.execute(
                insert(feature_token_costs).values(
                    feature_id=feature.value,
                    feature_name=FEATURE_NAMES[feature],
                    description=description,
                    token_cost=token_cost,
                )
            )

    logger.info(
        "[policy] token cost updated",
        extra={"feature": feature.value, "amount": token_cost},
    )
    return FeatureCost(
        feature_id=feature,
        feature_name=FEATURE_NAMES[feature],
        description=description,
        token_cost=token_cost,
        is_default=False,
    )


def seed_token_costs() -> int:
    """
    Insert default cost rows for features without one. Idempotent.

    Returns:
        Number of rows inserted
    """
    inserted = 0
    with get_db_session() as session:
        existing = {
            row.feature_id
            for row in session.execute(select(feature_token_costs.c.feature_id)).fetchall()
        }
        for feature in FeatureId:
            if feature.value in existing:
                continue
            try:
                with session.begin_nested():
                    session.execute(
                        insert(feature_token_costs).values(
                            feature_id=feature.value,
                            feature_name=FEATURE_NAMES[feature],
                            token_cost=DEFAULT_TOKEN_COSTS[feature],
                        )
                    )
                inserted += 1
            except IntegrityError:
                # Concurrent seeder got there first
                continue
    return inserted
