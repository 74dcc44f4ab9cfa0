"""
creatorai/features/entitlements/service.py

Entitlement evaluation.

Handles:
- evaluate(): pure (feature, plan, cost table) -> Entitlement
- Upgrade copy for denied/limited features
- Brand profile count limit (secondary per-plan rule)
"""

import logging
from typing import Dict, List, Mapping, Optional

from creatorai.models.feature import AccessTier, Entitlement, FeatureId
from creatorai.models.plan import PLAN_ORDER, Plan, brand_profile_limit_for
from creatorai.features.policy.table import (
    DEFAULT_TOKEN_COSTS,
    FEATURE_MATRIX,
    FEATURE_NAMES,
    parse_feature_id,
)


logger = logging.getLogger(__name__)

# Used when no plan grants FULL access to a feature.
UNREACHABLE_FEATURE_PLAN = Plan.PRO


def required_plan_for_full(
    feature_id: FeatureId,
    matrix: Optional[Mapping[FeatureId, Mapping[Plan, AccessTier]]] = None,
) -> Plan:
    """Lowest-ranked plan whose matrix entry is FULL."""
    tiers = (matrix or FEATURE_MATRIX).get(feature_id, {})
    for plan in PLAN_ORDER:
        if tiers.get(plan, AccessTier.DENIED) is AccessTier.FULL:
            return plan
    logger.warning(
        "[entitlements] no plan grants full access, defaulting to highest plan",
        extra={"feature": feature_id.value, "plan": UNREACHABLE_FEATURE_PLAN.value},
    )
    return UNREACHABLE_FEATURE_PLAN


def evaluate(
    feature_id,
    plan,
    costs: Optional[Mapping[FeatureId, int]] = None,
    matrix: Optional[Mapping[FeatureId, Mapping[Plan, AccessTier]]] = None,
) -> Entitlement:
    """
    Resolve access tier and cost of a feature under a plan.

    Args:
        feature_id: Feature id (enum or raw string)
        plan: Current plan
        costs: Effective token-cost table (defaults to static costs)
        matrix: Access matrix override (defaults to FEATURE_MATRIX)

    Returns:
        Entitlement

    Raises:
        ConfigurationError: If the feature id is unknown
    """
    feature = parse_feature_id(feature_id)
    current_plan = Plan(plan)
    tiers = (matrix or FEATURE_MATRIX).get(feature, {})
    cost_table = costs if costs is not None else DEFAULT_TOKEN_COSTS

    return Entitlement(
        feature_id=feature,
        plan=current_plan,
        access_tier=tiers.get(current_plan, AccessTier.DENIED),
        required_plan_for_full=required_plan_for_full(feature, matrix),
        token_cost=cost_table.get(feature, DEFAULT_TOKEN_COSTS[feature]),
    )


def upgrade_message(entitlement: Entitlement) -> Optional[str]:
    target = entitlement.required_plan_for_full.value
    if entitlement.access_tier is AccessTier.DENIED:
        return f"Upgrade to {target} to unlock this feature"
    if entitlement.access_tier is AccessTier.LIMITED:
        return f"Upgrade to {target} for unlimited access"
    return None


def show_watermark(plan) -> bool:
    """Generated images carry a watermark on the free tier."""
    return Plan(plan) is Plan.FREE


def describe_plan_access(plan, costs: Optional[Mapping[FeatureId, int]] = None) -> List[Dict]:
    """Feature grid for the dashboard: every feature with its entitlement under `plan`."""
    grid = []
    for feature in FeatureId:
        ent = evaluate(feature, plan, costs)
        grid.append(
            {
                "featureId": feature.value,
                "name": FEATURE_NAMES[feature],
                "accessTier": ent.access_tier.value,
                "requiredPlan": ent.required_plan_for_full.value,
                "tokenCost": ent.token_cost,
                "upgradeMessage": upgrade_message(ent),
            }
        )
    return grid


def can_create_brand_profile(plan, existing_count: int) -> bool:
    return existing_count < brand_profile_limit_for(Plan(plan))
