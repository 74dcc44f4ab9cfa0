"""
Feature catalog API.

Read-only views of the entitlement matrix for the caller's plan.
"""
from typing import Dict

from fastapi import APIRouter, Depends

from creatorai.core.auth import AuthenticatedUser, get_current_user
from creatorai.features.entitlements.service import describe_plan_access, evaluate, upgrade_message
from creatorai.features.policy.table import FEATURE_NAMES, load_token_costs
from creatorai.features.tokens.ledger import TokenLedger, get_ledger

router = APIRouter(prefix="/api/features", tags=["features"])


@router.get("")
def list_features(
    user: AuthenticatedUser = Depends(get_current_user),
    ledger: TokenLedger = Depends(get_ledger),
) -> Dict:
    plan = ledger.get_subscription(user.user_id).plan
    return {"plan": plan.value, "features": describe_plan_access(plan, load_token_costs())}


@router.get("/{feature_id}")
def get_feature(
    feature_id: str,
    user: AuthenticatedUser = Depends(get_current_user),
    ledger: TokenLedger = Depends(get_ledger),
) -> Dict:
    """Entitlement for one feature; unknown ids answer 400 unknown_feature."""
    plan = ledger.get_subscription(user.user_id).plan
    ent = evaluate(feature_id, plan, load_token_costs())
    return {
        "featureId": ent.feature_id.value,
        "name": FEATURE_NAMES[ent.feature_id],
        "plan": ent.plan.value,
        "accessTier": ent.access_tier.value,
        "requiredPlan": ent.required_plan_for_full.value,
        "tokenCost": ent.token_cost,
        "upgradeMessage": upgrade_message(ent),
    }
