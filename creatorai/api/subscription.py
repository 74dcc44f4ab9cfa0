"""
Subscription API.

- GET /api/subscription: Current plan, balance and the feature grid
"""
from typing import Dict

from fastapi import APIRouter, Depends

from creatorai.core.auth import AuthenticatedUser, get_current_user
from creatorai.features.entitlements.service import describe_plan_access, show_watermark
from creatorai.features.policy.table import load_token_costs
from creatorai.features.tokens.ledger import TokenLedger, get_ledger

router = APIRouter(prefix="/api/subscription", tags=["subscription"])


@router.get("")
def get_subscription(
    user: AuthenticatedUser = Depends(get_current_user),
    ledger: TokenLedger = Depends(get_ledger),
) -> Dict:
    snapshot = ledger.get_subscription(user.user_id)
    return {
        **snapshot.to_public_dict(),
        "watermark": show_watermark(snapshot.plan),
        "features": describe_plan_access(snapshot.plan, load_token_costs()),
    }
