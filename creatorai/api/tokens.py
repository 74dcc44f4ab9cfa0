"""
Token API Endpoints

- GET /api/tokens/history: Usage log, newest first
- GET /api/tokens/summary: Tokens spent per feature
"""
from datetime import datetime
from typing import Dict, Optional

from fastapi import APIRouter, Depends, Query

from creatorai.core.auth import AuthenticatedUser, get_current_user
from creatorai.features.tokens.ledger import TokenLedger, get_ledger
from creatorai.features.usage.service import list_usage, summarize_usage

router = APIRouter(prefix="/api/tokens", tags=["tokens"])


@router.get("/history")
def get_history(
    limit: int = Query(50, ge=1, le=200),
    feature: Optional[str] = Query(None),
    user: AuthenticatedUser = Depends(get_current_user),
) -> Dict:
    entries = list_usage(user.user_id, limit=limit, feature=feature)
    return {"entries": [entry.to_public_dict() for entry in entries]}


@router.get("/summary")
def get_summary(
    since: Optional[datetime] = Query(None),
    user: AuthenticatedUser = Depends(get_current_user),
    ledger: TokenLedger = Depends(get_ledger),
) -> Dict:
    snapshot = ledger.get_subscription(user.user_id)
    return {
        "tokensRemaining": snapshot.tokens_remaining,
        "tokensMonthlyLimit": snapshot.tokens_monthly_limit,
        **summarize_usage(user.user_id, since=since),
    }
