"""
Admin API.

Requires the "admin" role.
- GET  /api/admin/token-costs
- PUT  /api/admin/token-costs/{feature_id}
- POST /api/admin/tokens/reset
"""
from datetime import datetime
from typing import Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field, field_validator

from creatorai.core.auth import AuthenticatedUser, require_admin
from creatorai.features.policy.table import list_token_costs, set_token_cost
from creatorai.features.tokens.ledger import TokenLedger, get_ledger
from creatorai.workers.token_reset import run_token_reset_job

router = APIRouter(prefix="/api/admin", tags=["admin"])


class TokenCostIn(BaseModel):
    token_cost: int = Field(..., ge=0)
    description: Optional[str] = None

    @field_validator("description")
    @classmethod
    def _trim(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return value.strip() or None


class ResetRequest(BaseModel):
    dry_run: bool = False
    now: Optional[datetime] = None


@router.get("/token-costs")
def get_token_costs(admin: AuthenticatedUser = Depends(require_admin)) -> Dict:
    return {"costs": [cost.model_dump(mode="json") for cost in list_token_costs()]}


@router.put("/token-costs/{feature_id}")
def update_token_cost(
    feature_id: str,
    body: TokenCostIn,
    admin: AuthenticatedUser = Depends(require_admin),
) -> Dict:
    return set_token_cost(feature_id, body.token_cost, body.description).model_dump(mode="json")


@router.post("/tokens/reset")
def reset_tokens(
    body: ResetRequest,
    admin: AuthenticatedUser = Depends(require_admin),
    ledger: TokenLedger = Depends(get_ledger),
) -> Dict:
    """Run the monthly reset on demand (same code path as the scheduled job)."""
    return run_token_reset_job(now=body.now, dry_run=body.dry_run, ledger=ledger)
