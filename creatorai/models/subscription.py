"""
creatorai/models/subscription.py

Read model for a user's subscription row (plan plus token ledger).
"""

from datetime import datetime, timezone
from typing import Optional
from pydantic import BaseModel, ConfigDict, field_validator

from creatorai.models.plan import Plan


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; everything stored is UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class SubscriptionSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: str
    plan: Plan
    tokens_remaining: int
    tokens_monthly_limit: int
    plan_expiry: Optional[datetime] = None
    billing_customer_ref: Optional[str] = None
    billing_subscription_ref: Optional[str] = None
    tokens_reset_at: Optional[datetime] = None

    @field_validator("plan_expiry", "tokens_reset_at")
    @classmethod
    def _utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value)

    @property
    def subscribed(self) -> bool:
        return self.plan is not Plan.FREE

    def to_public_dict(self) -> dict:
        return {
            "plan": self.plan.value,
            "subscribed": self.subscribed,
            "tokensRemaining": self.tokens_remaining,
            "tokensMonthlyLimit": self.tokens_monthly_limit,
            "planExpiry": self.plan_expiry.isoformat() if self.plan_expiry else None,
            "tokensResetAt": self.tokens_reset_at.isoformat() if self.tokens_reset_at else None,
        }
