"""
creatorai/models/plan.py

Subscription plans and the quantities derived from them.

A plan determines two things: how far the feature matrix reaches and the
monthly token budget. Brand profile counts are a secondary per-plan limit.
"""

from enum import Enum


class Plan(str, Enum):
    FREE = "FREE"
    CREATOR = "CREATOR"
    PRO = "PRO"

    @property
    def rank(self) -> int:
        return PLAN_ORDER.index(self)

    def is_upgrade_from(self, previous: "Plan") -> bool:
        """True only for a strictly higher-value plan (FREE→CREATOR, FREE→PRO, CREATOR→PRO)."""
        return self.rank > previous.rank


PLAN_ORDER = (Plan.FREE, Plan.CREATOR, Plan.PRO)

PLAN_TOKEN_LIMITS = {
    Plan.FREE: 20,
    Plan.CREATOR: 500,
    Plan.PRO: 2000,
}

BRAND_PROFILE_LIMITS = {
    Plan.FREE: 0,
    Plan.CREATOR: 1,
    Plan.PRO: 10,
}


def token_limit_for(plan: Plan) -> int:
    return PLAN_TOKEN_LIMITS[Plan(plan)]


def brand_profile_limit_for(plan: Plan) -> int:
    return BRAND_PROFILE_LIMITS[Plan(plan)]
