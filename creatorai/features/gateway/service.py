"""
creatorai/features/gateway/service.py

Billable action gateway.

Every AI endpoint runs through the same sequence once the caller is
authenticated:

    ENTITLEMENT_CHECKED -> TOKENS_RESERVED -> UPSTREAM_INVOKED -> COMPLETED | UPSTREAM_FAILED

- Unknown features and DENIED plans are rejected before the ledger is touched.
- The deduction is one atomic conditional update; the usage entry is written
  right after it commits so a dropped client still leaves an audit trail.
- Upstream failures keep the tokens spent unless UPSTREAM_FAILURE_POLICY is
  "refund", in which case provider-side failures are credited back.
"""

import json
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, Mapping, Optional, Tuple

from creatorai.core.config import settings
from creatorai.core.errors import AccessDeniedError, InsufficientTokensError, UpstreamFailure
from creatorai.core.logging import log_event
from creatorai.features.entitlements.service import evaluate, upgrade_message
from creatorai.features.policy.table import load_token_costs, parse_feature_id
from creatorai.features.tokens.ledger import Deducted, TokenLedger
from creatorai.features.usage.service import UsageRecorder
from creatorai.models.feature import AccessTier, Entitlement, FeatureId
from creatorai.models.plan import Plan


REFUND_ACTION = "refund"


@dataclass(frozen=True)
class ActionContext:
    user_id: str
    plan: Plan
    entitlement: Entitlement

    @property
    def feature_id(self) -> FeatureId:
        return self.entitlement.feature_id

    @property
    def limited(self) -> bool:
        return self.entitlement.access_tier is AccessTier.LIMITED


@dataclass(frozen=True)
class BillableActionResult:
    result: Any
    tokens_used: int
    tokens_remaining: int
    access_tier: AccessTier

    def to_response(self) -> Dict[str, Any]:
        return {
            "success": True,
            "result": self.result,
            "tokensUsed": self.tokens_used,
            "tokensRemaining": self.tokens_remaining,
            "accessTier": self.access_tier.value,
        }


def _sse(payload: Dict[str, Any]) -> str:
    return f"data: {json.dumps(payload)}\n\n"


class BillableActionGateway:
    def __init__(
        self,
        ledger: TokenLedger,
        usage: Optional[UsageRecorder] = None,
        failure_policy: Optional[str] = None,
        cost_loader: Callable[[], Mapping[FeatureId, int]] = load_token_costs,
    ):
        self.ledger = ledger
        self.usage = usage or UsageRecorder()
        self.failure_policy = failure_policy or settings.UPSTREAM_FAILURE_POLICY
        self._cost_loader = cost_loader

    def authorize(self, user_id: str, feature_id) -> ActionContext:
        """Resolve the entitlement; DENIED never reaches the ledger."""
        feature = parse_feature_id(feature_id)
        subscription = self.ledger.get_subscription(user_id)
        entitlement = evaluate(feature, subscription.plan, self._cost_loader())

        if entitlement.access_tier is AccessTier.DENIED:
            log_event(
                "warning",
                "[gateway] access denied",
                user_id=user_id,
                feature=feature.value,
                event_type="gateway.denied",
                error_code=AccessDeniedError.code,
                extra={"plan": subscription.plan.value},
            )
            raise AccessDeniedError(
                upgrade_message(entitlement),
                details={"feature": feature.value, "requiredPlan": entitlement.required_plan_for_full.value},
            )
        return ActionContext(user_id=user_id, plan=subscription.plan, entitlement=entitlement)

    def reserve(self, ctx: ActionContext, action: Optional[str] = None, metadata: Optional[Dict[str, Any]] = None) -> Deducted:
        """Spend the feature's cost and append the usage entry."""
        cost = ctx.entitlement.token_cost
        outcome = self.ledger.try_deduct(ctx.user_id, cost)
        if not outcome.ok:
            raise InsufficientTokensError(outcome.required, outcome.available)

        if cost > 0:
            self.usage.record(
                ctx.user_id,
                action or ctx.feature_id.value,
                ctx.feature_id.value,
                cost,
                {**(metadata or {}), "accessTier": ctx.entitlement.access_tier.value},
            )
        return outcome

    def execute(
        self,
        user_id: str,
        feature_id,
        invoke: Callable[[ActionContext], Any],
        *,
        action: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        precheck: Optional[Callable[[ActionContext], None]] = None,
    ) -> BillableActionResult:
        """
        Run one billable action.

        Args:
            invoke: Performs the upstream call; receives the ActionContext
            precheck: Extra entitlement rule evaluated before any deduction

        Raises:
            ConfigurationError: Unknown feature
            AccessDeniedError: Plan does not reach the feature
            InsufficientTokensError: Balance cannot cover the cost
            UpstreamFailure: Provider failed after the deduction
        """
        ctx = self.authorize(user_id, feature_id)
        if precheck is not None:
            precheck(ctx)
        deducted = self.reserve(ctx, action, metadata)

        try:
            result = invoke(ctx)
        except UpstreamFailure as exc:
            self._handle_upstream_failure(ctx, deducted, exc)
            raise

        return BillableActionResult(
            result=result,
            tokens_used=deducted.amount,
            tokens_remaining=deducted.new_balance,
            access_tier=ctx.entitlement.access_tier,
        )

    def execute_stream(
        self,
        user_id: str,
        feature_id,
        open_stream: Callable[[ActionContext], Iterator[str]],
        *,
        action: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Tuple[Deducted, Iterator[str]]:
        """
        Streaming variant: entitlement and deduction happen before the first
        byte; the returned iterator yields server-sent events.
        """
        ctx = self.authorize(user_id, feature_id)
        deducted = self.reserve(ctx, action, metadata)

        def events() -> Iterator[str]:
            yield _sse({
                "type": "meta",
                "tokensUsed": deducted.amount,
                "tokensRemaining": deducted.new_balance,
                "accessTier": ctx.entitlement.access_tier.value,
            })
            try:
                for delta in open_stream(ctx):
                    yield _sse({"type": "delta", "content": delta})
            except UpstreamFailure as exc:
                self._handle_upstream_failure(ctx, deducted, exc)
                yield _sse({"type": "error", "error": exc.code, "message": exc.message, **exc.details})
                return
            yield "data: [DONE]\n\n"

        return deducted, events()

    def _handle_upstream_failure(self, ctx: ActionContext, deducted: Deducted, exc: UpstreamFailure) -> None:
        log_event(
            "warning",
            "[gateway] upstream failed",
            user_id=ctx.user_id,
            feature=ctx.feature_id.value,
            event_type="gateway.upstream_failed",
            error_code=exc.code,
            extra={"amount": deducted.amount, "detail": exc.message},
        )
        if self.failure_policy == "refund" and deducted.amount > 0:
            balance = self.ledger.refund(ctx.user_id, deducted.amount)
            self.usage.record(
                ctx.user_id,
                REFUND_ACTION,
                ctx.feature_id.value,
                -deducted.amount,
                {"reason": exc.code},
            )
            exc.details.update({"tokensRefunded": deducted.amount, "tokensRemaining": balance})
        else:
            exc.details.update({"tokensUsed": deducted.amount, "tokensRemaining": deducted.new_balance})
