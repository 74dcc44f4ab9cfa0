"""
Subscription synchronizer.

Reconciles the billing provider's view of a customer into the internal
subscription row:

1. Resolve the customer (stored reference first, email as fallback)
2. Read the active subscription and map its product to a Plan
3. Apply the plan through the ledger's compare-and-set update,
   resetting the balance only on a strict upgrade

Also processes Stripe webhooks idempotently by re-running sync for the
affected user.
"""
import hashlib
import logging
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from sqlalchemy import select, insert, update
from sqlalchemy.exc import IntegrityError

from creatorai.core.config import settings
from creatorai.core.database import get_db_session, billing_events
from creatorai.core.errors import ConflictError
from creatorai.core.logging import log_event
from creatorai.features.billing.provider import (
    BillingProvider,
    BillingWebhookResult,
    ExternalSubscription,
)
from creatorai.features.tokens.ledger import TokenLedger
from creatorai.features.users.service import get_or_create_user, get_user_email
from creatorai.models.plan import Plan, token_limit_for
from creatorai.models.subscription import SubscriptionSnapshot


logger = logging.getLogger(__name__)

SYNC_EVENT_PREFIXES = (
    "customer.subscription.",
    "checkout.session.completed",
    "invoice.paid",
    "invoice.payment_failed",
)
MAX_APPLY_ATTEMPTS = 3


def default_product_map() -> Dict[str, Plan]:
    return {
        settings.STRIPE_PRODUCT_CREATOR: Plan.CREATOR,
        settings.STRIPE_PRODUCT_PRO: Plan.PRO,
    }


class SubscriptionSynchronizer:
    def __init__(
        self,
        ledger: TokenLedger,
        provider: BillingProvider,
        product_to_plan: Optional[Dict[str, Plan]] = None,
        email_lookup: Callable[[str], Optional[str]] = get_user_email,
    ):
        self.ledger = ledger
        self.provider = provider
        self.product_to_plan = product_to_plan if product_to_plan is not None else default_product_map()
        self._email_lookup = email_lookup

    def plan_for(self, external: Optional[ExternalSubscription]) -> Plan:
        if external is None:
            return Plan.FREE
        plan = self.product_to_plan.get(external.product_id)
        if plan is None:
            logger.warning(
                "[sync] unmapped billing product, treating as FREE",
                extra={"event_type": "sync.unmapped_product", "plan": Plan.FREE.value},
            )
            return Plan.FREE
        return plan

    def sync(self, user_id: str) -> SubscriptionSnapshot:
        """
        Pull billing state for one user into the ledger.

        Returns:
            The subscription after synchronization

        Raises:
            BillingProviderUnavailable: If the provider cannot be reached;
                internal state is left untouched
        """
        current = self.ledger.ensure_subscription(user_id)

        customer_id = current.billing_customer_ref
        if not customer_id:
            email = self._email_lookup(user_id)
            if email:
                customer_id = self.provider.find_customer_by_email(email)
            if not customer_id:
                logger.info("[sync] no billing customer", extra={"user_id": user_id, "plan": current.plan.value})
                return current
            self.ledger.attach_customer_ref(user_id, customer_id)

        external = self.provider.get_active_subscription(customer_id)
        plan = self.plan_for(external)
        return self._apply(
            user_id,
            plan,
            plan_expiry=external.current_period_end if external else None,
            subscription_ref=external.subscription_id if external else None,
        )

    def _apply(
        self,
        user_id: str,
        plan: Plan,
        plan_expiry: Optional[datetime],
        subscription_ref: Optional[str],
    ) -> SubscriptionSnapshot:
        new_limit = token_limit_for(plan)
        for _ in range(MAX_APPLY_ATTEMPTS):
            current = self.ledger.get_subscription(user_id)
            if (
                current.plan is plan
                and current.tokens_monthly_limit == new_limit
                and current.plan_expiry == plan_expiry
                and current.billing_subscription_ref == subscription_ref
            ):
                return current

            reset = plan.is_upgrade_from(current.plan)
            applied = self.ledger.set_plan(
                user_id,
                plan,
                new_limit,
                reset,
                expected_plan=current.plan,
                plan_expiry=plan_expiry,
                billing_subscription_ref=subscription_ref,
            )
            if applied:
                if current.plan is not plan:
                    logger.info(
                        "[sync] plan changed",
                        extra={
                            "user_id": user_id,
                            "event_type": "sync.plan_changed",
                            "plan": plan.value,
                            "balance": new_limit if reset else current.tokens_remaining,
                        },
                    )
                return self.ledger.get_subscription(user_id)

        raise ConflictError(f"Subscription for {user_id} changed concurrently; retry sync")


def _is_sync_event(event_type: Optional[str]) -> bool:
    return bool(event_type) and any(event_type.startswith(prefix) for prefix in SYNC_EVENT_PREFIXES)


def _resolve_user(result: BillingWebhookResult, ledger: TokenLedger) -> Optional[str]:
    if result.customer_id:
        user_id = ledger.find_user_by_customer_ref(result.customer_id)
        if user_id:
            return user_id
    if result.user_id:
        get_or_create_user(result.user_id)
        snapshot = ledger.ensure_subscription(result.user_id)
        if result.customer_id and not snapshot.billing_customer_ref:
            ledger.attach_customer_ref(result.user_id, result.customer_id)
        return result.user_id
    return None


def process_webhook_event(
    headers: Dict[str, str],
    body: bytes,
    synchronizer: SubscriptionSynchronizer,
) -> BillingWebhookResult:
    """
    Process billing webhook event (idempotent).

    1. Verify signature
    2. Record the event (skip if already processed)
    3. Re-sync the affected user from the provider
    4. Mark as processed, or store the error and re-raise

    Raises:
        BillingWebhookError: If signature invalid
        BillingProviderUnavailable: If the follow-up sync cannot reach the provider
    """
    result = synchronizer.provider.handle_webhook(headers, body)
    payload_hash = hashlib.sha256(body).hexdigest()

    with get_db_session() as session:
        existing = session.execute(
            select(billing_events.c.processed).where(
                billing_events.c.stripe_event_id == result.event_id
            )
        ).first()

        if existing is not None and existing.processed:
            logger.info("[webhook] duplicate event skipped", extra={"event_type": result.event_type})
            return result

        if existing is None:
            try:
                with session.begin_nested():
                    session.execute(
                        insert(billing_events).values(
                            stripe_event_id=result.event_id,
                            event_type=result.event_type,
                            payload_hash=payload_hash,
                            processed=False,
                        )
                    )
            except IntegrityError:
                # Race: another worker recorded this event
                return result

    try:
        if _is_sync_event(result.event_type):
            user_id = _resolve_user(result, synchronizer.ledger)
            if user_id:
                synchronizer.sync(user_id)
            else:
                logger.warning(
                    "[webhook] no user for billing customer",
                    extra={"event_type": result.event_type},
                )

        with get_db_session() as session:
            session.execute(
                update(billing_events)
                .where(billing_events.c.stripe_event_id == result.event_id)
                .values(processed=True, processed_at=datetime.now(timezone.utc), error=None)
            )
    except Exception as e:
        with get_db_session() as session:
            session.execute(
                update(billing_events)
                .where(billing_events.c.stripe_event_id == result.event_id)
                .values(error=str(e))
            )
        log_event(
            "error",
            "[webhook] processing failed",
            event_type=result.event_type,
            error_code=getattr(e, "code", "internal_error"),
            extra={"event_id": result.event_id, "detail": e},
        )
        raise

    return result
