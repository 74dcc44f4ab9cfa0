"""
Stripe billing provider implementation.

Implements BillingProvider protocol using the Stripe API.
Handles customer/subscription lookup, webhook signature verification and
event parsing. Every Stripe error surfaces as BillingProviderUnavailable.
"""
from typing import Dict, Any, Optional
from datetime import datetime, timezone
import stripe

from creatorai.core.config import settings
from creatorai.features.billing.provider import (
    BillingProviderUnavailable,
    BillingWebhookError,
    BillingWebhookResult,
    ExternalSubscription,
)


def _field(obj, key: str, default=None):
    """Index a StripeObject or plain dict without relying on dict inheritance."""
    if obj is None:
        return default
    try:
        value = obj[key]
    except (KeyError, TypeError, IndexError):
        return default
    return default if value is None else value


def _timestamp(value) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


class StripeProvider:
    """Stripe implementation of BillingProvider protocol."""

    def __init__(self, secret_key: Optional[str] = None, webhook_secret: Optional[str] = None):
        """
        Initialize Stripe provider.

        Args:
            secret_key: Stripe secret key (defaults to STRIPE_SECRET_KEY setting)
            webhook_secret: Stripe webhook secret (defaults to STRIPE_WEBHOOK_SECRET setting)
        """
        self.secret_key = secret_key or settings.STRIPE_SECRET_KEY
        self.webhook_secret = webhook_secret or settings.STRIPE_WEBHOOK_SECRET

        if not self.secret_key:
            raise BillingProviderUnavailable("STRIPE_SECRET_KEY not configured")

        stripe.api_key = self.secret_key

    def find_customer_by_email(self, email: str) -> Optional[str]:
        """Return the first Stripe customer registered under `email`."""
        try:
            customers = stripe.Customer.list(email=email, limit=1)
        except stripe.StripeError as e:
            raise BillingProviderUnavailable(f"Stripe customer lookup failed: {e}")
        data = _field(customers, "data", [])
        if not data:
            return None
        return _field(data[0], "id")

    def get_active_subscription(self, customer_id: str) -> Optional[ExternalSubscription]:
        """Return the customer's active subscription, if any."""
        try:
            subscriptions = stripe.Subscription.list(customer=customer_id, status="active", limit=1)
        except stripe.StripeError as e:
            raise BillingProviderUnavailable(f"Stripe subscription lookup failed: {e}")

        data = _field(subscriptions, "data", [])
        if not data:
            return None
        return self._parse_subscription(data[0], customer_id)

    def handle_webhook(self, headers: Dict[str, str], body: bytes) -> BillingWebhookResult:
        """Verify Stripe webhook signature and parse event."""
        if not self.webhook_secret:
            raise BillingWebhookError("STRIPE_WEBHOOK_SECRET not configured")

        sig_header = headers.get("stripe-signature") or headers.get("Stripe-Signature")
        if not sig_header:
            raise BillingWebhookError("Missing stripe-signature header")

        try:
            event = stripe.Webhook.construct_event(body, sig_header, self.webhook_secret)
        except ValueError as e:
            raise BillingWebhookError(f"Invalid payload: {e}")
        except stripe.SignatureVerificationError as e:
            raise BillingWebhookError(f"Invalid signature: {e}")

        return self._parse_event(event)

    def _parse_subscription(self, subscription, customer_id: str) -> ExternalSubscription:
        items = _field(_field(subscription, "items"), "data", [])
        item = items[0] if items else None
        price = _field(item, "price")
        product = _field(price, "product")
        if product is not None and not isinstance(product, str):
            # Expanded product object
            product = _field(product, "id")

        # Newer API versions moved the period end onto subscription items
        period_end = _field(subscription, "current_period_end") or _field(item, "current_period_end")

        return ExternalSubscription(
            subscription_id=_field(subscription, "id"),
            customer_id=_field(subscription, "customer", customer_id),
            product_id=product,
            price_id=_field(price, "id"),
            status=_field(subscription, "status", "unknown"),
            current_period_end=_timestamp(period_end),
        )

    def _parse_event(self, event) -> BillingWebhookResult:
        """Parse Stripe event into normalized BillingWebhookResult."""
        event_type = _field(event, "type")
        data = _field(_field(event, "data"), "object", {})
        metadata: Dict[str, Any] = dict(_field(data, "metadata", {}) or {})

        subscription_id = None
        if event_type and event_type.startswith("customer.subscription"):
            subscription_id = _field(data, "id")
        elif event_type in ("checkout.session.completed", "invoice.paid", "invoice.payment_failed"):
            subscription_id = _field(data, "subscription")

        customer_id = _field(data, "customer")
        if event_type and event_type.startswith("customer.") and not event_type.startswith("customer.subscription"):
            customer_id = _field(data, "id")

        return BillingWebhookResult(
            event_id=_field(event, "id"),
            event_type=event_type,
            customer_id=customer_id,
            user_id=metadata.get("user_id"),
            subscription_id=subscription_id,
            metadata=metadata,
        )
