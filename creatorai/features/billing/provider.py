"""
Billing provider protocol.

Defines the interface the subscription synchronizer needs from a billing
provider (Stripe, etc.). This allows swapping providers without changing
business logic.
"""
from typing import Protocol, Dict, Any, Optional
from dataclasses import dataclass, field
from datetime import datetime

from creatorai.core.errors import AppError, BillingProviderUnavailable


@dataclass(frozen=True)
class ExternalSubscription:
    """An active subscription as reported by the provider."""
    subscription_id: str
    customer_id: str
    product_id: Optional[str]
    price_id: Optional[str]
    status: str
    current_period_end: Optional[datetime]


@dataclass
class BillingWebhookResult:
    """Result of verifying and parsing a billing webhook."""
    event_id: str
    event_type: str
    customer_id: Optional[str]
    user_id: Optional[str]
    subscription_id: Optional[str]
    metadata: Dict[str, Any] = field(default_factory=dict)


class BillingWebhookError(AppError):
    """Webhook payload or signature could not be verified."""
    code = "invalid_webhook"
    status_code = 400


class BillingProvider(Protocol):
    """
    Protocol for billing providers.

    Implementations must handle:
    - Customer lookup (by stored reference or email)
    - Active subscription lookup
    - Webhook signature verification and parsing
    """

    def find_customer_by_email(self, email: str) -> Optional[str]:
        """
        Look up a billing customer by email.

        Args:
            email: User email

        Returns:
            Provider customer ID, or None if no customer exists

        Raises:
            BillingProviderUnavailable: If the provider cannot be reached
        """
        ...

    def get_active_subscription(self, customer_id: str) -> Optional[ExternalSubscription]:
        """
        Fetch the customer's active subscription.

        Args:
            customer_id: Provider customer ID

        Returns:
            ExternalSubscription, or None if the customer has no active subscription

        Raises:
            BillingProviderUnavailable: If the provider cannot be reached
        """
        ...

    def handle_webhook(self, headers: Dict[str, str], body: bytes) -> BillingWebhookResult:
        """
        Verify webhook signature and parse event.

        Args:
            headers: HTTP headers (including signature)
            body: Raw request body

        Returns:
            BillingWebhookResult with normalized event data

        Raises:
            BillingWebhookError: If signature invalid or parsing fails
        """
        ...


__all__ = [
    "BillingProvider",
    "BillingProviderUnavailable",
    "BillingWebhookError",
    "BillingWebhookResult",
    "ExternalSubscription",
]
