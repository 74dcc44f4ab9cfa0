from datetime import datetime, timezone
from typing import Dict, List, Optional

from creatorai.core.errors import BillingProviderUnavailable, UpstreamFailure
from creatorai.features.ai.provider import CompletionRequest, CompletionResult
from creatorai.features.billing.provider import BillingWebhookError, BillingWebhookResult, ExternalSubscription


class FakeCompletionProvider:
    """Records every request; returns canned text, images or an error."""

    def __init__(self, text: str = "ok", images: Optional[List[str]] = None, chunks=None, error: Optional[UpstreamFailure] = None):
        self.text = text
        self.images = images or []
        self.chunks = chunks if chunks is not None else ["Hello ", "World", "!"]
        self.error = error
        self.requests: List[CompletionRequest] = []

    @property
    def calls(self) -> int:
        return len(self.requests)

    def complete(self, request: CompletionRequest) -> CompletionResult:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return CompletionResult(text=self.text, images=list(self.images), model="fake")

    def stream(self, request: CompletionRequest):
        self.requests.append(request)
        for chunk in self.chunks:
            yield chunk
        if self.error is not None:
            raise self.error


class FakeBillingProvider:
    """In-memory billing provider: customers by email, subscriptions by customer."""

    def __init__(self):
        self.customers: Dict[str, str] = {}
        self.subscriptions: Dict[str, ExternalSubscription] = {}
        self.events: Dict[bytes, BillingWebhookResult] = {}
        self.available = True
        self.lookups = 0

    def add_subscription(self, customer_id: str, product_id: str, email: Optional[str] = None, period_end=None):
        if email:
            self.customers[email] = customer_id
        self.subscriptions[customer_id] = ExternalSubscription(
            subscription_id=f"sub_{customer_id}",
            customer_id=customer_id,
            product_id=product_id,
            price_id=f"price_{product_id}",
            status="active",
            current_period_end=period_end or datetime(2030, 1, 1, tzinfo=timezone.utc),
        )

    def cancel(self, customer_id: str):
        self.subscriptions.pop(customer_id, None)

    def _check(self):
        if not self.available:
            raise BillingProviderUnavailable("Stripe unreachable")

    def find_customer_by_email(self, email: str) -> Optional[str]:
        self._check()
        self.lookups += 1
        return self.customers.get(email)

    def get_active_subscription(self, customer_id: str) -> Optional[ExternalSubscription]:
        self._check()
        return self.subscriptions.get(customer_id)

    def handle_webhook(self, headers: Dict[str, str], body: bytes) -> BillingWebhookResult:
        if headers.get("stripe-signature") != "valid":
            raise BillingWebhookError("Invalid signature")
        return self.events[body]
