"""Dependency providers shared by the API routers."""
from fastapi import Depends

from creatorai.features.ai.groq_provider import GroqCompletionProvider
from creatorai.features.ai.image_provider import ImageGatewayProvider
from creatorai.features.ai.provider import CompletionProvider
from creatorai.features.billing.provider import BillingProvider
from creatorai.features.billing.stripe_provider import StripeProvider
from creatorai.features.billing.sync import SubscriptionSynchronizer
from creatorai.features.gateway.service import BillableActionGateway
from creatorai.features.tokens.ledger import TokenLedger, get_ledger


def get_gateway(ledger: TokenLedger = Depends(get_ledger)) -> BillableActionGateway:
    return BillableActionGateway(ledger)


def get_text_provider() -> CompletionProvider:
    return GroqCompletionProvider()


def get_image_provider() -> CompletionProvider:
    return ImageGatewayProvider()


def get_billing_provider() -> BillingProvider:
    return StripeProvider()


def get_synchronizer(
    ledger: TokenLedger = Depends(get_ledger),
    provider: BillingProvider = Depends(get_billing_provider),
) -> SubscriptionSynchronizer:
    return SubscriptionSynchronizer(ledger, provider)
