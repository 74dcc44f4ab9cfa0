"""
Billing API routes.

- POST /api/billing/sync: Pull the caller's subscription from Stripe
- POST /api/billing/webhook: Handle Stripe webhooks
"""
from typing import Dict

from fastapi import APIRouter, Depends, Request
from starlette.concurrency import run_in_threadpool

from creatorai.api.deps import get_synchronizer
from creatorai.core.auth import AuthenticatedUser, get_current_user
from creatorai.features.billing.sync import SubscriptionSynchronizer, process_webhook_event

router = APIRouter(prefix="/api/billing", tags=["billing"])


@router.post("/sync")
def sync_subscription(
    user: AuthenticatedUser = Depends(get_current_user),
    synchronizer: SubscriptionSynchronizer = Depends(get_synchronizer),
) -> Dict:
    """
    Reconcile the caller's plan with Stripe.

    Errors:
        503: Stripe unreachable or not configured (state unchanged)
    """
    snapshot = synchronizer.sync(user.user_id)
    return {"success": True, **snapshot.to_public_dict()}


@router.post("/webhook")
async def handle_webhook(
    request: Request,
    synchronizer: SubscriptionSynchronizer = Depends(get_synchronizer),
) -> Dict:
    """
    Handle Stripe webhook events.

    Verifies signature, processes event idempotently, and re-syncs the
    affected user.

    Returns:
        {"received": true, "event_id": ...}

    Errors:
        400: Invalid signature or payload
        503: Billing disabled or Stripe unreachable
    """
    # Raw body is required for signature verification
    body = await request.body()
    headers = dict(request.headers)

    result = await run_in_threadpool(process_webhook_event, headers, body, synchronizer)
    return {"received": True, "event_id": result.event_id}
