"""
Subscription billing routes: the provider webhook, plans and checkout.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from finboard.billing import BillingApiError, BillingClient
from finboard.config import Settings, get_settings
from finboard.db import DbClient
from finboard.dependencies import (
    get_billing_client,
    get_current_user_id,
    get_db_client,
)
from finboard.schemas import (
    CheckoutRequest,
    CheckoutResponse,
    PlansResponse,
    SubscriptionStatusResponse,
)
from finboard.types import SubscriptionStatus
from finboard.webhook import (
    InvalidPayloadError,
    SignatureVerificationError,
    construct_event,
    process_event,
)

logger = logging.getLogger(__name__)

router = APIRouter()

SIGNATURE_HEADER = "Stripe-Signature"


@router.post("/payments/webhook")
async def payments_webhook(
    request: Request,
    db: DbClient = Depends(get_db_client),
    billing: BillingClient = Depends(get_billing_client),
    settings: Settings = Depends(get_settings),
):
    signature = request.headers.get(SIGNATURE_HEADER)
    body = await request.body()

    if not signature:
        logger.error("No %s header on webhook request", SIGNATURE_HEADER)
        return JSONResponse({"error": "No Stripe-Signature header"}, status_code=400)

    if not settings.stripe_webhook_secret:
        logger.error("STRIPE_WEBHOOK_SECRET is not configured")
        return JSONResponse({"error": "Webhook Error"}, status_code=500)

    try:
        event = construct_event(
            body,
            signature,
            settings.stripe_webhook_secret,
            tolerance=settings.stripe_webhook_tolerance_seconds,
        )
    except SignatureVerificationError as exc:
        logger.warning("Webhook signature rejected: %s", exc)
        return JSONResponse({"error": "Invalid signature"}, status_code=400)
    except InvalidPayloadError as exc:
        logger.warning("Webhook payload rejected: %s", exc)
        return JSONResponse({"error": "Invalid payload"}, status_code=400)

    logger.info("Webhook event %s received (%s)", event.id, event.type)
    try:
        result = process_event(event, db, billing)
    except Exception:
        logger.exception("Error processing webhook event %s", event.id)
        return JSONResponse({"error": "Webhook Error"}, status_code=500)
    return JSONResponse(result.body, status_code=result.status_code)


@router.get("/payments/plans", response_model=PlansResponse)
def list_plans(billing: BillingClient = Depends(get_billing_client)):
    try:
        plans = billing.list_plans()
    except BillingApiError:
        logger.exception("Error fetching plans")
        raise HTTPException(status_code=502, detail="Unable to fetch plans") from None
    return PlansResponse(plans=plans)


@router.post("/payments/checkout", response_model=CheckoutResponse)
def create_checkout(
    payload: CheckoutRequest,
    user_id: str = Depends(get_current_user_id),
    db: DbClient = Depends(get_db_client),
    billing: BillingClient = Depends(get_billing_client),
    settings: Settings = Depends(get_settings),
):
    user = db.get_user(user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    try:
        session = billing.create_checkout_session(
            payload.price_id,
            success_url=f"{settings.frontend_url.rstrip('/')}/success",
            customer_email=user.email,
            metadata={
                "userId": user.id,
                "email": user.email,
                "subscription": "true",
            },
        )
    except BillingApiError:
        logger.exception("Error creating checkout session for %s", user.id)
        raise HTTPException(
            status_code=502, detail="Unable to create checkout session"
        ) from None

    if not session.get("url"):
        raise HTTPException(status_code=502, detail="Checkout session has no url")
    return CheckoutResponse(session_id=session["id"], url=session["url"])


@router.get("/subscription/status", response_model=SubscriptionStatusResponse)
def subscription_status(
    user_id: str = Depends(get_current_user_id),
    db: DbClient = Depends(get_db_client),
):
    subscription = db.get_latest_subscription_for_user(user_id)
    if not subscription:
        return SubscriptionStatusResponse(has_active_subscription=False)

    try:
        grants_access = SubscriptionStatus(subscription.status).grants_access
    except ValueError:
        grants_access = False
    return SubscriptionStatusResponse(
        has_active_subscription=grants_access,
        status=subscription.status,
        stripe_id=subscription.stripe_id,
        current_period_end=subscription.current_period_end,
        cancel_at_period_end=subscription.cancel_at_period_end,
    )
