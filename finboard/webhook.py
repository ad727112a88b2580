"""
Billing webhook processing: signature verification, audit records and the
per-event handlers that keep subscription rows in sync with the provider.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Optional

from dacite import DaciteError

from finboard.billing import BillingApiError, BillingClient
from finboard.db import DbClient, SubscriptionRecord, WebhookEventRecord
from finboard.events import BillingEvent, parse_event
from finboard.types import SubscriptionStatus

logger = logging.getLogger(__name__)

SIGNATURE_SCHEME = "v1"
DEFAULT_TOLERANCE_SECONDS = 300


class SignatureVerificationError(ValueError):
    """Raised when a webhook signature header does not match the payload."""


class InvalidPayloadError(ValueError):
    """Raised when a verified payload is not a billing event."""


@dataclass
class WebhookResult:
    status_code: int
    body: dict

    @classmethod
    def ok(cls, message: str) -> "WebhookResult":
        return cls(200, {"message": message})

    @classmethod
    def error(cls, status_code: int, message: str) -> "WebhookResult":
        return cls(status_code, {"error": message})


def compute_signature(payload: bytes, secret: str, timestamp: str) -> str:
    signed_payload = timestamp.encode("utf-8") + b"." + payload
    return hmac.new(secret.encode("utf-8"), signed_payload, hashlib.sha256).hexdigest()


def sign_payload(payload: bytes, secret: str, timestamp: Optional[int] = None) -> str:
    """Build a signature header for ``payload``, as the provider would send it."""
    ts = str(int(time.time()) if timestamp is None else timestamp)
    return f"t={ts},{SIGNATURE_SCHEME}={compute_signature(payload, secret, ts)}"


def verify_signature(
    payload: bytes,
    header: str,
    secret: str,
    tolerance: int = DEFAULT_TOLERANCE_SECONDS,
    now: Optional[float] = None,
) -> int:
    """
    Check a ``t=<timestamp>,v1=<signature>`` header against the raw body.

    Returns:
        The signed timestamp.

    Raises:
        SignatureVerificationError: If the header is malformed, no signature
            matches, or the timestamp is older than ``tolerance`` seconds.
    """
    timestamp: Optional[str] = None
    signatures: list[str] = []
    for part in header.split(","):
        key, _, value = part.strip().partition("=")
        if key == "t":
            timestamp = value
        elif key == SIGNATURE_SCHEME:
            signatures.append(value)

    if not timestamp or not signatures:
        raise SignatureVerificationError(
            "Unable to extract timestamp and signatures from header"
        )
    try:
        signed_at = int(timestamp)
    except ValueError:
        raise SignatureVerificationError("Invalid timestamp in header") from None

    expected = compute_signature(payload, secret, timestamp)
    if not any(hmac.compare_digest(expected, candidate) for candidate in signatures):
        raise SignatureVerificationError("No signatures found matching the expected signature")

    current = time.time() if now is None else now
    if tolerance > 0 and signed_at < current - tolerance:
        raise SignatureVerificationError("Timestamp outside the tolerance zone")
    return signed_at


def _check_envelope(data: dict) -> None:
    for key in ("id", "type"):
        if not isinstance(data.get(key), str) or not data[key]:
            raise InvalidPayloadError(f"Event {key} must be a non-empty string")
    created = data.get("created")
    if isinstance(created, bool) or not isinstance(created, (int, float)):
        raise InvalidPayloadError("Event created must be a number")
    body = data.get("data")
    if not isinstance(body, dict) or not isinstance(body.get("object"), dict):
        raise InvalidPayloadError("Event data.object must be a JSON object")


def construct_event(
    payload: bytes,
    header: str,
    secret: str,
    tolerance: int = DEFAULT_TOLERANCE_SECONDS,
) -> BillingEvent:
    verify_signature(payload, header, secret, tolerance=tolerance)
    try:
        data = json.loads(payload)
    except ValueError as exc:
        raise InvalidPayloadError("Payload is not valid JSON") from exc
    if not isinstance(data, dict):
        raise InvalidPayloadError("Payload is not a JSON object")
    _check_envelope(data)
    try:
        return parse_event(data)
    except DaciteError as exc:
        raise InvalidPayloadError(f"Payload is not an event: {exc}") from exc


def format_minor_units(amount: int) -> str:
    """Render an amount in cents as a decimal string, e.g. 1999 -> "19.99"."""
    return str(Decimal(amount) / 100)


def store_webhook_event(db: DbClient, event: BillingEvent) -> Optional[WebhookEventRecord]:
    record = WebhookEventRecord(
        event_type=event.type,
        type=event.category,
        stripe_event_id=event.id,
        data=event.data.object,
        created_at=float(event.created),
        modified_at=float(event.created),
    )
    try:
        db.save_webhook_event(record)
    except Exception:
        logger.exception("Error storing webhook event %s", event.id)
        return None
    return record


def handle_subscription_created(
    event: BillingEvent, db: DbClient, billing: BillingClient
) -> WebhookResult:
    subscription = event.subscription()
    metadata = subscription.metadata or {}

    user_id = metadata.get("userId")
    if not user_id and subscription.customer:
        logger.info("No userId in metadata for %s, fetching customer", subscription.id)
        try:
            customer = billing.retrieve_customer(subscription.customer)
        except BillingApiError:
            logger.exception("Error fetching customer %s", subscription.customer)
            customer = {}
        email = customer.get("email")
        user = db.get_user_by_email(email) if email else None
        if user:
            user_id = user.id
        else:
            logger.error("No user found for customer %s", subscription.customer)

    if not user_id:
        return WebhookResult.error(400, "Unable to find associated user")

    item = subscription.first_item
    price_id = item.price.id if item and item.price else None
    plan = item.plan if item else None
    record = SubscriptionRecord(
        stripe_id=subscription.id,
        user_id=user_id,
        price_id=price_id,
        stripe_price_id=price_id,
        currency=subscription.currency,
        interval=plan.interval if plan else None,
        status=subscription.status,
        current_period_start=subscription.current_period_start,
        current_period_end=subscription.current_period_end,
        cancel_at_period_end=bool(subscription.cancel_at_period_end),
        amount=plan.amount if plan else None,
        started_at=subscription.start_date,
        customer_id=subscription.customer,
        metadata=metadata,
    )
    try:
        db.create_subscription(record)
    except Exception:
        logger.exception("Error creating subscription %s", subscription.id)
        return WebhookResult.error(500, "Failed to create subscription")

    try:
        db.set_user_subscription(subscription.id, user_id=user_id)
    except Exception:
        logger.exception("Error linking subscription %s to user", subscription.id)

    logger.info("Subscription %s created for user %s", subscription.id, user_id)
    return WebhookResult.ok("Subscription created successfully")


def handle_subscription_updated(
    event: BillingEvent, db: DbClient, billing: BillingClient
) -> WebhookResult:
    subscription = event.subscription()
    updates = {
        "status": subscription.status,
        "current_period_start": subscription.current_period_start,
        "current_period_end": subscription.current_period_end,
        "cancel_at_period_end": bool(subscription.cancel_at_period_end),
        "metadata": subscription.metadata or {},
    }
    try:
        updated = db.update_subscription(subscription.id, updates)
    except Exception:
        logger.exception("Error updating subscription %s", subscription.id)
        return WebhookResult.error(500, "Failed to update subscription")

    if not updated:
        logger.warning("Subscription %s not found for update", subscription.id)
    return WebhookResult.ok("Subscription updated successfully")


def handle_subscription_deleted(
    event: BillingEvent, db: DbClient, billing: BillingClient
) -> WebhookResult:
    subscription = event.subscription()
    email = (subscription.metadata or {}).get("email")
    if not email:
        logger.error("No email in metadata for subscription %s", subscription.id)
        return WebhookResult.error(500, "Customer email could not be fetched")

    try:
        db.update_subscription(
            subscription.id, {"status": SubscriptionStatus.CANCELED.value}
        )
    except Exception:
        logger.exception("Error canceling subscription %s", subscription.id)
        return WebhookResult.error(500, "Failed to update subscription")

    try:
        db.set_user_subscription(None, email=email)
    except Exception:
        logger.exception("Error clearing subscription for %s", email)

    return WebhookResult.ok("Subscription deleted successfully")


def handle_checkout_session_completed(
    event: BillingEvent, db: DbClient, billing: BillingClient
) -> WebhookResult:
    session = event.checkout_session()
    metadata = session.metadata or {}

    if session.subscription:
        billing.update_subscription_metadata(session.subscription, metadata)

        updates: dict = {"metadata": metadata}
        if metadata.get("userId"):
            updates["user_id"] = metadata["userId"]
        try:
            db.update_subscription(session.subscription, updates)
        except Exception:
            logger.exception("Error updating subscription %s", session.subscription)
            return WebhookResult.error(500, "Failed to update subscription")

    return WebhookResult.ok("Checkout session completed successfully")


def _store_invoice(
    event: BillingEvent, db: DbClient, *, succeeded: bool
) -> Optional[WebhookResult]:
    invoice = event.invoice()
    try:
        subscription = (
            db.get_subscription(invoice.subscription) if invoice.subscription else None
        )
    except Exception:
        logger.exception("Error fetching subscription %s", invoice.subscription)
        return WebhookResult.error(500, "Failed to fetch subscription")

    data = {
        "invoiceId": invoice.id,
        "subscriptionId": invoice.subscription,
        "currency": invoice.currency,
        "status": "succeeded" if succeeded else "failed",
        "email": (subscription.metadata or {}).get("email") if subscription else None,
    }
    if succeeded:
        data["amountPaid"] = format_minor_units(invoice.amount_paid)
    else:
        data["amountDue"] = format_minor_units(invoice.amount_due)

    try:
        db.save_webhook_event(
            WebhookEventRecord(
                event_type=event.type,
                type="invoice",
                stripe_event_id=event.id,
                data=data,
                processed=True,
            )
        )
    except Exception:
        logger.exception("Error storing invoice %s", invoice.id)
        return WebhookResult.error(500, "Failed to store invoice")
    return None


def handle_invoice_payment_succeeded(
    event: BillingEvent, db: DbClient, billing: BillingClient
) -> WebhookResult:
    failure = _store_invoice(event, db, succeeded=True)
    if failure:
        return failure
    return WebhookResult.ok("Invoice payment succeeded")


def handle_invoice_payment_failed(
    event: BillingEvent, db: DbClient, billing: BillingClient
) -> WebhookResult:
    failure = _store_invoice(event, db, succeeded=False)
    if failure:
        return failure

    invoice = event.invoice()
    if invoice.subscription:
        try:
            db.update_subscription(
                invoice.subscription, {"status": SubscriptionStatus.PAST_DUE.value}
            )
        except Exception:
            logger.exception("Error marking subscription %s past due", invoice.subscription)

    return WebhookResult.ok("Invoice payment failed")


Handler = Callable[[BillingEvent, DbClient, BillingClient], WebhookResult]

EVENT_HANDLERS: dict[str, Handler] = {
    "customer.subscription.created": handle_subscription_created,
    "customer.subscription.updated": handle_subscription_updated,
    "customer.subscription.deleted": handle_subscription_deleted,
    "checkout.session.completed": handle_checkout_session_completed,
    "invoice.payment_succeeded": handle_invoice_payment_succeeded,
    "invoice.payment_failed": handle_invoice_payment_failed,
}


def process_event(
    event: BillingEvent, db: DbClient, billing: BillingClient
) -> WebhookResult:
    """
    Record ``event`` and run its handler.

    Deliveries of an event that was already handled successfully are
    acknowledged without running the handler again.
    """
    if db.has_processed_webhook_event(event.id):
        logger.info("Event %s already processed, skipping", event.id)
        return WebhookResult.ok("Event already processed")

    record = store_webhook_event(db, event)

    handler = EVENT_HANDLERS.get(event.type)
    if handler is None:
        logger.warning("Unhandled event type: %s", event.type)
        result = WebhookResult.ok(f"Unhandled event type: {event.type}")
    else:
        logger.info("Processing event %s (%s)", event.id, event.type)
        result = handler(event, db, billing)

    if record and result.status_code < 300:
        db.mark_webhook_event_processed(record.id)
    return result
