"""
Billing provider client (Stripe-compatible REST API) and an in-memory test double.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Optional, Protocol

import requests

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 30  # seconds


class BillingApiError(Exception):
    """Raised when the billing provider rejects or fails a request."""


class BillingClient(Protocol):
    """Defines the operations the API needs from the billing provider."""

    def retrieve_customer(self, customer_id: str) -> dict:
        ...

    def update_subscription_metadata(
        self, subscription_id: str, metadata: dict
    ) -> None:
        ...

    def list_plans(self) -> list[dict]:
        ...

    def create_checkout_session(
        self,
        price_id: str,
        *,
        success_url: str,
        customer_email: str,
        metadata: dict,
    ) -> dict:
        ...


def _flatten_form(prefix: str, values: dict) -> dict:
    """Expand a mapping into ``prefix[key]=value`` form fields."""
    return {
        f"{prefix}[{key}]": "" if value is None else str(value)
        for key, value in values.items()
    }


def _price_to_plan(price: dict) -> dict:
    product = price.get("product")
    recurring = price.get("recurring") or {}
    name = product.get("name") if isinstance(product, dict) else price.get("nickname")
    return {
        "id": price["id"],
        "name": name or price["id"],
        "amount": price.get("unit_amount"),
        "currency": price.get("currency"),
        "interval": recurring.get("interval"),
        "popular": (price.get("metadata") or {}).get("popular") == "true",
    }


@dataclass
class InMemoryBillingClient:
    """Test double for billing provider interactions."""

    customers: dict = field(default_factory=dict)
    plans: list = field(default_factory=list)
    subscription_metadata: dict = field(default_factory=dict)
    checkout_sessions: list = field(default_factory=list)
    base_url: str = "https://checkout.example.test"

    def retrieve_customer(self, customer_id: str) -> dict:
        customer = self.customers.get(customer_id)
        if customer is None:
            raise BillingApiError(f"No such customer: {customer_id}")
        return customer

    def update_subscription_metadata(
        self, subscription_id: str, metadata: dict
    ) -> None:
        self.subscription_metadata[subscription_id] = dict(metadata)

    def list_plans(self) -> list[dict]:
        return list(self.plans)

    def create_checkout_session(
        self,
        price_id: str,
        *,
        success_url: str,
        customer_email: str,
        metadata: dict,
    ) -> dict:
        session_id = f"cs_test_{uuid.uuid4().hex}"
        session = {
            "id": session_id,
            "price_id": price_id,
            "success_url": success_url,
            "customer_email": customer_email,
            "metadata": dict(metadata),
            "url": f"{self.base_url}/{session_id}",
        }
        self.checkout_sessions.append(session)
        return session


class StripeBillingClient:
    """
    Thin wrapper over the provider's REST API using ``requests``.
    """

    def __init__(
        self,
        api_key: str,
        api_base: str = "https://api.stripe.com/v1",
        session: Optional[requests.Session] = None,
    ):
        if not api_key:
            raise ValueError("STRIPE_SECRET_KEY is required for StripeBillingClient")
        self.api_base = api_base.rstrip("/")
        self.session = session or requests.Session()
        self.session.auth = (api_key, "")

    def _request(self, method: str, path: str, **kwargs) -> dict:
        url = f"{self.api_base}/{path.lstrip('/')}"
        try:
            response = self.session.request(
                method, url, timeout=REQUEST_TIMEOUT, **kwargs
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            logger.warning("Billing API %s %s failed: %s", method, path, exc)
            raise BillingApiError(f"{method} {path} failed") from exc
        return response.json()

    def retrieve_customer(self, customer_id: str) -> dict:
        return self._request("GET", f"customers/{customer_id}")

    def update_subscription_metadata(
        self, subscription_id: str, metadata: dict
    ) -> None:
        self._request(
            "POST",
            f"subscriptions/{subscription_id}",
            data=_flatten_form("metadata", metadata),
        )

    def list_plans(self) -> list[dict]:
        payload = self._request(
            "GET",
            "prices",
            params={"active": "true", "expand[]": "data.product", "limit": 100},
        )
        return [_price_to_plan(price) for price in payload.get("data", [])]

    def create_checkout_session(
        self,
        price_id: str,
        *,
        success_url: str,
        customer_email: str,
        metadata: dict,
    ) -> dict:
        form = {
            "mode": "subscription",
            "line_items[0][price]": price_id,
            "line_items[0][quantity]": "1",
            "success_url": success_url,
            "customer_email": customer_email,
        }
        form.update(_flatten_form("metadata", metadata))
        form.update(_flatten_form("subscription_data[metadata]", metadata))
        return self._request("POST", "checkout/sessions", data=form)
