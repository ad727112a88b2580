import unittest
from unittest.mock import Mock, patch

import requests
from fastapi.testclient import TestClient

from finboard.app import create_app
from finboard.billing import BillingApiError, InMemoryBillingClient, StripeBillingClient
from finboard.config import Settings, get_settings
from finboard.db import InMemoryDbClient, SubscriptionRecord, UserRecord
from finboard.dependencies import get_billing_client, get_db_client


class PaymentsApiTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        self.billing = InMemoryBillingClient()
        self.settings = Settings(frontend_url="https://app.example.com/")
        app = create_app()
        app.dependency_overrides[get_db_client] = lambda: self.db
        app.dependency_overrides[get_billing_client] = lambda: self.billing
        app.dependency_overrides[get_settings] = lambda: self.settings
        self.client = TestClient(app)
        self.headers = {"X-User-Id": "user-1"}
        self.db.create_user(UserRecord(email="ana@example.com", id="user-1"))

    def test_list_plans(self):
        self.billing.plans = [
            {
                "id": "price_basic",
                "name": "Basic",
                "amount": 999,
                "currency": "usd",
                "interval": "month",
                "popular": False,
            },
            {"id": "price_pro", "name": "Pro", "amount": 1999, "popular": True},
        ]
        response = self.client.get("/api/payments/plans")
        self.assertEqual(response.status_code, 200)
        plans = response.json()["plans"]
        self.assertEqual([p["id"] for p in plans], ["price_basic", "price_pro"])
        self.assertTrue(plans[1]["popular"])

    def test_list_plans_provider_error(self):
        with patch.object(self.billing, "list_plans", side_effect=BillingApiError("x")):
            response = self.client.get("/api/payments/plans")
        self.assertEqual(response.status_code, 502)

    def test_checkout_attaches_user_metadata(self):
        response = self.client.post(
            "/api/payments/checkout",
            json={"price_id": "price_basic"},
            headers=self.headers,
        )
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertTrue(payload["url"].endswith(payload["session_id"]))

        session = self.billing.checkout_sessions[0]
        self.assertEqual(session["price_id"], "price_basic")
        self.assertEqual(session["success_url"], "https://app.example.com/success")
        self.assertEqual(session["customer_email"], "ana@example.com")
        self.assertEqual(
            session["metadata"],
            {"userId": "user-1", "email": "ana@example.com", "subscription": "true"},
        )

    def test_checkout_requires_known_user(self):
        response = self.client.post(
            "/api/payments/checkout",
            json={"price_id": "price_basic"},
            headers={"X-User-Id": "ghost"},
        )
        self.assertEqual(response.status_code, 404)

        response = self.client.post("/api/payments/checkout", json={"price_id": "p"})
        self.assertEqual(response.status_code, 401)

    def test_checkout_without_url(self):
        with patch.object(
            self.billing, "create_checkout_session", return_value={"id": "cs_1"}
        ):
            response = self.client.post(
                "/api/payments/checkout",
                json={"price_id": "price_basic"},
                headers=self.headers,
            )
        self.assertEqual(response.status_code, 502)

    def test_subscription_status(self):
        response = self.client.get("/api/subscription/status", headers=self.headers)
        self.assertEqual(
            response.json(),
            {
                "has_active_subscription": False,
                "status": None,
                "stripe_id": None,
                "current_period_end": None,
                "cancel_at_period_end": False,
            },
        )

        self.db.create_subscription(
            SubscriptionRecord(
                stripe_id="sub_1",
                status="trialing",
                user_id="user-1",
                current_period_end=1702592000,
            )
        )
        payload = self.client.get("/api/subscription/status", headers=self.headers).json()
        self.assertTrue(payload["has_active_subscription"])
        self.assertEqual(payload["stripe_id"], "sub_1")

        self.db.update_subscription("sub_1", {"status": "canceled"})
        payload = self.client.get("/api/subscription/status", headers=self.headers).json()
        self.assertFalse(payload["has_active_subscription"])
        self.assertEqual(payload["status"], "canceled")

    def test_webhook_without_configured_secret(self):
        self.settings = Settings(stripe_webhook_secret=None)
        response = self.client.post(
            "/api/payments/webhook",
            content=b"{}",
            headers={"Stripe-Signature": "t=1,v1=abc"},
        )
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json(), {"error": "Webhook Error"})


class StripeBillingClientTests(unittest.TestCase):
    def setUp(self):
        self.session = Mock()
        self.client = StripeBillingClient("sk_test_123", session=self.session)

    def test_uses_secret_key_auth(self):
        self.assertEqual(self.session.auth, ("sk_test_123", ""))

    def test_list_plans_maps_prices(self):
        self.session.request.return_value.json.return_value = {
            "data": [
                {
                    "id": "price_1",
                    "unit_amount": 999,
                    "currency": "usd",
                    "recurring": {"interval": "month"},
                    "product": {"name": "Basic"},
                    "metadata": {"popular": "true"},
                },
                {"id": "price_2", "nickname": "Legacy", "product": "prod_2"},
            ]
        }
        plans = self.client.list_plans()

        args, kwargs = self.session.request.call_args
        self.assertEqual(args, ("GET", "https://api.stripe.com/v1/prices"))
        self.assertEqual(kwargs["params"]["expand[]"], "data.product")
        self.assertEqual(
            plans[0],
            {
                "id": "price_1",
                "name": "Basic",
                "amount": 999,
                "currency": "usd",
                "interval": "month",
                "popular": True,
            },
        )
        self.assertEqual(plans[1]["name"], "Legacy")
        self.assertIsNone(plans[1]["interval"])
        self.assertFalse(plans[1]["popular"])

    def test_update_subscription_metadata_sends_form_fields(self):
        self.client.update_subscription_metadata("sub_1", {"userId": "u1", "note": None})
        args, kwargs = self.session.request.call_args
        self.assertEqual(args, ("POST", "https://api.stripe.com/v1/subscriptions/sub_1"))
        self.assertEqual(kwargs["data"], {"metadata[userId]": "u1", "metadata[note]": ""})

    def test_create_checkout_session_form(self):
        self.session.request.return_value.json.return_value = {"id": "cs_1", "url": "u"}
        session = self.client.create_checkout_session(
            "price_1",
            success_url="https://app.example.com/success",
            customer_email="ana@example.com",
            metadata={"userId": "u1"},
        )
        self.assertEqual(session["id"], "cs_1")
        form = self.session.request.call_args.kwargs["data"]
        self.assertEqual(form["mode"], "subscription")
        self.assertEqual(form["line_items[0][price]"], "price_1")
        self.assertEqual(form["metadata[userId]"], "u1")
        self.assertEqual(form["subscription_data[metadata][userId]"], "u1")

    def test_http_error_raises_billing_error(self):
        self.session.request.return_value.raise_for_status.side_effect = (
            requests.HTTPError("402 Client Error")
        )
        with self.assertRaises(BillingApiError):
            self.client.retrieve_customer("cus_1")

    def test_requires_api_key(self):
        with self.assertRaises(ValueError):
            StripeBillingClient("")


if __name__ == "__main__":
    unittest.main()
