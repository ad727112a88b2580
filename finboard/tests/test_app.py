import unittest
from datetime import date, timedelta

from fastapi.testclient import TestClient

from finboard.app import create_app
from finboard.db import InMemoryDbClient, NetWorthSnapshotRecord, NotificationRecord
from finboard.dependencies import get_db_client


class DashboardApiTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        app = create_app()
        app.dependency_overrides[get_db_client] = lambda: self.db
        self.client = TestClient(app)
        self.headers = {"X-User-Id": "user-1"}

    def _add_transaction(self, **overrides):
        payload = {
            "description": "Groceries",
            "amount": 50.0,
            "category": "food",
            "transaction_type": "expense",
            "transaction_date": date.today().isoformat(),
        }
        payload.update(overrides)
        response = self.client.post("/api/transactions", json=payload, headers=self.headers)
        self.assertEqual(response.status_code, 201, response.text)
        return response.json()

    def test_requires_user_header(self):
        response = self.client.get("/api/accounts")
        self.assertEqual(response.status_code, 401)

    def test_create_and_list_accounts(self):
        response = self.client.post(
            "/api/accounts",
            json={
                "name": "Main Checking",
                "type": "checking",
                "balance": 4250.75,
                "institution": "Chase Bank",
                "account_number": "****1234",
            },
            headers=self.headers,
        )
        self.assertEqual(response.status_code, 201)
        self.assertTrue(response.json()["is_active"])

        listed = self.client.get("/api/accounts", headers=self.headers).json()
        self.assertEqual(len(listed), 1)
        self.assertEqual(listed[0]["name"], "Main Checking")

        other = self.client.get("/api/accounts", headers={"X-User-Id": "user-2"})
        self.assertEqual(other.json(), [])

    def test_create_account_rejects_blank_fields(self):
        response = self.client.post(
            "/api/accounts",
            json={
                "name": "   ",
                "type": "savings",
                "institution": "Bank",
                "account_number": "****1",
            },
            headers=self.headers,
        )
        self.assertEqual(response.status_code, 422)

    def test_monthly_summary(self):
        self._add_transaction(
            description="Salary", amount=4500, category="salary", transaction_type="income"
        )
        self._add_transaction(amount=1200, category="housing")
        self._add_transaction(amount=300.5, category="food")
        last_year = date.today() - timedelta(days=400)
        self._add_transaction(amount=999, transaction_date=last_year.isoformat())

        response = self.client.get("/api/summary/monthly", headers=self.headers)
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["month"], date.today().strftime("%Y-%m"))
        self.assertEqual(payload["income"], 4500)
        self.assertEqual(payload["expenses"], 1500.5)
        self.assertEqual(payload["balance"], 2999.5)

    def test_monthly_summary_rejects_bad_month(self):
        response = self.client.get(
            "/api/summary/monthly", params={"month": "2024-13"}, headers=self.headers
        )
        self.assertEqual(response.status_code, 400)

    def test_budget_tracking_reports_spent_and_status(self):
        response = self.client.post(
            "/api/budgets",
            json={
                "category": "food",
                "amount": 200,
                "start_date": date.today().replace(day=1).isoformat(),
            },
            headers=self.headers,
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["percentage"], 0)

        self._add_transaction(amount=120)
        self._add_transaction(amount=40, category="travel")

        budgets = self.client.get("/api/budgets", headers=self.headers).json()
        self.assertEqual(len(budgets), 1)
        self.assertEqual(budgets[0]["spent"], 120)
        self.assertEqual(budgets[0]["percentage"], 60)
        self.assertEqual(budgets[0]["status"], "ok")

        self._add_transaction(amount=100)
        budgets = self.client.get("/api/budgets", headers=self.headers).json()
        self.assertEqual(budgets[0]["spent"], 220)
        self.assertEqual(budgets[0]["percentage"], 100)
        self.assertEqual(budgets[0]["status"], "over")

    def test_expense_crossing_budget_creates_notification(self):
        self.client.post(
            "/api/budgets",
            json={
                "category": "food",
                "amount": 100,
                "start_date": date.today().replace(day=1).isoformat(),
            },
            headers=self.headers,
        )
        self._add_transaction(amount=50)
        self.assertEqual(self.db.list_notifications("user-1"), [])

        self._add_transaction(amount=45)
        notifications = self.db.list_notifications("user-1")
        self.assertEqual(len(notifications), 1)
        self.assertIn("90%", notifications[0].message)
        self.assertEqual(notifications[0].type.value, "warning")

        self._add_transaction(amount=10)
        notifications = self.db.list_notifications("user-1")
        self.assertEqual(len(notifications), 2)
        self.assertTrue(any("exceeded" in n.message for n in notifications))

    def test_backdated_expense_does_not_alert(self):
        self.client.post(
            "/api/budgets",
            json={
                "category": "food",
                "amount": 100,
                "start_date": (date.today() - timedelta(days=400)).isoformat(),
            },
            headers=self.headers,
        )
        last_month = date.today().replace(day=1) - timedelta(days=1)
        self._add_transaction(amount=95, transaction_date=last_month.isoformat())
        self.assertEqual(self.db.list_notifications("user-1"), [])

        self._add_transaction(amount=95)
        notifications = self.db.list_notifications("user-1")
        self.assertEqual(len(notifications), 1)
        self.assertIn("90%", notifications[0].message)

    def test_spending_analytics_groups_categories(self):
        self._add_transaction(amount=1200, category="Housing")
        self._add_transaction(amount=250, category="food")
        self._add_transaction(amount=50, category="food")
        self._add_transaction(amount=25, category="Pets")
        self._add_transaction(
            description="Salary", amount=4000, category="salary", transaction_type="income"
        )

        response = self.client.get("/api/analytics/spending", headers=self.headers)
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["total_expenses"], 1525)
        self.assertEqual(len(payload["transactions"]), 4)
        categories = payload["categories"]
        self.assertEqual([c["category"] for c in categories], ["Housing", "food", "Pets"])
        self.assertEqual(categories[0]["color"], "#4C51BF")
        self.assertEqual(categories[1]["total"], 300)
        self.assertEqual(categories[2]["color"], "#A0AEC0")

    def test_net_worth_from_accounts_and_snapshots(self):
        for name, type_, balance in (
            ("Checking", "checking", 4000),
            ("Savings", "savings", 6000),
            ("Card", "credit", -1500),
        ):
            self.client.post(
                "/api/accounts",
                json={
                    "name": name,
                    "type": type_,
                    "balance": balance,
                    "institution": "Bank",
                    "account_number": "****0000",
                },
                headers=self.headers,
            )
        self.db.save_net_worth_snapshot(
            NetWorthSnapshotRecord(
                user_id="user-1",
                snapshot_date=date.today() - timedelta(days=7),
                assets=9000,
                liabilities=1000,
            )
        )
        recorded = self.client.post("/api/net-worth/snapshots", headers=self.headers)
        self.assertEqual(recorded.status_code, 201)
        self.assertEqual(recorded.json()["net_worth"], 8500)

        response = self.client.get(
            "/api/net-worth", params={"timeframe": "quarter"}, headers=self.headers
        )
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["assets"], 10000)
        self.assertEqual(payload["liabilities"], 1500)
        self.assertEqual(payload["net_worth"], 8500)
        self.assertEqual(len(payload["series"]), 2)
        self.assertEqual(payload["change"], 6.25)

    def test_net_worth_rejects_unknown_timeframe(self):
        response = self.client.get(
            "/api/net-worth", params={"timeframe": "decade"}, headers=self.headers
        )
        self.assertEqual(response.status_code, 422)

    def test_notifications_read_and_delete(self):
        first = self.db.create_notification(
            NotificationRecord(user_id="user-1", title="Bill Reminder", message="Due soon")
        )
        self.db.create_notification(
            NotificationRecord(user_id="user-1", title="Savings", message="Goal reached")
        )

        count = self.client.get("/api/notifications/unread-count", headers=self.headers)
        self.assertEqual(count.json()["count"], 2)

        read = self.client.post(f"/api/notifications/{first.id}/read", headers=self.headers)
        self.assertEqual(read.status_code, 200)
        unread = self.client.get(
            "/api/notifications", params={"unread_only": True}, headers=self.headers
        ).json()
        self.assertEqual(len(unread), 1)

        foreign = self.client.delete(
            f"/api/notifications/{first.id}", headers={"X-User-Id": "user-2"}
        )
        self.assertEqual(foreign.status_code, 404)

        deleted = self.client.delete(f"/api/notifications/{first.id}", headers=self.headers)
        self.assertEqual(deleted.status_code, 200)
        remaining = self.client.get("/api/notifications", headers=self.headers).json()
        self.assertEqual(len(remaining), 1)

        missing = self.client.post("/api/notifications/nope/read", headers=self.headers)
        self.assertEqual(missing.status_code, 404)


if __name__ == "__main__":
    unittest.main()
