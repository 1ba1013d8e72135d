"""
Subscription API tests.

Verifies:
- Authentication (401) and customer role (403) on every endpoint
- Create returns 201 / 400 with exact shortfall / 404
- pause, resume, cancel and edit over HTTP
- process-daily is admin-only, accepts ?date and is idempotent
- trigger-payment
"""

import pytest

from mealplan.extensions import db
from mealplan.models import Order, Subscription
from mealplan.services import subscription_service, wallet_service

from conftest import SUNDAY, WEDNESDAY, auth_headers, full_week, get_auth_token, make_user, selections_for


@pytest.fixture(autouse=True)
def frozen_today(monkeypatch):
    monkeypatch.setattr(subscription_service, "utctoday", lambda: WEDNESDAY)


def _create(client, headers, restaurant, selections, **extra):
    return client.post(
        "/api/subscriptions",
        json={"restaurantId": restaurant.id, "mealSelections": selections, **extra},
        headers=headers,
    )


# =============================================================================
# AUTH: 401 / 403
# =============================================================================


class TestAccess:

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/subscriptions"),
            ("POST", "/api/subscriptions"),
            ("PATCH", "/api/subscriptions/1/pause"),
            ("PATCH", "/api/subscriptions/1/resume"),
            ("PATCH", "/api/subscriptions/1"),
            ("DELETE", "/api/subscriptions/1"),
            ("POST", "/api/subscriptions/process-daily"),
            ("POST", "/api/subscriptions/trigger-payment"),
        ],
    )
    def test_requires_auth(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_restaurant_cannot_subscribe(self, client, restaurant, restaurant_headers, menu):
        resp = _create(client, restaurant_headers, restaurant, full_week(menu))
        assert resp.status_code == 403
        assert resp.json["required_roles"] == ["customer"]

    def test_collection_served_with_and_without_slash(self, client, customer_headers, restaurant, menu):
        resp = _create(client, customer_headers, restaurant, selections_for(menu, "friday_dinner"))
        assert resp.status_code == 201

        for path in ("/api/subscriptions", "/api/subscriptions/"):
            resp = client.get(path, headers=customer_headers)
            assert resp.status_code == 200, f"GET {path} returned {resp.status_code}"
            assert len(resp.json["subscriptions"]) == 1

        resp = client.post(
            "/api/subscriptions/",
            json={"restaurantId": restaurant.id, "mealSelections": selections_for(menu, "wednesday_dinner")},
            headers=customer_headers,
        )
        assert resp.status_code == 201

    def test_customer_cannot_process_daily(self, client, customer_headers):
        resp = client.post("/api/subscriptions/process-daily", headers=customer_headers)
        assert resp.status_code == 403


# =============================================================================
# CREATE AND LIST
# =============================================================================


class TestCreate:

    def test_create(self, client, customer, customer_headers, restaurant, menu):
        resp = _create(client, customer_headers, restaurant, full_week(menu))

        assert resp.status_code == 201
        body = resp.json["subscription"]
        assert body["status"] == "active"
        assert body["is_repeating"] is True
        assert body["end_date"] is None
        assert body["start_date"] == "2026-10-14"
        assert body["restaurant_name"] == "Dhaka Kitchen"
        assert body["weekly_total_cents"] == 54000
        assert body["meals_per_week"] == 5
        assert wallet_service.get_balance(customer.id) == 65000
        assert db.session.query(Order).count() == 2

    def test_insufficient_funds(self, client, customer, customer_headers, restaurant, menu):
        customer.wallet_balance_cents = 30000
        db.session.commit()

        resp = _create(client, customer_headers, restaurant, full_week(menu))

        assert resp.status_code == 400
        assert resp.json["required_cents"] == 35000
        assert resp.json["available_cents"] == 30000
        assert resp.json["shortfall_cents"] == 5000
        assert "Insufficient wallet balance" in resp.json["error"]
        assert db.session.query(Subscription).count() == 0
        assert db.session.query(Order).count() == 0
        assert wallet_service.get_balance(customer.id) == 30000

    def test_missing_fields(self, client, customer_headers, restaurant):
        resp = client.post("/api/subscriptions", json={"restaurantId": restaurant.id}, headers=customer_headers)
        assert resp.status_code == 400

    @pytest.mark.parametrize("value", ["false", "true", None, 0, 1])
    def test_is_repeating_must_be_boolean(self, client, customer, customer_headers, restaurant, menu, value):
        resp = _create(client, customer_headers, restaurant, full_week(menu), isRepeating=value)

        assert resp.status_code == 400
        assert resp.json["error"] == "isRepeating must be a boolean"
        assert db.session.query(Subscription).count() == 0
        assert db.session.query(Order).count() == 0
        assert wallet_service.get_balance(customer.id) == 100000

    def test_non_repeating(self, client, customer_headers, restaurant, menu):
        resp = _create(client, customer_headers, restaurant, full_week(menu), isRepeating=False)

        assert resp.status_code == 201
        assert resp.json["subscription"]["is_repeating"] is False
        assert resp.json["subscription"]["end_date"] == "2026-10-21"

    def test_bad_quantity(self, client, customer_headers, restaurant, menu):
        resp = _create(client, customer_headers, restaurant, selections_for(menu, "friday_dinner", quantity=0))
        assert resp.status_code == 400

    def test_unknown_menu_item(self, client, customer_headers, restaurant, menu):
        resp = _create(client, customer_headers, restaurant, [
            {"menuItemId": 999999, "day": "friday", "mealType": "dinner", "quantity": 1},
        ])
        assert resp.status_code == 404

    def test_list(self, client, customer_headers, restaurant, menu):
        _create(client, customer_headers, restaurant, selections_for(menu, "friday_dinner"))

        resp = client.get("/api/subscriptions", headers=customer_headers)

        assert resp.status_code == 200
        subs = resp.json["subscriptions"]
        assert len(subs) == 1
        selection = subs[0]["meal_selections"][0]
        assert selection["menu_item"]["name"] == "Kacchi"
        assert selection["price_at_selection_cents"] == 15000

    def test_list_only_own(self, client, customer_headers, restaurant, menu):
        _create(client, customer_headers, restaurant, selections_for(menu, "friday_dinner"))
        other = make_user("Other", "other-customer@example.com")

        resp = client.get("/api/subscriptions", headers=auth_headers(get_auth_token(other)))
        assert resp.json["subscriptions"] == []


# =============================================================================
# LIFECYCLE
# =============================================================================


class TestLifecycleRoutes:

    def _sub_id(self, client, headers, restaurant, menu):
        return _create(client, headers, restaurant, full_week(menu)).json["subscription"]["id"]

    def test_pause_resume(self, client, customer_headers, restaurant, menu):
        sub_id = self._sub_id(client, customer_headers, restaurant, menu)

        resp = client.patch(f"/api/subscriptions/{sub_id}/pause", headers=customer_headers)
        assert resp.status_code == 200
        assert resp.json["subscription"]["status"] == "paused"

        resp = client.patch(f"/api/subscriptions/{sub_id}/pause", headers=customer_headers)
        assert resp.status_code == 400
        assert resp.json["error"] == "Only active subscriptions can be paused"

        resp = client.patch(f"/api/subscriptions/{sub_id}/resume", headers=customer_headers)
        assert resp.status_code == 200
        assert resp.json["subscription"]["status"] == "active"

    def test_resume_active_rejected(self, client, customer_headers, restaurant, menu):
        sub_id = self._sub_id(client, customer_headers, restaurant, menu)

        resp = client.patch(f"/api/subscriptions/{sub_id}/resume", headers=customer_headers)
        assert resp.status_code == 400
        assert resp.json["error"] == "Only paused subscriptions can be resumed"

    def test_cancel(self, client, customer_headers, restaurant, menu):
        sub_id = self._sub_id(client, customer_headers, restaurant, menu)

        resp = client.delete(f"/api/subscriptions/{sub_id}", headers=customer_headers)
        assert resp.status_code == 200
        assert resp.json["subscription"]["status"] == "cancelled"
        assert resp.json["cancelled_orders"] == 0

        resp = client.delete(f"/api/subscriptions/{sub_id}", headers=customer_headers)
        assert resp.status_code == 400

    def test_unknown_subscription(self, client, customer_headers):
        assert client.patch("/api/subscriptions/424242/pause", headers=customer_headers).status_code == 404
        assert client.delete("/api/subscriptions/424242", headers=customer_headers).status_code == 404

    def test_edit(self, client, customer_headers, restaurant, menu):
        sub_id = self._sub_id(client, customer_headers, restaurant, menu)

        resp = client.patch(
            f"/api/subscriptions/{sub_id}",
            json={"mealSelections": selections_for(menu, "sunday_lunch"), "isRepeating": False},
            headers=customer_headers,
        )

        assert resp.status_code == 200
        body = resp.json["subscription"]
        assert body["meals_per_week"] == 1
        assert body["is_repeating"] is False
        assert body["end_date"] == "2026-10-21"

    @pytest.mark.parametrize("value", ["false", None, 0])
    def test_edit_is_repeating_must_be_boolean(self, client, customer_headers, restaurant, menu, value):
        sub_id = self._sub_id(client, customer_headers, restaurant, menu)

        resp = client.patch(f"/api/subscriptions/{sub_id}", json={"isRepeating": value}, headers=customer_headers)

        assert resp.status_code == 400
        assert resp.json["error"] == "isRepeating must be a boolean"
        sub = db.session.get(Subscription, sub_id)
        assert sub.is_repeating is True
        assert sub.end_date is None

    def test_edit_empty_selections(self, client, customer_headers, restaurant, menu):
        sub_id = self._sub_id(client, customer_headers, restaurant, menu)

        resp = client.patch(f"/api/subscriptions/{sub_id}", json={"mealSelections": []}, headers=customer_headers)

        assert resp.status_code == 400
        assert resp.json["error"] == "A subscription needs at least one meal selection"
        assert db.session.get(Subscription, sub_id).meals_per_week == 5

    def test_edit_cancelled(self, client, customer_headers, restaurant, menu):
        sub_id = self._sub_id(client, customer_headers, restaurant, menu)
        client.delete(f"/api/subscriptions/{sub_id}", headers=customer_headers)

        resp = client.patch(f"/api/subscriptions/{sub_id}", json={"isRepeating": False}, headers=customer_headers)
        assert resp.status_code == 400


# =============================================================================
# BILLING TRIGGERS
# =============================================================================


class TestBillingRoutes:

    def test_process_daily_with_date(self, client, customer, customer_headers, admin_headers, restaurant, menu):
        _create(client, customer_headers, restaurant, full_week(menu))

        resp = client.post(f"/api/subscriptions/process-daily?date={SUNDAY.isoformat()}", headers=admin_headers)

        assert resp.status_code == 200
        assert resp.json["date"] == "2026-10-18"
        assert resp.json["results"]["renewed"] == 1
        assert resp.json["results"]["errors"] == []
        balance = wallet_service.get_balance(customer.id)

        again = client.post(f"/api/subscriptions/process-daily?date={SUNDAY.isoformat()}", headers=admin_headers)
        assert again.json["results"]["renewed"] == 0
        assert wallet_service.get_balance(customer.id) == balance

    def test_process_daily_bad_date(self, client, admin_headers):
        resp = client.post("/api/subscriptions/process-daily?date=18-10-2026", headers=admin_headers)
        assert resp.status_code == 400

    def test_trigger_payment(self, client, customer, customer_headers, restaurant, menu):
        _create(client, customer_headers, restaurant, selections_for(menu, "monday_lunch"))

        resp = client.post("/api/subscriptions/trigger-payment", headers=customer_headers)

        assert resp.status_code == 200
        assert resp.json["payment"]["amount_cents"] == 10000
        assert resp.json["wallet_balance_cents"] == 90000
        assert "1 active subscriptions" in resp.json["message"]

    def test_trigger_payment_without_subscriptions(self, client, customer_headers):
        resp = client.post("/api/subscriptions/trigger-payment", headers=customer_headers)
        assert resp.status_code == 400
        assert resp.json["error"] == "No active subscriptions to pay for"

    def test_resume_halted_reports_shortfall(self, client, customer, customer_headers, admin_headers, restaurant, menu, monkeypatch):
        _create(client, customer_headers, restaurant, full_week(menu))
        customer.wallet_balance_cents = 0
        db.session.commit()
        client.post(f"/api/subscriptions/process-daily?date={SUNDAY.isoformat()}", headers=admin_headers)
        sub = db.session.query(Subscription).one()
        assert sub.status == "halted"

        # Sunday: the whole new week is uncovered
        monkeypatch.setattr(subscription_service, "utctoday", lambda: SUNDAY)
        resp = client.patch(f"/api/subscriptions/{sub.id}/resume", headers=customer_headers)

        assert resp.status_code == 400
        assert resp.json["required_cents"] == 54000
        assert resp.json["shortfall_cents"] == 54000

        wallet_service.recharge(customer.id, 60000)
        resp = client.patch(f"/api/subscriptions/{sub.id}/resume", headers=customer_headers)
        assert resp.status_code == 200
        assert resp.json["subscription"]["status"] == "active"
        assert wallet_service.get_balance(customer.id) == 6000
