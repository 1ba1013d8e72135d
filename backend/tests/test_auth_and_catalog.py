"""
Identity and catalog tests.

Verifies:
- Registration, login, logout and the bearer token lifecycle
- Referral codes link new customers to their referrer
- Catalog price lookup and restaurant-only menu management
- Health endpoint
"""

import pytest

from mealplan.extensions import db
from mealplan.models import SessionToken
from mealplan.services import catalog_service
from mealplan.services.auth_service import verify_password

from conftest import PASSWORD, auth_headers, get_auth_token


# =============================================================================
# AUTH
# =============================================================================


class TestAuth:

    def test_register_customer(self, client, db_session):
        resp = client.post("/api/auth/register", json={
            "name": "Nadia", "email": "Nadia@Example.com", "password": "secret123",
        })

        assert resp.status_code == 201
        user = resp.json["user"]
        assert user["role"] == "customer"
        assert user["email"] == "nadia@example.com"
        assert user["wallet_balance_cents"] == 0
        assert user["referral_code"]
        assert resp.json["token"]

    def test_register_with_referral(self, client, customer):
        resp = client.post("/api/auth/register", json={
            "name": "Friend", "email": "friend@example.com", "password": "secret123",
            "referralCode": customer.referral_code.lower(),
        })

        assert resp.status_code == 201
        assert resp.json["user"]["referred_by_user_id"] == customer.id

    def test_register_bad_referral(self, client, db_session):
        resp = client.post("/api/auth/register", json={
            "name": "Friend", "email": "friend@example.com", "password": "secret123", "referralCode": "NOPE",
        })
        assert resp.status_code == 400

    @pytest.mark.parametrize("password", ["short1", "lettersonly", "12345678"])
    def test_register_weak_password(self, client, db_session, password):
        resp = client.post("/api/auth/register", json={
            "name": "Weak", "email": "weak@example.com", "password": password,
        })
        assert resp.status_code == 400

    def test_register_duplicate_email(self, client, customer):
        resp = client.post("/api/auth/register", json={
            "name": "Again", "email": customer.email, "password": "secret123",
        })
        assert resp.status_code == 409

    def test_cannot_self_register_admin(self, client, db_session):
        resp = client.post("/api/auth/register", json={
            "name": "Sneaky", "email": "sneaky@example.com", "password": "secret123", "role": "admin",
        })
        assert resp.status_code == 400

    def test_password_is_hashed(self, customer):
        assert customer.password_hash != PASSWORD
        assert verify_password(PASSWORD, customer.password_hash)
        assert not verify_password("wrong-password1", customer.password_hash)

    def test_login_me_logout(self, client, customer):
        resp = client.post("/api/auth/login", json={"email": customer.email, "password": PASSWORD})
        assert resp.status_code == 200
        headers = {"Authorization": f"Bearer {resp.json['token']}"}

        me = client.get("/api/auth/me", headers=headers)
        assert me.status_code == 200
        assert me.json["user"]["id"] == customer.id

        assert client.post("/api/auth/logout", headers=headers).status_code == 200
        assert client.get("/api/auth/me", headers=headers).status_code == 401

    def test_login_wrong_password(self, client, customer):
        resp = client.post("/api/auth/login", json={"email": customer.email, "password": "wrong-password1"})
        assert resp.status_code == 401

    def test_token_stored_hashed(self, client, customer):
        resp = client.post("/api/auth/login", json={"email": customer.email, "password": PASSWORD})
        token = resp.json["token"]

        assert db.session.query(SessionToken).filter_by(token_hash=token).first() is None

    def test_deactivated_user_rejected(self, client, customer, customer_headers):
        customer.is_active = False
        db.session.commit()

        assert client.get("/api/auth/me", headers=customer_headers).status_code == 401


# =============================================================================
# CATALOG
# =============================================================================


class TestCatalog:

    def test_get_price(self, menu):
        quote = catalog_service.get_price(menu["friday_dinner"].id)

        assert quote.exists is True
        assert quote.price_cents == 15000
        assert quote.restaurant_id == menu["friday_dinner"].restaurant_id

    def test_get_price_unknown(self, db_session):
        quote = catalog_service.get_price(999999)
        assert quote.exists is False

    def test_public_menu_sorted_by_day(self, client, restaurant, menu):
        resp = client.get(f"/api/menu/restaurants/{restaurant.id}")

        days = [i["day"] for i in resp.json["items"]]
        assert days == ["sunday", "monday", "wednesday", "wednesday", "friday"]

    def test_restaurant_creates_and_edits_item(self, client, restaurant_headers):
        resp = client.post("/api/menu", json={
            "name": "Fish Curry", "price_cents": 18000, "day": "thursday", "mealType": "dinner",
        }, headers=restaurant_headers)
        assert resp.status_code == 201
        item_id = resp.json["item"]["id"]

        resp = client.patch(f"/api/menu/{item_id}", json={"price_cents": 19000}, headers=restaurant_headers)
        assert resp.status_code == 200
        assert resp.json["item"]["price_cents"] == 19000

    def test_customer_cannot_create_item(self, client, customer_headers):
        resp = client.post("/api/menu", json={
            "name": "Fish Curry", "price_cents": 18000, "day": "thursday", "mealType": "dinner",
        }, headers=customer_headers)
        assert resp.status_code == 403

    def test_invalid_item(self, client, restaurant_headers):
        resp = client.post("/api/menu", json={
            "name": "Fish Curry", "price_cents": 18000, "day": "funday", "mealType": "dinner",
        }, headers=restaurant_headers)
        assert resp.status_code == 400

    def test_cannot_edit_other_restaurants_item(self, client, other_restaurant, menu):
        headers = auth_headers(get_auth_token(other_restaurant))
        resp = client.patch(f"/api/menu/{menu['friday_dinner'].id}", json={"price_cents": 1}, headers=headers)
        assert resp.status_code == 404


# =============================================================================
# HEALTH
# =============================================================================


def test_health(client, db_session):
    resp = client.get("/health")

    assert resp.status_code == 200
    assert resp.json["status"] == "ok"
    assert resp.json["checks"]["database"]["status"] == "healthy"
    assert resp.json["billing"]["renewal_anchor_weekday"] == "sunday"
