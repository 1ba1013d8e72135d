"""
Pytest fixtures for the meal subscription backend tests.

Provides the in-memory app, per-test table wipe, users with funded wallets,
a weekly menu and bearer-token helpers.

Calendar used throughout: 2026-10-14 is a Wednesday, 2026-10-18 the
following Sunday (the default renewal anchor).
"""

from datetime import date

import pytest
from mealplan import create_app
from mealplan.config import TestConfig
from mealplan.extensions import db
from mealplan.models import MenuItem, User
from mealplan.models.users import ROLE_ADMIN, ROLE_CUSTOMER, ROLE_RESTAURANT
from mealplan.services.auth_service import create_user
from mealplan.services import session_service


WEDNESDAY = date(2026, 10, 14)
SUNDAY = date(2026, 10, 18)

PASSWORD = "secret123"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestConfig)

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


def make_user(name: str, email: str, role: str = ROLE_CUSTOMER, balance_cents: int = 0, **kwargs) -> User:
    """Create a user and set the wallet balance directly."""
    user = create_user(name=name, email=email, password=PASSWORD, role=role, **kwargs)
    if balance_cents:
        user.wallet_balance_cents = balance_cents
        db.session.commit()
    return user


@pytest.fixture(scope='function')
def restaurant(db_session):
    return make_user("Dhaka Kitchen", "kitchen@example.com", role=ROLE_RESTAURANT)


@pytest.fixture(scope='function')
def other_restaurant(db_session):
    return make_user("Other Kitchen", "other@example.com", role=ROLE_RESTAURANT)


@pytest.fixture(scope='function')
def customer(db_session):
    """Customer with 1000.00 in the wallet."""
    return make_user("Rahim", "rahim@example.com", balance_cents=100000)


@pytest.fixture(scope='function')
def admin(db_session):
    return make_user("Ops", "ops@example.com", role=ROLE_ADMIN)


@pytest.fixture(scope='function')
def menu(db_session, restaurant):
    """
    A sparse weekly menu keyed by "<day>_<meal>".

    Week total when all five are selected once: 540.00
    """
    specs = [
        ("sunday", "lunch", "Khichuri", 9000),
        ("monday", "lunch", "Biryani", 10000),
        ("wednesday", "lunch", "Tehari", 12000),
        ("wednesday", "dinner", "Dal Bhat", 8000),
        ("friday", "dinner", "Kacchi", 15000),
    ]
    items = {}
    for day, meal_type, name, price in specs:
        item = MenuItem(
            restaurant_id=restaurant.id,
            name=name,
            price_cents=price,
            day=day,
            meal_type=meal_type,
        )
        db_session.add(item)
        items[f"{day}_{meal_type}"] = item
    db_session.commit()
    return items


def selections_for(menu: dict, *keys: str, quantity: int = 1) -> list[dict]:
    """Client payload of meal selections for the given menu keys."""
    payload = []
    for key in keys:
        item = menu[key]
        payload.append({
            "menuItemId": item.id,
            "day": item.day,
            "mealType": item.meal_type,
            "quantity": quantity,
        })
    return payload


def full_week(menu: dict) -> list[dict]:
    return selections_for(menu, "sunday_lunch", "monday_lunch", "wednesday_lunch", "wednesday_dinner", "friday_dinner")


def get_auth_token(user: User) -> str:
    """Helper to get a bearer token for a user."""
    _, token = session_service.create_session(user_id=user.id)
    return token


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def customer_headers(customer):
    return auth_headers(get_auth_token(customer))


@pytest.fixture(scope='function')
def restaurant_headers(restaurant):
    return auth_headers(get_auth_token(restaurant))


@pytest.fixture(scope='function')
def admin_headers(admin):
    return auth_headers(get_auth_token(admin))
