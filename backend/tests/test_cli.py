"""CLI command tests (scheduler entry point and bootstrap helpers)."""

from mealplan.extensions import db
from mealplan.models import MenuItem, User
from mealplan.services import subscription_service, wallet_service

from conftest import WEDNESDAY, full_week


def test_process_daily_command(app, customer, restaurant, menu):
    subscription_service.create_subscription(
        user_id=customer.id,
        restaurant_id=restaurant.id,
        meal_selections=full_week(menu),
        today=WEDNESDAY,
    )
    runner = app.test_cli_runner()

    result = runner.invoke(args=["subscriptions", "process-daily", "--date", "2026-10-18"])

    assert result.exit_code == 0, result.output
    assert "renewed=1" in result.output
    assert wallet_service.get_balance(customer.id) == 100000 - 35000 - 54000


def test_process_daily_rejects_bad_date(app, db_session):
    result = app.test_cli_runner().invoke(args=["subscriptions", "process-daily", "--date", "tomorrow"])
    assert result.exit_code != 0


def test_create_admin_user(app, db_session):
    result = app.test_cli_runner().invoke(args=[
        "users", "create",
        "--name", "Ops", "--email", "ops@example.com", "--password", "Password123", "--role", "admin",
    ])

    assert result.exit_code == 0, result.output
    assert "PASS" in result.output
    assert db.session.query(User).filter_by(email="ops@example.com", role="admin").count() == 1


def test_credit_wallet(app, customer):
    result = app.test_cli_runner().invoke(args=[
        "users", "credit", "--email", customer.email, "--amount-cents", "2500",
    ])

    assert result.exit_code == 0, result.output
    assert wallet_service.get_balance(customer.id) == 102500


def test_seed_menu(app, restaurant):
    result = app.test_cli_runner().invoke(args=["menu", "seed", "--restaurant-id", str(restaurant.id)])

    assert result.exit_code == 0, result.output
    assert db.session.query(MenuItem).filter_by(restaurant_id=restaurant.id).count() == 14
