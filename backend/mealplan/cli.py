# Overview: Flask CLI command groups for the scheduler entry point, bootstrap, and maintenance.

# backend/mealplan/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# Scheduler:
# - python -m flask subscriptions process-daily [--date 2026-10-18]
#   Settle today's subscription orders, renew on the anchor weekday, expire ended plans.
#   Safe to run more than once a day; point cron at this once daily.
# - python -m flask subscriptions list [--status halted]
#   List subscriptions with status and weekly total.
#
# System bootstrap/repair:
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users list [--role customer]
# - python -m flask users create --name "Ops" --email ops@mealplan.local --password "Password123" --role admin
# - python -m flask users credit --email a@b.c --amount-cents 50000
#   Top up a wallet (recorded as a card recharge).
#
# Menu:
# - python -m flask menu list --restaurant-id 2
# - python -m flask menu seed --restaurant-id 2 [--price-cents 15000]
#   Create one lunch and one dinner dish for each weekday.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Subscription, User
from .models.users import VALID_ROLES, ROLE_RESTAURANT
from .services import billing_service, catalog_service, wallet_service
from .services.auth_service import create_user, AuthError, PasswordValidationError
from .time_utils import DAY_NAMES, parse_iso_date, utctoday
from .validation import ValidationError


@click.group('subscriptions')
def subscriptions_group():
    """Subscription billing commands."""


@subscriptions_group.command('process-daily')
@click.option('--date', 'date_str', default=None, help='Date to process (YYYY-MM-DD, default today UTC)')
@with_appcontext
def process_daily_cli(date_str):
    """
    Run the daily billing job.

    Settles today's unpaid subscription orders, renews repeating plans on the
    anchor weekday and expires ended non-repeating plans.
    """
    try:
        today = parse_iso_date(date_str) or utctoday()
    except ValueError:
        raise click.BadParameter("date must be YYYY-MM-DD", param_hint="--date")

    click.echo(f"START Processing subscriptions for {today.isoformat()}...")
    result = billing_service.process_daily(today)
    summary = result.to_dict()

    click.echo(
        f"PASS processed={summary['processed']} paid={summary['paid']} halted={summary['halted']} "
        f"renewed={summary['renewed']} expired={summary['expired']} cancelled={summary['cancelled']}"
    )
    for error in summary["errors"]:
        target = error.get("order_id") or error.get("subscription_id")
        click.echo(f"FAIL {target}: {error['error']}")


@subscriptions_group.command('list')
@click.option('--status', default=None, help='Filter by status')
@with_appcontext
def list_subscriptions_cli(status):
    """List subscriptions with status and weekly total."""
    query = db.session.query(Subscription)
    if status:
        query = query.filter_by(status=status)
    subscriptions = query.order_by(Subscription.id).all()

    if not subscriptions:
        click.echo("No subscriptions found.")
        return

    for s in subscriptions:
        click.echo(
            f"{s.id:>5}  user={s.user_id:<5} restaurant={s.restaurant_id:<5} {s.status:<10} "
            f"{'repeating' if s.is_repeating else 'ends ' + s.end_date.isoformat():<16} "
            f"{wallet_service.format_amount(s.weekly_total_cents)}/week"
        )


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete.")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('list')
@click.option('--role', type=click.Choice(VALID_ROLES), default=None, help='Filter by role')
@with_appcontext
def list_users(role):
    """List users with role, active flag and wallet balance."""
    query = db.session.query(User)
    if role:
        query = query.filter_by(role=role)
    users = query.order_by(User.id).all()

    if not users:
        click.echo("No users found.")
        return

    for u in users:
        status = "active" if u.is_active else "inactive"
        click.echo(
            f"{u.id:>5}  {u.email:<32} {u.role:<14} {status:<9} "
            f"{wallet_service.format_amount(u.wallet_balance_cents)}"
        )


@users_group.command('create')
@click.option('--name', prompt=True, help='Display name')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(VALID_ROLES), prompt=True, help='Role')
@with_appcontext
def create_user_cli(name, email, password, role):
    """
    Create a user of any role, including admin.

    Password must be at least 8 characters with a letter and a digit.
    """
    try:
        user = create_user(name=name, email=email, password=password, role=role)
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {e}")
        return
    except (AuthError, ValidationError) as e:
        click.echo(f"FAIL {e}")
        return

    click.echo(f"PASS Created user: {user.email} (ID: {user.id}) with role '{user.role}'")


@users_group.command('credit')
@click.option('--email', required=True, help='Wallet owner email')
@click.option('--amount-cents', type=int, required=True, help='Amount in minor units')
@with_appcontext
def credit_wallet_cli(email, amount_cents):
    """Top up a wallet, recorded as a card recharge."""
    user = db.session.query(User).filter_by(email=email.strip().lower()).first()
    if not user:
        click.echo(f"FAIL User {email} not found")
        return
    try:
        balance, _ = wallet_service.recharge(user.id, amount_cents, wallet_service.METHOD_CARD)
    except wallet_service.WalletError as e:
        click.echo(f"FAIL {e}")
        return
    click.echo(f"PASS {user.email} balance: {wallet_service.format_amount(balance)}")


@click.group('menu')
def menu_group():
    """Catalog inspection and seeding commands."""


@menu_group.command('list')
@click.option('--restaurant-id', type=int, required=True, help='Restaurant user ID')
@with_appcontext
def list_menu(restaurant_id):
    items = catalog_service.list_restaurant_menu(restaurant_id, include_unavailable=True)
    if not items:
        click.echo("No menu items found.")
        return
    for item in items:
        flag = "" if item.is_available else "  (unavailable)"
        click.echo(
            f"{item.id:>5}  {item.day:<10} {item.meal_type:<7} {item.name:<32} "
            f"{wallet_service.format_amount(item.price_cents)}{flag}"
        )


@menu_group.command('seed')
@click.option('--restaurant-id', type=int, required=True, help='Restaurant user ID')
@click.option('--price-cents', type=int, default=15000, show_default=True, help='Price per dish')
@with_appcontext
def seed_menu(restaurant_id, price_cents):
    """Create one lunch and one dinner dish for each weekday."""
    restaurant = db.session.query(User).filter_by(id=restaurant_id, role=ROLE_RESTAURANT).first()
    if not restaurant:
        click.echo(f"FAIL Restaurant {restaurant_id} not found")
        return

    created = 0
    for day in DAY_NAMES:
        for meal_type in catalog_service.MEAL_TYPES:
            catalog_service.create_menu_item(restaurant_id, {
                "name": f"{day.title()} {meal_type}",
                "price_cents": price_cents,
                "day": day,
                "mealType": meal_type,
            })
            created += 1
    click.echo(f"PASS Created {created} menu items for {restaurant.name}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(subscriptions_group)
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(menu_group)
