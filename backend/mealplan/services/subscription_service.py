# Overview: Service-layer operations for subscriptions; plan validation, price snapshots and customer-driven changes.

"""
Subscription Plan Store

WHY: A subscription is a declarative weekly plan. This module owns its
shape (meal selections and their price snapshots) and the customer-facing
operations on it. Money moves only through billing_service; status changes
only through lifecycle_service.

PRICE SNAPSHOTS:
- Prices are captured from the catalog when a selection is created.
- On edit, a selection identical to an existing one (same menu item, day,
  meal type and quantity) keeps its stored price even if the catalog changed.
  Changed or added selections are priced again.
"""

from __future__ import annotations

from datetime import date, timedelta

from ..extensions import db
from ..models import MealSelection, Subscription, User
from ..models.users import ROLE_RESTAURANT
from ..time_utils import DAY_NAMES, utctoday
from ..validation import (
    NotFoundError,
    ValidationError,
    require_bool,
    require_choice,
    require_int_id,
    require_positive_int,
)
from . import billing_service, catalog_service, lifecycle_service
from .concurrency import lock_for_update, run_with_retry
from .wallet_service import InsufficientFundsError


VALID_PLAN_TYPES = ("weekly", "monthly", "custom")
NON_REPEATING_PLAN_DAYS = 7


# =============================================================================
# VALIDATION AND PRICING
# =============================================================================

def parse_meal_selections(raw) -> list[dict]:
    """
    Validate the client payload of meal selections.

    Accepts camelCase keys (menuItemId, mealType) as sent by the storefront,
    and snake_case equivalents.

    Raises:
        ValidationError: empty list or a selection missing/invalid fields
    """
    if not isinstance(raw, list):
        raise ValidationError("mealSelections must be a list")
    if not raw:
        raise ValidationError("A subscription needs at least one meal selection")

    parsed = []
    for entry in raw:
        if not isinstance(entry, dict):
            raise ValidationError("Each meal selection must be an object")
        menu_item_id = entry.get("menuItemId", entry.get("menu_item_id"))
        day = entry.get("day")
        meal_type = entry.get("mealType", entry.get("meal_type"))
        quantity = entry.get("quantity")
        if not all([menu_item_id, day, meal_type, quantity]):
            raise ValidationError("Each meal selection must have menuItemId, day, mealType, and quantity")

        parsed.append({
            "menu_item_id": require_int_id(menu_item_id, "menuItemId"),
            "day": require_choice(day, "day", DAY_NAMES),
            "meal_type": require_choice(meal_type, "mealType", catalog_service.MEAL_TYPES),
            "quantity": require_positive_int(quantity, "quantity"),
        })
    return parsed


def _quote(menu_item_id: int, restaurant_id: int) -> int:
    quote = catalog_service.get_price(menu_item_id)
    if not quote.exists:
        raise NotFoundError(f"Menu item {menu_item_id} not found")
    if quote.restaurant_id != restaurant_id:
        raise ValidationError(f"Menu item {menu_item_id} does not belong to this restaurant")
    return quote.price_cents


def _selection_key(day: str, meal_type: str, menu_item_id: int, quantity: int) -> tuple:
    return (day, meal_type, menu_item_id, quantity)


def _new_selection(parsed: dict, restaurant_id: int) -> MealSelection:
    return MealSelection(
        menu_item_id=parsed["menu_item_id"],
        day=parsed["day"],
        meal_type=parsed["meal_type"],
        quantity=parsed["quantity"],
        price_at_selection_cents=_quote(parsed["menu_item_id"], restaurant_id),
        payment_status="unpaid",
    )


# =============================================================================
# QUERIES
# =============================================================================

def list_subscriptions(user_id: int) -> list[Subscription]:
    """Customer's subscriptions, newest first."""
    return db.session.query(Subscription).filter_by(user_id=user_id).order_by(
        Subscription.created_at.desc(), Subscription.id.desc()
    ).all()


def get_owned_subscription(subscription_id: int, user_id: int, *, for_update: bool = False) -> Subscription:
    query = db.session.query(Subscription).filter_by(id=subscription_id, user_id=user_id)
    if for_update:
        query = lock_for_update(query)
    subscription = query.first()
    if not subscription:
        raise NotFoundError("Subscription not found")
    return subscription


# =============================================================================
# CREATE
# =============================================================================

def create_subscription(
    *,
    user_id: int,
    restaurant_id,
    meal_selections,
    plan_type: str = "weekly",
    is_repeating: bool = True,
    today: date | None = None,
) -> Subscription:
    """
    Create a subscription and charge the rest of the current week upfront.

    All-or-nothing: the subscription, its orders, the wallet debit and the
    payment row commit together. On insufficient funds the transaction is
    rolled back, leaving no subscription, no orders and an untouched wallet.

    Raises:
        ValidationError, NotFoundError: bad payload / unknown restaurant or item
        InsufficientFundsError: wallet cannot cover the upfront charge
    """
    if not restaurant_id or not meal_selections:
        raise ValidationError("Restaurant ID and meal selections are required")
    restaurant_id = require_int_id(restaurant_id, "restaurantId")
    selections = parse_meal_selections(meal_selections)
    if plan_type not in VALID_PLAN_TYPES:
        raise ValidationError(f"planType must be one of: {', '.join(VALID_PLAN_TYPES)}")
    is_repeating = require_bool(is_repeating, "isRepeating")
    today = today or utctoday()

    def _op():
        restaurant = db.session.query(User).filter_by(id=restaurant_id, role=ROLE_RESTAURANT).first()
        if not restaurant:
            raise NotFoundError("Restaurant not found")

        subscription = Subscription(
            user_id=user_id,
            restaurant_id=restaurant_id,
            plan_type=plan_type,
            start_date=today,
            end_date=None if is_repeating else today + timedelta(days=NON_REPEATING_PLAN_DAYS),
            status=lifecycle_service.STATUS_ACTIVE,
            is_repeating=is_repeating,
            meals_per_week=len(selections),
            meal_selections=[_new_selection(s, restaurant_id) for s in selections],
        )
        db.session.add(subscription)
        db.session.flush()

        try:
            billing_service.charge_upfront(subscription, today)
        except InsufficientFundsError:
            db.session.rollback()
            raise

        db.session.commit()
        return subscription

    try:
        return run_with_retry(_op)
    except (ValidationError, NotFoundError):
        db.session.rollback()
        raise


# =============================================================================
# STATUS CHANGES
# =============================================================================

def pause_subscription(subscription_id: int, user_id: int) -> Subscription:
    def _op():
        subscription = get_owned_subscription(subscription_id, user_id, for_update=True)
        lifecycle_service.pause(subscription)
        db.session.commit()
        return subscription

    return run_with_retry(_op)


def resume_subscription(subscription_id: int, user_id: int, today: date | None = None) -> Subscription:
    """
    Resume a paused subscription, or ask the processor to reactivate a halted one.

    A halted subscription becomes active only if the remaining-week charge
    succeeds; otherwise InsufficientFundsError is raised and it stays halted.
    """
    def _op():
        subscription = get_owned_subscription(subscription_id, user_id, for_update=True)
        if subscription.status == lifecycle_service.STATUS_HALTED:
            try:
                billing_service.reactivate_halted(subscription, today or utctoday())
            except InsufficientFundsError:
                db.session.rollback()
                raise
        else:
            lifecycle_service.resume(subscription)
        db.session.commit()
        return subscription

    return run_with_retry(_op)


def cancel_subscription(subscription_id: int, user_id: int) -> tuple[Subscription, int]:
    """
    Cancel (terminal) and cancel pending unpaid orders in the same transaction.

    Returns:
        (subscription, cancelled_order_count)
    """
    def _op():
        subscription = get_owned_subscription(subscription_id, user_id, for_update=True)
        cancelled = lifecycle_service.cancel(subscription)
        db.session.commit()
        return subscription, cancelled

    return run_with_retry(_op)


# =============================================================================
# EDIT
# =============================================================================

def update_subscription(
    subscription_id: int,
    user_id: int,
    *,
    meal_selections=None,
    is_repeating=None,
    today: date | None = None,
) -> Subscription:
    """
    Edit the plan and/or the repeat flag. Legal unless cancelled.

    Already materialized orders are not touched; the new plan applies from
    the next materialization.
    """
    parsed = parse_meal_selections(meal_selections) if meal_selections is not None else None
    if is_repeating is not None:
        is_repeating = require_bool(is_repeating, "isRepeating")
    today = today or utctoday()

    def _op():
        subscription = get_owned_subscription(subscription_id, user_id, for_update=True)
        if subscription.status == lifecycle_service.STATUS_CANCELLED:
            raise lifecycle_service.LifecycleError("Cannot update cancelled subscription")

        if parsed is not None:
            _replace_selections(subscription, parsed)

        if is_repeating is not None:
            subscription.is_repeating = is_repeating
            if not subscription.is_repeating and subscription.end_date is None:
                subscription.end_date = today + timedelta(days=NON_REPEATING_PLAN_DAYS)
            elif subscription.is_repeating:
                subscription.end_date = None

        db.session.commit()
        return subscription

    try:
        return run_with_retry(_op)
    except (ValidationError, NotFoundError, lifecycle_service.LifecycleError):
        db.session.rollback()
        raise


def _replace_selections(subscription: Subscription, parsed: list[dict]) -> None:
    """Keep untouched selections (and their prices); price changed or new ones."""
    pool: dict[tuple, list[MealSelection]] = {}
    for existing in subscription.meal_selections:
        key = _selection_key(existing.day, existing.meal_type, existing.menu_item_id, existing.quantity)
        pool.setdefault(key, []).append(existing)

    updated = []
    for entry in parsed:
        key = _selection_key(entry["day"], entry["meal_type"], entry["menu_item_id"], entry["quantity"])
        if pool.get(key):
            updated.append(pool[key].pop(0))
        else:
            updated.append(_new_selection(entry, subscription.restaurant_id))

    subscription.meal_selections = updated
    subscription.meals_per_week = len(updated)
