# Overview: Service-layer operations for orders; ad-hoc checkout and the order status lifecycle.

"""
Order Service

CHECKOUT:
- wallet:          debited immediately; order is paid
- card, local_app: a pending payment row is written and the order stays
                   unpaid (gateway settlement is out of scope)

STATUS FLOW:
    pending -> accepted -> cooking -> ready -> completed
    accepted -> ready (kitchens that skip the cooking step)
    pending | accepted -> cancelled

Kitchens drive progress on their own orders; customers may cancel their own
pending orders. Cancelling a paid order refunds it; completing an order
triggers loyalty and referral rewards.
"""

from __future__ import annotations

from datetime import datetime

from ..extensions import db
from ..models import Order, OrderItem, User
from ..models.users import ROLE_CUSTOMER, ROLE_RESTAURANT
from ..time_utils import day_name, parse_iso_datetime
from ..validation import NotFoundError, ValidationError, require_int_id, require_positive_int
from . import catalog_service, reward_service, wallet_service
from .concurrency import lock_for_update, run_with_retry


ORDER_STATUS_PENDING = "pending"
ORDER_STATUS_ACCEPTED = "accepted"
ORDER_STATUS_COOKING = "cooking"
ORDER_STATUS_READY = "ready"
ORDER_STATUS_COMPLETED = "completed"
ORDER_STATUS_CANCELLED = "cancelled"

VALID_ORDER_STATUSES = (
    ORDER_STATUS_PENDING,
    ORDER_STATUS_ACCEPTED,
    ORDER_STATUS_COOKING,
    ORDER_STATUS_READY,
    ORDER_STATUS_COMPLETED,
    ORDER_STATUS_CANCELLED,
)

_ORDER_TRANSITIONS = {
    ORDER_STATUS_PENDING: {ORDER_STATUS_ACCEPTED, ORDER_STATUS_CANCELLED},
    ORDER_STATUS_ACCEPTED: {ORDER_STATUS_COOKING, ORDER_STATUS_READY, ORDER_STATUS_CANCELLED},
    ORDER_STATUS_COOKING: {ORDER_STATUS_READY},
    ORDER_STATUS_READY: {ORDER_STATUS_COMPLETED},
    ORDER_STATUS_COMPLETED: set(),
    ORDER_STATUS_CANCELLED: set(),
}


class OrderError(Exception):
    """Raised for order operation errors (illegal transition, not permitted)."""
    pass


# =============================================================================
# CHECKOUT
# =============================================================================

def create_order(
    *,
    user_id: int,
    restaurant_id,
    items,
    delivery_datetime,
    payment_method: str = wallet_service.METHOD_WALLET,
) -> Order:
    """
    Place a one-off order. Line prices come from the catalog, not the client.

    Raises:
        ValidationError, NotFoundError: bad payload / unknown item
        InsufficientFundsError: wallet checkout the balance cannot cover
    """
    if not restaurant_id or not isinstance(items, list) or not items or not delivery_datetime:
        raise ValidationError("Missing required fields")
    restaurant_id = require_int_id(restaurant_id, "restaurantId")
    if payment_method not in wallet_service.VALID_METHODS:
        raise ValidationError(
            f"Invalid payment method: {payment_method}. Must be one of {list(wallet_service.VALID_METHODS)}"
        )

    if isinstance(delivery_datetime, datetime):
        delivery_at = delivery_datetime
    else:
        try:
            delivery_at = parse_iso_datetime(str(delivery_datetime))
        except ValueError:
            raise ValidationError("deliveryDateTime must be an ISO-8601 datetime")

    lines = []
    for entry in items:
        if not isinstance(entry, dict):
            raise ValidationError("Each item must be an object")
        item_id = require_int_id(entry.get("itemId", entry.get("item_id")), "itemId")
        quantity = require_positive_int(entry.get("quantity", 1), "quantity")
        quote = catalog_service.get_price(item_id)
        if not quote.exists:
            raise NotFoundError(f"Menu item {item_id} not found")
        if quote.restaurant_id != restaurant_id:
            raise ValidationError(f"Menu item {item_id} does not belong to this restaurant")
        lines.append((item_id, quantity, quote.price_cents, entry.get("mealType")))

    def _op():
        order = Order(
            restaurant_id=restaurant_id,
            user_id=user_id,
            items=[
                OrderItem(item_id=i, quantity=q, price_cents=p, meal_type=m, day=day_name(delivery_at.date()))
                for i, q, p, m in lines
            ],
            total_cents=sum(q * p for _, q, p, _ in lines),
            status=ORDER_STATUS_PENDING,
            delivery_datetime=delivery_at,
            payment_status="unpaid",
            payment_method=payment_method,
            is_subscription=False,
        )

        if payment_method == wallet_service.METHOD_WALLET:
            wallet_service.require_debit(user_id, order.total_cents)
            order.payment_status = "paid"
            status = wallet_service.PAYMENT_STATUS_SUCCESS
        else:
            status = wallet_service.PAYMENT_STATUS_PENDING

        db.session.add(order)
        db.session.flush()
        wallet_service.record_payment(
            user_id=user_id,
            amount_cents=order.total_cents,
            payment_type=wallet_service.PAYMENT_TYPE_ORDER,
            method=payment_method,
            status=status,
            order_id=order.id,
            metadata={"note": "Order checkout"},
        )
        db.session.commit()
        return order

    try:
        return run_with_retry(_op)
    except wallet_service.InsufficientFundsError:
        db.session.rollback()
        raise


# =============================================================================
# QUERIES
# =============================================================================

def list_customer_orders(user_id: int) -> list[Order]:
    return db.session.query(Order).filter_by(user_id=user_id).order_by(
        Order.delivery_datetime.desc(), Order.id.desc()
    ).all()


def list_restaurant_orders(restaurant_id: int, status: str | None = None) -> list[Order]:
    query = db.session.query(Order).filter_by(restaurant_id=restaurant_id)
    if status:
        query = query.filter_by(status=status)
    return query.order_by(Order.delivery_datetime, Order.id).all()


# =============================================================================
# STATUS LIFECYCLE
# =============================================================================

def can_transition(from_status: str, to_status: str) -> bool:
    return to_status in _ORDER_TRANSITIONS.get(from_status, set())


def update_order_status(order_id: int, actor: User, new_status: str) -> Order:
    """
    Move an order along its lifecycle with the side effects of the move.

    Raises:
        ValidationError: unknown status
        NotFoundError: order missing or not visible to the actor
        OrderError: transition not allowed for this actor / from this status
    """
    if new_status not in VALID_ORDER_STATUSES:
        raise ValidationError("Invalid status value")

    def _op():
        order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
        if not order:
            raise NotFoundError("Order not found")

        if actor.role == ROLE_RESTAURANT:
            if order.restaurant_id != actor.id:
                raise NotFoundError("Order not found")
        elif actor.role == ROLE_CUSTOMER:
            if order.user_id != actor.id:
                raise NotFoundError("Order not found")
            if new_status != ORDER_STATUS_CANCELLED or order.status != ORDER_STATUS_PENDING:
                raise OrderError("Customers can only cancel their own pending orders")
        else:
            raise OrderError("Not permitted to update order status")

        if not can_transition(order.status, new_status):
            raise OrderError(f"Cannot move order from {order.status} to {new_status}")

        order.status = new_status
        db.session.flush()

        if new_status == ORDER_STATUS_CANCELLED:
            reward_service.refund_order(order)
        elif new_status == ORDER_STATUS_COMPLETED:
            reward_service.apply_completion_rewards(order)

        db.session.commit()
        return order

    try:
        return run_with_retry(_op)
    except (NotFoundError, OrderError):
        db.session.rollback()
        raise
