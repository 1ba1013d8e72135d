# Overview: Subscription status state machine; the single place transitions are validated.

"""
Subscription Lifecycle Service

================================================================================
STATE MACHINE
================================================================================

    active  -> paused     (customer pause)
    paused  -> active     (customer resume)
    active  -> halted     (processor: a charge found insufficient funds)
    halted  -> active     (processor: a later charge succeeded)
    active  -> expired    (processor: non-repeating plan past end_date)
    any non-cancelled -> cancelled (customer cancel, terminal)

RULES:
1. cancelled is terminal; nothing leaves it.
2. halted is entered and left only by the billing processor, never directly
   by a customer request.
3. Cancelling cascades synchronously: every pending, unpaid order of the
   subscription is cancelled in the same transaction.
4. Pausing leaves materialized orders alone; the daily reconciliation pass
   cancels them instead of charging while the subscription is not active.

None of these functions commit; callers own the transaction.
================================================================================
"""

from __future__ import annotations

from ..extensions import db
from ..models import Order, Subscription


STATUS_ACTIVE = "active"
STATUS_PAUSED = "paused"
STATUS_HALTED = "halted"
STATUS_EXPIRED = "expired"
STATUS_CANCELLED = "cancelled"

VALID_STATUSES = {STATUS_ACTIVE, STATUS_PAUSED, STATUS_HALTED, STATUS_EXPIRED, STATUS_CANCELLED}

ACTOR_CUSTOMER = "customer"
ACTOR_PROCESSOR = "processor"

# (from, to) -> actors allowed to drive it
_TRANSITIONS = {
    (STATUS_ACTIVE, STATUS_PAUSED): {ACTOR_CUSTOMER},
    (STATUS_PAUSED, STATUS_ACTIVE): {ACTOR_CUSTOMER},
    (STATUS_ACTIVE, STATUS_HALTED): {ACTOR_PROCESSOR},
    (STATUS_HALTED, STATUS_ACTIVE): {ACTOR_PROCESSOR},
    (STATUS_ACTIVE, STATUS_EXPIRED): {ACTOR_PROCESSOR},
    (STATUS_ACTIVE, STATUS_CANCELLED): {ACTOR_CUSTOMER},
    (STATUS_PAUSED, STATUS_CANCELLED): {ACTOR_CUSTOMER},
    (STATUS_HALTED, STATUS_CANCELLED): {ACTOR_CUSTOMER},
    (STATUS_EXPIRED, STATUS_CANCELLED): {ACTOR_CUSTOMER},
}

# Messages name the prior state a customer needs
_REQUIRED_STATE_MESSAGES = {
    STATUS_PAUSED: "Only active subscriptions can be paused",
    STATUS_ACTIVE: "Only paused subscriptions can be resumed",
    STATUS_CANCELLED: "Subscription is already cancelled",
}


class LifecycleError(ValueError):
    """
    Raised when an invalid status transition is attempted.

    This is a domain error, not a technical error.
    """
    pass


def validate_status(status: str) -> None:
    if status not in VALID_STATUSES:
        raise LifecycleError(
            f"Invalid status '{status}'. Must be one of: {', '.join(sorted(VALID_STATUSES))}"
        )


def can_transition(from_status: str, to_status: str, actor: str = ACTOR_CUSTOMER) -> bool:
    validate_status(from_status)
    validate_status(to_status)
    return actor in _TRANSITIONS.get((from_status, to_status), set())


def require_transition(subscription: Subscription, to_status: str, actor: str = ACTOR_CUSTOMER) -> None:
    if can_transition(subscription.status, to_status, actor):
        return
    if actor == ACTOR_CUSTOMER and to_status in _REQUIRED_STATE_MESSAGES:
        raise LifecycleError(_REQUIRED_STATE_MESSAGES[to_status])
    raise LifecycleError(
        f"Cannot move subscription {subscription.id} from {subscription.status} to {to_status}"
    )


def is_billable(subscription: Subscription | None) -> bool:
    """Whether materialized orders of this subscription may still be charged."""
    return subscription is not None and subscription.status in (STATUS_ACTIVE, STATUS_HALTED)


# =============================================================================
# TRANSITIONS
# =============================================================================

def pause(subscription: Subscription) -> Subscription:
    require_transition(subscription, STATUS_PAUSED)
    subscription.status = STATUS_PAUSED
    return subscription


def resume(subscription: Subscription) -> Subscription:
    require_transition(subscription, STATUS_ACTIVE)
    subscription.status = STATUS_ACTIVE
    return subscription


def cancel(subscription: Subscription) -> int:
    """
    Cancel (terminal) and cascade to pending, unpaid orders.

    Paid orders are left untouched.

    Returns:
        Number of orders cancelled by the cascade
    """
    require_transition(subscription, STATUS_CANCELLED)
    subscription.status = STATUS_CANCELLED

    orders = db.session.query(Order).filter_by(
        subscription_id=subscription.id,
        payment_status="unpaid",
        status="pending",
    ).all()
    for order in orders:
        order.status = "cancelled"
    db.session.flush()
    return len(orders)


def halt(subscription: Subscription) -> Subscription:
    require_transition(subscription, STATUS_HALTED, actor=ACTOR_PROCESSOR)
    subscription.status = STATUS_HALTED
    for selection in subscription.meal_selections:
        selection.payment_status = "unpaid"
    return subscription


def unhalt(subscription: Subscription) -> Subscription:
    require_transition(subscription, STATUS_ACTIVE, actor=ACTOR_PROCESSOR)
    subscription.status = STATUS_ACTIVE
    return subscription


def expire(subscription: Subscription) -> Subscription:
    require_transition(subscription, STATUS_EXPIRED, actor=ACTOR_PROCESSOR)
    subscription.status = STATUS_EXPIRED
    return subscription
