# Overview: Billing and renewal processor; gates order materialization behind wallet debits.

"""
Subscription Billing Service

WHY: Subscription orders are prepaid from the wallet. No materialized order
may exist as "paid" unless the debit and its ledger row were committed in the
same transaction.

BILLING MOMENTS:
- Upfront:   at creation, the remaining days of the current week.
- Renewal:   on the anchor weekday, the full week starting that day, for every
             active repeating subscription. Idempotent per subscription per
             week through SubscriptionBillingCycle.
- Daily:     settles still-unpaid subscription orders delivering today.
- Expiry:    non-repeating plans past their end_date become expired.

FAILURE SEMANTICS:
- Insufficient funds is an outcome, not an error: upfront raises
  InsufficientFundsError to the caller (who rolls back), background passes
  halt the subscription.
- Any other failure inside a batch is logged, rolled back, recorded in
  errors[] and the batch moves on to the next item.

Each charge group (debit + orders + payment + cycle row) is flushed inside one
session transaction; the caller or the batch loop commits it once.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date

from flask import current_app

from ..extensions import db
from ..models import Order, Subscription, SubscriptionBillingCycle
from ..time_utils import day_bounds, day_name, utctoday, week_start
from . import lifecycle_service, wallet_service
from .concurrency import lock_for_update, run_with_retry
from .materializer import MaterializedWeek, current_week_window, materialize, renewal_window
from .wallet_service import InsufficientFundsError


CYCLE_UPFRONT = "upfront"
CYCLE_RENEWAL = "renewal"
CYCLE_REACTIVATION = "reactivation"


class BillingError(Exception):
    """Raised for billing requests that cannot be served (nothing to charge)."""
    pass


@dataclass
class BatchResult:
    """Counters returned by the scheduled passes."""
    processed: int = 0
    paid: int = 0
    halted: int = 0
    renewed: int = 0
    expired: int = 0
    cancelled: int = 0
    errors: list[dict] = field(default_factory=list)

    def merge(self, other: "BatchResult") -> "BatchResult":
        self.processed += other.processed
        self.paid += other.paid
        self.halted += other.halted
        self.renewed += other.renewed
        self.expired += other.expired
        self.cancelled += other.cancelled
        self.errors.extend(other.errors)
        return self

    def to_dict(self) -> dict:
        return {
            "processed": self.processed,
            "paid": self.paid,
            "halted": self.halted,
            "renewed": self.renewed,
            "expired": self.expired,
            "cancelled": self.cancelled,
            "errors": list(self.errors),
        }


def _anchor() -> str:
    return current_app.config.get("RENEWAL_ANCHOR_WEEKDAY", "sunday").lower()


def _delivery_hour() -> int:
    return int(current_app.config.get("DELIVERY_HOUR", 12))


# =============================================================================
# CHARGE GROUP
# =============================================================================

def _charge_week(
    subscription: Subscription,
    week: MaterializedWeek,
    *,
    cycle_week_start: date,
    kind: str,
    note: str,
) -> None:
    """
    Debit week_total, then persist orders, ledger row and cycle row.

    Raises InsufficientFundsError before anything is added to the session.
    Does not commit.
    """
    wallet_service.require_debit(subscription.user_id, week.week_total_cents)

    for order in week.orders:
        db.session.add(order)
    db.session.flush()

    payment = None
    if week.week_total_cents > 0:
        payment = wallet_service.record_payment(
            user_id=subscription.user_id,
            amount_cents=week.week_total_cents,
            payment_type=wallet_service.PAYMENT_TYPE_ORDER,
            subscription_id=subscription.id,
            metadata={
                "note": note,
                "subscriptionId": str(subscription.id),
                "weekStart": cycle_week_start.isoformat(),
                "orderIds": [o.id for o in week.orders],
            },
        )

    existing_cycle = db.session.query(SubscriptionBillingCycle).filter_by(
        subscription_id=subscription.id, week_start=cycle_week_start
    ).first()
    if not existing_cycle:
        db.session.add(SubscriptionBillingCycle(
            subscription_id=subscription.id,
            week_start=cycle_week_start,
            kind=kind,
            amount_cents=week.week_total_cents,
            payment_id=payment.id if payment else None,
        ))

    charged_days = week.days
    for selection in subscription.meal_selections:
        if selection.day in charged_days:
            selection.payment_status = "paid"
    db.session.flush()


# =============================================================================
# UPFRONT
# =============================================================================

def charge_upfront(subscription: Subscription, today: date | None = None) -> MaterializedWeek:
    """
    Charge the remaining days of the current week for a new subscription.

    The subscription must already be flushed (it needs an id). On
    InsufficientFundsError nothing has been added; the caller rolls back the
    subscription insert so no orphan survives.
    """
    today = today or utctoday()
    anchor = _anchor()
    week = materialize(
        subscription,
        current_week_window(today, anchor),
        delivery_hour=_delivery_hour(),
    )
    _charge_week(
        subscription,
        week,
        cycle_week_start=week_start(today, anchor),
        kind=CYCLE_UPFRONT,
        note="Upfront subscription payment (initial week)",
    )
    return week


# =============================================================================
# DAILY RECONCILIATION
# =============================================================================

def _settle_order(order_id: int) -> str:
    order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
    if not order or order.payment_status != "unpaid" or order.status != "pending":
        return "skipped"

    subscription = order.subscription
    if not lifecycle_service.is_billable(subscription):
        order.status = "cancelled"
        db.session.commit()
        return "cancelled"

    if not wallet_service.debit(order.user_id, order.total_cents):
        if subscription.status == lifecycle_service.STATUS_ACTIVE:
            lifecycle_service.halt(subscription)
        db.session.commit()
        current_app.logger.warning(
            "Subscription %s halted: order %s needs %s, wallet short",
            subscription.id, order.id, order.total_cents,
        )
        return "halted"

    order.payment_status = "paid"
    wallet_service.record_payment(
        user_id=order.user_id,
        amount_cents=order.total_cents,
        payment_type=wallet_service.PAYMENT_TYPE_ORDER,
        order_id=order.id,
        subscription_id=subscription.id,
        metadata={"note": "Daily subscription payment", "subscriptionId": str(subscription.id)},
    )
    if subscription.status == lifecycle_service.STATUS_HALTED:
        lifecycle_service.unhalt(subscription)
    db.session.commit()
    return "paid"


def run_daily_reconciliation(today: date | None = None) -> BatchResult:
    """
    Settle pending, unpaid subscription orders delivering today.

    Safe to run repeatedly: paid and cancelled orders drop out of the query,
    and orders left unpaid by a halt are simply retried.
    """
    today = today or utctoday()
    start, end = day_bounds(today)
    result = BatchResult()

    order_ids = [
        row.id for row in db.session.query(Order.id).filter(
            Order.is_subscription.is_(True),
            Order.payment_status == "unpaid",
            Order.status == "pending",
            Order.delivery_datetime >= start,
            Order.delivery_datetime < end,
        ).order_by(Order.delivery_datetime, Order.id).all()
    ]

    for order_id in order_ids:
        def _op(order_id=order_id):
            return _settle_order(order_id)

        try:
            outcome = run_with_retry(_op)
        except Exception as exc:
            db.session.rollback()
            current_app.logger.exception("Daily settlement failed for order %s", order_id)
            result.errors.append({"order_id": order_id, "error": str(exc)})
            continue

        if outcome == "skipped":
            continue
        result.processed += 1
        if outcome == "paid":
            result.paid += 1
        elif outcome == "halted":
            result.halted += 1
        elif outcome == "cancelled":
            result.cancelled += 1

    return result


# =============================================================================
# WEEKLY RENEWAL
# =============================================================================

def _renew_subscription(subscription_id: int, cycle_start: date) -> str:
    subscription = lock_for_update(
        db.session.query(Subscription).filter_by(id=subscription_id)
    ).first()
    if (
        not subscription
        or subscription.status != lifecycle_service.STATUS_ACTIVE
        or not subscription.is_repeating
    ):
        return "skipped"

    already_billed = db.session.query(SubscriptionBillingCycle.id).filter_by(
        subscription_id=subscription.id, week_start=cycle_start
    ).first()
    if already_billed:
        return "skipped"

    week = materialize(subscription, renewal_window(cycle_start), delivery_hour=_delivery_hour())
    if week.week_total_cents <= 0:
        return "skipped"

    try:
        _charge_week(
            subscription,
            week,
            cycle_week_start=cycle_start,
            kind=CYCLE_RENEWAL,
            note="Weekly subscription renewal payment",
        )
    except InsufficientFundsError as exc:
        lifecycle_service.halt(subscription)
        db.session.commit()
        current_app.logger.warning(
            "Subscription %s halted at renewal for week %s: %s", subscription.id, cycle_start, exc
        )
        return "halted"

    db.session.commit()
    current_app.logger.info(
        "Subscription %s renewed for week %s: %s orders, %s charged",
        subscription.id, cycle_start, week.order_count, week.week_total_cents,
    )
    return "renewed"


def run_weekly_renewal(today: date | None = None) -> BatchResult:
    """
    Charge and materialize the week starting today for every active,
    repeating subscription. Does nothing unless today is the anchor weekday.
    """
    today = today or utctoday()
    result = BatchResult()
    if day_name(today) != _anchor():
        return result

    subscription_ids = [
        row.id for row in db.session.query(Subscription.id).filter_by(
            status=lifecycle_service.STATUS_ACTIVE, is_repeating=True
        ).order_by(Subscription.id).all()
    ]

    for subscription_id in subscription_ids:
        def _op(subscription_id=subscription_id):
            return _renew_subscription(subscription_id, today)

        try:
            outcome = run_with_retry(_op)
        except Exception as exc:
            db.session.rollback()
            current_app.logger.exception("Weekly renewal failed for subscription %s", subscription_id)
            result.errors.append({"subscription_id": subscription_id, "error": str(exc)})
            continue

        if outcome == "renewed":
            result.renewed += 1
        elif outcome == "halted":
            result.halted += 1

    return result


# =============================================================================
# EXPIRY
# =============================================================================

def expire_ended_subscriptions(today: date | None = None) -> BatchResult:
    """Move active, non-repeating subscriptions whose end_date has passed to expired."""
    today = today or utctoday()
    result = BatchResult()

    subscription_ids = [
        row.id for row in db.session.query(Subscription.id).filter(
            Subscription.status == lifecycle_service.STATUS_ACTIVE,
            Subscription.is_repeating.is_(False),
            Subscription.end_date.isnot(None),
            Subscription.end_date < today,
        ).order_by(Subscription.id).all()
    ]

    for subscription_id in subscription_ids:
        def _op(subscription_id=subscription_id):
            subscription = lock_for_update(
                db.session.query(Subscription).filter_by(id=subscription_id)
            ).first()
            if not subscription or subscription.status != lifecycle_service.STATUS_ACTIVE:
                return False
            lifecycle_service.expire(subscription)
            db.session.commit()
            return True

        try:
            if run_with_retry(_op):
                result.expired += 1
        except Exception as exc:
            db.session.rollback()
            current_app.logger.exception("Expiry failed for subscription %s", subscription_id)
            result.errors.append({"subscription_id": subscription_id, "error": str(exc)})

    return result


# =============================================================================
# ENTRY POINT
# =============================================================================

def process_daily(today: date | None = None) -> BatchResult:
    """
    The once-a-day job: settlement, then renewal (anchor day only), then expiry.

    Each task is idempotent on its own, so the composed job is too.
    """
    today = today or utctoday()
    result = run_daily_reconciliation(today)
    result.merge(run_weekly_renewal(today))
    result.merge(expire_ended_subscriptions(today))
    current_app.logger.info("Daily subscription processing for %s: %s", today, result.to_dict())
    return result


# =============================================================================
# REACTIVATION AND LEGACY LUMP PAYMENT
# =============================================================================

def reactivate_halted(subscription: Subscription, today: date | None = None) -> MaterializedWeek:
    """
    Bring a halted subscription back after the customer has topped up.

    Charges the remaining days of the current week that have no live order
    yet. Success moves halted -> active (processor-driven); on
    InsufficientFundsError the subscription stays halted. Does not commit.
    """
    if subscription.status != lifecycle_service.STATUS_HALTED:
        raise lifecycle_service.LifecycleError("Only halted subscriptions can be reactivated")

    today = today or utctoday()
    anchor = _anchor()
    window = current_week_window(today, anchor)

    covered = {
        o.delivery_datetime.date()
        for o in db.session.query(Order).filter(
            Order.subscription_id == subscription.id,
            Order.status != "cancelled",
        ).all()
    }
    week = materialize(subscription, window, delivery_hour=_delivery_hour(), skip_dates=covered)
    _charge_week(
        subscription,
        week,
        cycle_week_start=week_start(today, anchor),
        kind=CYCLE_REACTIVATION,
        note="Subscription reactivation payment (remaining week)",
    )
    lifecycle_service.unhalt(subscription)
    return week


def trigger_lump_payment(user_id: int) -> tuple:
    """
    Demo billing path: charge the plan total of every active subscription of
    the user as one payment. Creates no orders.

    Returns:
        (payment, new_balance_cents, subscription_count)
    """
    def _op():
        subscriptions = db.session.query(Subscription).filter_by(
            user_id=user_id, status=lifecycle_service.STATUS_ACTIVE
        ).all()
        if not subscriptions:
            raise BillingError("No active subscriptions to pay for")

        total = sum(s.weekly_total_cents for s in subscriptions)
        if total <= 0:
            raise BillingError("Total payment amount is zero")

        wallet_service.require_debit(user_id, total)
        payment = wallet_service.record_payment(
            user_id=user_id,
            amount_cents=total,
            payment_type=wallet_service.PAYMENT_TYPE_ORDER,
            metadata={
                "note": "Subscription weekly payment (Demo)",
                "subscriptionCount": len(subscriptions),
            },
        )
        db.session.commit()
        return payment, wallet_service.get_balance(user_id), len(subscriptions)

    return run_with_retry(_op)
