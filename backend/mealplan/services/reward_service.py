# Overview: Refunds and loyalty/referral rewards credited to the wallet on order lifecycle transitions.

"""
Refund and Reward Service

All three flows are wallet credits paired with an append-only Payment row,
and all three are idempotent by looking at the ledger before writing:

- refund:          one per cancelled paid order (Payment.order_id)
- reward:          one per LOYALTY_MILESTONE successful order_payment rows
- referral_reward: one per referred customer, paid to the referrer when the
                   referee completes an order

None of these functions commit.
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Order, Payment, User
from . import wallet_service


def refund_order(order: Order) -> Payment | None:
    """Credit a cancelled paid order back to the wallet, once."""
    if order.payment_status != "paid" or order.payment_method != wallet_service.METHOD_WALLET:
        return None

    existing = db.session.query(Payment).filter_by(
        order_id=order.id, type=wallet_service.PAYMENT_TYPE_REFUND
    ).first()
    if existing:
        return existing

    wallet_service.credit(order.user_id, order.total_cents)
    return wallet_service.record_payment(
        user_id=order.user_id,
        amount_cents=order.total_cents,
        payment_type=wallet_service.PAYMENT_TYPE_REFUND,
        order_id=order.id,
        subscription_id=order.subscription_id,
        metadata={"note": "Refund for cancelled order"},
    )


def apply_loyalty_reward(user_id: int) -> Payment | None:
    """
    Issue the next milestone reward if the customer's count of successful
    order payments has reached it.
    """
    milestone = int(current_app.config.get("LOYALTY_MILESTONE", 10))
    amount = int(current_app.config.get("LOYALTY_REWARD_CENTS", 0))
    if milestone <= 0 or amount <= 0:
        return None

    paid_count = db.session.query(Payment).filter_by(
        user_id=user_id,
        type=wallet_service.PAYMENT_TYPE_ORDER,
        status=wallet_service.PAYMENT_STATUS_SUCCESS,
    ).count()
    issued = db.session.query(Payment).filter_by(
        user_id=user_id, type=wallet_service.PAYMENT_TYPE_REWARD
    ).count()
    if paid_count // milestone <= issued:
        return None

    wallet_service.credit(user_id, amount)
    return wallet_service.record_payment(
        user_id=user_id,
        amount_cents=amount,
        payment_type=wallet_service.PAYMENT_TYPE_REWARD,
        metadata={"note": "Loyalty reward", "milestone": (issued + 1) * milestone},
    )


def apply_referral_reward(referee: User) -> Payment | None:
    """Pay the referrer once for this referee."""
    amount = int(current_app.config.get("REFERRAL_REWARD_CENTS", 0))
    if not referee.referred_by_user_id or amount <= 0:
        return None

    already_paid = (
        db.session.query(Payment.id)
        .join(Order, Payment.order_id == Order.id)
        .filter(
            Payment.type == wallet_service.PAYMENT_TYPE_REFERRAL,
            Order.user_id == referee.id,
        )
        .first()
    )
    if already_paid:
        return None

    first_completed = db.session.query(Order).filter_by(
        user_id=referee.id, status="completed"
    ).order_by(Order.id).first()
    if not first_completed:
        return None

    wallet_service.credit(referee.referred_by_user_id, amount)
    return wallet_service.record_payment(
        user_id=referee.referred_by_user_id,
        amount_cents=amount,
        payment_type=wallet_service.PAYMENT_TYPE_REFERRAL,
        order_id=first_completed.id,
        metadata={"note": "Referral reward", "referredUserId": referee.id},
    )


def apply_completion_rewards(order: Order) -> list[Payment]:
    rewards = []
    loyalty = apply_loyalty_reward(order.user_id)
    if loyalty:
        rewards.append(loyalty)
    referee = db.session.query(User).filter_by(id=order.user_id).first()
    if referee:
        referral = apply_referral_reward(referee)
        if referral:
            rewards.append(referral)
    return rewards
