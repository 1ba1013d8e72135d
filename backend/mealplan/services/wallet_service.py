# Overview: Service-layer operations for the customer wallet; the only code that moves wallet balances.

"""
Wallet Ledger Service

WHY: The wallet is the sole funding rail for subscription and ad-hoc orders.
Every balance change goes through debit/credit here and is paired with an
append-only Payment row written by the caller's unit of work.

INVARIANTS:
- wallet_balance_cents is never negative after a committed transaction.
- debit is a single conditional UPDATE (balance - amt WHERE balance >= amt).
  Two concurrent debits on the same account can never both succeed past the
  floor, on any database, without a separate read.
- debit/credit never commit; the caller commits the charge together with the
  orders and payment row it pays for.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import update

from ..extensions import db
from ..models import Payment, User
from .concurrency import run_with_retry


PAYMENT_TYPE_ORDER = "order_payment"
PAYMENT_TYPE_RECHARGE = "wallet_recharge"
PAYMENT_TYPE_REFUND = "refund"
PAYMENT_TYPE_REWARD = "reward"
PAYMENT_TYPE_REFERRAL = "referral_reward"

METHOD_WALLET = "wallet"
METHOD_CARD = "card"
METHOD_LOCAL_APP = "local_app"
VALID_METHODS = (METHOD_WALLET, METHOD_CARD, METHOD_LOCAL_APP)
RECHARGE_METHODS = (METHOD_CARD, METHOD_LOCAL_APP)

PAYMENT_STATUS_PENDING = "pending"
PAYMENT_STATUS_SUCCESS = "success"


class WalletError(Exception):
    """Raised for wallet operation errors (unknown user, invalid amount)."""
    pass


class InsufficientFundsError(WalletError):
    """
    The wallet cannot cover a charge.

    Carries the exact required and available amounts so the API can tell the
    customer how much to top up.
    """

    def __init__(self, required_cents: int, available_cents: int, message: str | None = None):
        self.required_cents = required_cents
        self.available_cents = available_cents
        super().__init__(
            message
            or f"Insufficient wallet balance. Required: {format_amount(required_cents)}, "
               f"Available: {format_amount(available_cents)}"
        )

    @property
    def shortfall_cents(self) -> int:
        return max(self.required_cents - self.available_cents, 0)

    def to_dict(self) -> dict:
        return {
            "error": str(self),
            "required_cents": self.required_cents,
            "available_cents": self.available_cents,
            "shortfall_cents": self.shortfall_cents,
        }


def format_amount(cents: int) -> str:
    currency = current_app.config.get("CURRENCY", "BDT")
    return f"{cents / 100:.2f} {currency}"


# =============================================================================
# BALANCE PRIMITIVES
# =============================================================================

def get_balance(user_id: int) -> int:
    """Current committed-or-flushed balance, read straight from the users row."""
    balance = db.session.query(User.wallet_balance_cents).filter_by(id=user_id).scalar()
    if balance is None:
        raise WalletError(f"User {user_id} not found")
    return balance


def debit(user_id: int, amount_cents: int) -> bool:
    """
    Atomically take amount_cents from the wallet if it is covered.

    Returns False (no change) when the balance is short. Insufficient funds is
    an expected outcome, not an exception, at this level.
    """
    if amount_cents < 0:
        raise WalletError("Debit amount cannot be negative")
    if amount_cents == 0:
        return True

    result = db.session.execute(
        update(User)
        .where(User.id == user_id, User.wallet_balance_cents >= amount_cents)
        .values(wallet_balance_cents=User.wallet_balance_cents - amount_cents)
        .execution_options(synchronize_session=False)
    )
    _expire_cached_balance(user_id)
    return result.rowcount == 1


def require_debit(user_id: int, amount_cents: int) -> None:
    """debit() that raises InsufficientFundsError with the exact shortfall."""
    if not debit(user_id, amount_cents):
        raise InsufficientFundsError(amount_cents, get_balance(user_id))


def credit(user_id: int, amount_cents: int) -> None:
    """Atomically add amount_cents to the wallet (refunds, rewards, recharges)."""
    if amount_cents <= 0:
        raise WalletError("Credit amount must be positive")

    result = db.session.execute(
        update(User)
        .where(User.id == user_id)
        .values(wallet_balance_cents=User.wallet_balance_cents + amount_cents)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise WalletError(f"User {user_id} not found")
    _expire_cached_balance(user_id)


def _expire_cached_balance(user_id: int) -> None:
    # Loaded User instances would otherwise keep serving the pre-update balance
    for obj in list(db.session.identity_map.values()):
        if isinstance(obj, User) and obj.id == user_id:
            db.session.expire(obj, ["wallet_balance_cents"])


# =============================================================================
# LEDGER
# =============================================================================

def record_payment(
    *,
    user_id: int,
    amount_cents: int,
    payment_type: str,
    method: str = METHOD_WALLET,
    status: str = PAYMENT_STATUS_SUCCESS,
    order_id: int | None = None,
    subscription_id: int | None = None,
    metadata: dict | None = None,
) -> Payment:
    """Append a ledger row inside the caller's transaction (flush, no commit)."""
    payment = Payment(
        user_id=user_id,
        order_id=order_id,
        subscription_id=subscription_id,
        amount_cents=amount_cents,
        type=payment_type,
        method=method,
        status=status,
        meta=metadata or {},
    )
    db.session.add(payment)
    db.session.flush()
    return payment


def recharge(user_id: int, amount_cents: int, method: str = METHOD_CARD) -> tuple[int, Payment]:
    """
    Top up the wallet.

    Gateway settlement is out of scope: the recharge is simulated as an
    immediately successful payment, as the storefront does today.

    Returns:
        (new_balance_cents, payment)
    """
    if method not in RECHARGE_METHODS:
        raise WalletError(f"Invalid recharge method: {method}. Must be one of {list(RECHARGE_METHODS)}")

    def _op():
        credit(user_id, amount_cents)
        payment = record_payment(
            user_id=user_id,
            amount_cents=amount_cents,
            payment_type=PAYMENT_TYPE_RECHARGE,
            method=method,
        )
        db.session.commit()
        return get_balance(user_id), payment

    return run_with_retry(_op)


def get_payments(user_id: int, limit: int | None = None) -> list[Payment]:
    """Ledger rows for a user, newest first."""
    query = db.session.query(Payment).filter_by(user_id=user_id).order_by(
        Payment.created_at.desc(), Payment.id.desc()
    )
    if limit:
        query = query.limit(limit)
    return query.all()
