from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Payment(db.Model):
    """
    Append-only wallet ledger entry.

    TYPES:
    - order_payment:   wallet debit for orders (upfront, renewal, daily, checkout)
    - wallet_recharge: top-up credit
    - refund:          credit for a cancelled paid order
    - reward:          loyalty milestone credit
    - referral_reward: credit to the referrer on a referee's first completed order

    IMMUTABLE: Records are never updated or deleted. Milestone and referral
    rewards are detected by counting / looking up rows here.
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.Index("ix_payments_user_type_status", "user_id", "type", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)
    subscription_id = db.Column(db.Integer, db.ForeignKey("subscriptions.id"), nullable=True, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    type = db.Column(db.String(32), nullable=False, index=True)
    method = db.Column(db.String(16), nullable=False, default="wallet")  # wallet, card, local_app
    status = db.Column(db.String(16), nullable=False, default="success")  # pending, success

    # "metadata" is reserved on declarative classes
    meta = db.Column("metadata", db.JSON, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    user = db.relationship("User", backref=db.backref("payments", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "order_id": self.order_id,
            "subscription_id": self.subscription_id,
            "amount_cents": self.amount_cents,
            "type": self.type,
            "method": self.method,
            "status": self.status,
            "metadata": self.meta or {},
            "created_at": to_utc_z(self.created_at),
        }
