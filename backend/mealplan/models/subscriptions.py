from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Subscription(db.Model):
    """
    A customer's recurring weekly meal plan with one kitchen.

    STATUS (see lifecycle_service for the transition table):
    - active:    billed by the daily/weekly processor
    - paused:    customer hold; pending orders are cancelled by reconciliation
    - halted:    a charge failed for lack of funds; only the processor leaves it
    - expired:   non-repeating plan past its end_date
    - cancelled: terminal

    INVARIANT: end_date is NULL if and only if is_repeating.
    Never deleted once committed; cancellation is a status.
    """
    __tablename__ = "subscriptions"
    __table_args__ = (
        db.Index("ix_subscriptions_status_repeating", "status", "is_repeating"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    restaurant_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    plan_type = db.Column(db.String(16), nullable=False, default="weekly")  # weekly, monthly, custom
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=True)

    status = db.Column(db.String(16), nullable=False, default="active", index=True)
    is_repeating = db.Column(db.Boolean, nullable=False, default=True)
    meals_per_week = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    user = db.relationship("User", foreign_keys=[user_id], backref=db.backref("subscriptions", lazy=True))
    restaurant = db.relationship("User", foreign_keys=[restaurant_id])
    meal_selections = db.relationship(
        "MealSelection",
        back_populates="subscription",
        cascade="all, delete-orphan",
        order_by="MealSelection.id",
        lazy=True,
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def weekly_total_cents(self) -> int:
        return sum(s.line_total_cents for s in self.meal_selections)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "restaurant_id": self.restaurant_id,
            "restaurant_name": self.restaurant.name if self.restaurant else None,
            "plan_type": self.plan_type,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "status": self.status,
            "is_repeating": self.is_repeating,
            "meals_per_week": self.meals_per_week,
            "weekly_total_cents": self.weekly_total_cents,
            "meal_selections": [s.to_dict() for s in self.meal_selections],
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class MealSelection(db.Model):
    """
    One (day, meal type, menu item, quantity) line of a subscription plan.

    price_at_selection_cents is a snapshot taken when the line was created or
    explicitly edited. It does not follow later catalog price changes.
    """
    __tablename__ = "meal_selections"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    subscription_id = db.Column(db.Integer, db.ForeignKey("subscriptions.id"), nullable=False, index=True)
    menu_item_id = db.Column(db.Integer, db.ForeignKey("menu_items.id"), nullable=False)

    day = db.Column(db.String(16), nullable=False)  # sunday..saturday
    meal_type = db.Column(db.String(16), nullable=False)  # lunch, dinner
    quantity = db.Column(db.Integer, nullable=False, default=1)
    price_at_selection_cents = db.Column(db.Integer, nullable=False)
    payment_status = db.Column(db.String(16), nullable=False, default="unpaid")  # paid, unpaid

    subscription = db.relationship("Subscription", back_populates="meal_selections")
    menu_item = db.relationship("MenuItem")

    @property
    def line_total_cents(self) -> int:
        return self.price_at_selection_cents * self.quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "menu_item_id": self.menu_item_id,
            "menu_item": self.menu_item.to_summary() if self.menu_item else None,
            "day": self.day,
            "meal_type": self.meal_type,
            "quantity": self.quantity,
            "price_at_selection_cents": self.price_at_selection_cents,
            "payment_status": self.payment_status,
        }


class SubscriptionBillingCycle(db.Model):
    """
    One row per (subscription, week) that has been charged.

    WHY: The unique constraint makes weekly billing idempotent; a renewal
    pass that runs twice on the anchor day finds the row and skips.

    KIND: upfront (creation), renewal (weekly anchor), reactivation
    (halted subscription brought back by a successful charge).
    """
    __tablename__ = "subscription_billing_cycles"
    __table_args__ = (
        db.UniqueConstraint("subscription_id", "week_start", name="uq_billing_cycles_sub_week"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    subscription_id = db.Column(db.Integer, db.ForeignKey("subscriptions.id"), nullable=False, index=True)
    week_start = db.Column(db.Date, nullable=False)
    kind = db.Column(db.String(16), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    payment_id = db.Column(db.Integer, db.ForeignKey("payments.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    subscription = db.relationship("Subscription", backref=db.backref("billing_cycles", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "subscription_id": self.subscription_id,
            "week_start": self.week_start.isoformat(),
            "kind": self.kind,
            "amount_cents": self.amount_cents,
            "payment_id": self.payment_id,
            "created_at": to_utc_z(self.created_at),
        }
