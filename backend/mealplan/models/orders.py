from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Order(db.Model):
    """
    A single dated, priced meal delivery.

    total_cents is fixed at creation (sum of price x quantity over items) and
    never recomputed. paid means the wallet debit and its payment row have
    already been committed.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_reconcile", "is_subscription", "payment_status", "status", "delivery_datetime"),
        db.Index("ix_orders_subscription_status", "subscription_id", "payment_status", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    restaurant_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    total_cents = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    delivery_datetime = db.Column(db.DateTime, nullable=False, index=True)

    payment_status = db.Column(db.String(16), nullable=False, default="unpaid")  # paid, unpaid
    payment_method = db.Column(db.String(16), nullable=False, default="wallet")

    is_subscription = db.Column(db.Boolean, nullable=False, default=False)
    subscription_id = db.Column(db.Integer, db.ForeignKey("subscriptions.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    user = db.relationship("User", foreign_keys=[user_id])
    restaurant = db.relationship("User", foreign_keys=[restaurant_id])
    subscription = db.relationship("Subscription", backref=db.backref("orders", lazy=True))
    items = db.relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
        lazy=True,
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "restaurant_id": self.restaurant_id,
            "user_id": self.user_id,
            "items": [i.to_dict() for i in self.items],
            "total_cents": self.total_cents,
            "status": self.status,
            "delivery_datetime": to_utc_z(self.delivery_datetime),
            "payment_status": self.payment_status,
            "payment_method": self.payment_method,
            "is_subscription": self.is_subscription,
            "subscription_id": self.subscription_id,
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }


class OrderItem(db.Model):
    """Line item on an order; price is copied from the plan or the catalog."""
    __tablename__ = "order_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    item_id = db.Column(db.Integer, db.ForeignKey("menu_items.id"), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    price_cents = db.Column(db.Integer, nullable=False)
    meal_type = db.Column(db.String(16), nullable=True)
    day = db.Column(db.String(16), nullable=True)

    order = db.relationship("Order", back_populates="items")
    menu_item = db.relationship("MenuItem")

    @property
    def line_total_cents(self) -> int:
        return self.price_cents * self.quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_id": self.item_id,
            "name": self.menu_item.name if self.menu_item else None,
            "quantity": self.quantity,
            "price_cents": self.price_cents,
            "meal_type": self.meal_type,
            "day": self.day,
        }
