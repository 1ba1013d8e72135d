from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class MenuItem(db.Model):
    """
    A dish offered by a kitchen on a given weekday and meal slot.

    The catalog is read by subscriptions only through catalog_service.get_price;
    the price is snapshotted onto the meal selection at selection time.
    """
    __tablename__ = "menu_items"
    __table_args__ = (
        db.Index("ix_menu_items_restaurant_day", "restaurant_id", "day", "meal_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    restaurant_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    name = db.Column(db.String(128), nullable=False)
    description = db.Column(db.String(1024), nullable=False, default="")
    image_url = db.Column(db.String(512), nullable=True)
    price_cents = db.Column(db.Integer, nullable=False)

    day = db.Column(db.String(16), nullable=False)  # sunday..saturday
    meal_type = db.Column(db.String(16), nullable=False)  # lunch, dinner
    is_available = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    restaurant = db.relationship("User", backref=db.backref("menu_items", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "restaurant_id": self.restaurant_id,
            "name": self.name,
            "description": self.description,
            "image_url": self.image_url,
            "price_cents": self.price_cents,
            "day": self.day,
            "meal_type": self.meal_type,
            "is_available": self.is_available,
            "updated_at": to_utc_z(self.updated_at),
        }

    def to_summary(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "image_url": self.image_url,
            "price_cents": self.price_cents,
        }
