# Overview: Read-side lookup into the kitchen menu catalog, plus the minimal kitchen-side editing surface.

from __future__ import annotations

from dataclasses import dataclass

from ..extensions import db
from ..models import MenuItem
from ..time_utils import DAY_NAMES
from ..validation import NotFoundError, ValidationError, require_choice, require_positive_int


MEAL_TYPES = ("lunch", "dinner")


@dataclass(frozen=True)
class PriceQuote:
    """Current catalog price for a menu item at lookup time."""
    menu_item_id: int
    price_cents: int | None
    exists: bool
    restaurant_id: int | None = None


def get_price(menu_item_id: int) -> PriceQuote:
    """Resolve a menu item reference to its current price snapshot."""
    item = db.session.query(MenuItem).filter_by(id=menu_item_id).first()
    if not item:
        return PriceQuote(menu_item_id=menu_item_id, price_cents=None, exists=False)
    return PriceQuote(
        menu_item_id=item.id,
        price_cents=item.price_cents,
        exists=True,
        restaurant_id=item.restaurant_id,
    )


def list_restaurant_menu(restaurant_id: int, include_unavailable: bool = False) -> list[MenuItem]:
    query = db.session.query(MenuItem).filter_by(restaurant_id=restaurant_id)
    if not include_unavailable:
        query = query.filter_by(is_available=True)
    day_order = {name: i for i, name in enumerate(DAY_NAMES)}
    items = query.order_by(MenuItem.id).all()
    return sorted(items, key=lambda i: (day_order.get(i.day, 7), i.meal_type, i.id))


def create_menu_item(restaurant_id: int, data: dict) -> MenuItem:
    name = (data.get("name") or "").strip()
    if not name:
        raise ValidationError("name is required")

    item = MenuItem(
        restaurant_id=restaurant_id,
        name=name,
        description=(data.get("description") or "").strip(),
        image_url=data.get("imageUrl") or data.get("image_url"),
        price_cents=require_positive_int(data.get("price_cents"), "price_cents"),
        day=require_choice(data.get("day"), "day", DAY_NAMES),
        meal_type=require_choice(data.get("mealType") or data.get("meal_type"), "mealType", MEAL_TYPES),
        is_available=bool(data.get("is_available", True)),
    )
    db.session.add(item)
    db.session.commit()
    return item


def update_menu_item(item_id: int, restaurant_id: int, data: dict) -> MenuItem:
    """
    Edit a dish. Price changes here never touch existing subscription plans;
    those keep the price captured on their meal selections.
    """
    item = db.session.query(MenuItem).filter_by(id=item_id, restaurant_id=restaurant_id).first()
    if not item:
        raise NotFoundError("Menu item not found")

    if "name" in data:
        name = (data.get("name") or "").strip()
        if not name:
            raise ValidationError("name cannot be empty")
        item.name = name
    if "description" in data:
        item.description = (data.get("description") or "").strip()
    if "price_cents" in data:
        item.price_cents = require_positive_int(data.get("price_cents"), "price_cents")
    if "is_available" in data:
        item.is_available = bool(data.get("is_available"))

    db.session.commit()
    return item
