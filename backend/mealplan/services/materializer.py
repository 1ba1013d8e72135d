# Overview: Expands a subscription's weekly plan into dated, priced order drafts.

"""
Order Materializer

Given a subscription's meal selections and a window of calendar dates, build
one Order per date whose weekday has at least one selection. All selections
for that weekday (lunch and dinner alike) become line items of that single
order. Days without selections produce nothing; sparse plans are legal.

Orders are returned unsaved. The billing processor adds them to the session
only after the wallet debit for week_total_cents has succeeded.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Iterable

from ..models import Order, OrderItem, Subscription
from ..time_utils import at_hour, date_range, day_name, week_end


@dataclass
class MaterializedWeek:
    orders: list[Order] = field(default_factory=list)
    week_total_cents: int = 0

    @property
    def order_count(self) -> int:
        return len(self.orders)

    @property
    def days(self) -> set[str]:
        return {item.day for order in self.orders for item in order.items}


def current_week_window(today: date, anchor: str = "sunday") -> list[date]:
    """Today through the last day of the current anchor-aligned week."""
    return date_range(today, week_end(today, anchor))


def renewal_window(week_start: date) -> list[date]:
    """A full seven-day week beginning on week_start."""
    return date_range(week_start, week_start + timedelta(days=6))


def materialize(
    subscription: Subscription,
    window: Iterable[date],
    *,
    payment_status: str = "paid",
    delivery_hour: int = 12,
    skip_dates: Iterable[date] = (),
) -> MaterializedWeek:
    """
    Build the order drafts for the given dates, in chronological order.

    Each order's total is sum(price x quantity) of its items, using the
    price captured on the selection, never the live catalog price.
    """
    skipped = set(skip_dates)
    week = MaterializedWeek()

    for day in sorted(window):
        if day in skipped:
            continue
        name = day_name(day)
        selections = [s for s in subscription.meal_selections if s.day.lower() == name]
        if not selections:
            continue

        items = [
            OrderItem(
                item_id=s.menu_item_id,
                quantity=s.quantity,
                price_cents=s.price_at_selection_cents,
                meal_type=s.meal_type,
                day=s.day,
            )
            for s in selections
        ]
        total = sum(i.price_cents * i.quantity for i in items)

        week.orders.append(Order(
            restaurant_id=subscription.restaurant_id,
            user_id=subscription.user_id,
            items=items,
            total_cents=total,
            status="pending",
            delivery_datetime=at_hour(day, delivery_hour),
            payment_status=payment_status,
            payment_method="wallet",
            is_subscription=True,
            subscription_id=subscription.id,
        ))
        week.week_total_cents += total

    return week
