"""
Order materializer tests.

Verifies:
- One order per date with selections; lunch and dinner share the order
- Orders come back in chronological order
- Totals use the captured selection price, never the live catalog
- Sum of order totals equals the week total
- Window helpers respect the anchor weekday
"""

from datetime import date, datetime

import pytest

from mealplan.models import MealSelection, Subscription
from mealplan.services.materializer import current_week_window, materialize, renewal_window
from mealplan.time_utils import day_name, week_start

from conftest import SUNDAY, WEDNESDAY


def _subscription(*lines) -> Subscription:
    """lines: (day, meal_type, menu_item_id, quantity, price_cents)"""
    return Subscription(
        id=42,
        user_id=1,
        restaurant_id=2,
        status="active",
        is_repeating=True,
        meal_selections=[
            MealSelection(
                day=day,
                meal_type=meal_type,
                menu_item_id=item_id,
                quantity=quantity,
                price_at_selection_cents=price,
                payment_status="unpaid",
            )
            for day, meal_type, item_id, quantity, price in lines
        ],
    )


# =============================================================================
# WINDOWS
# =============================================================================


class TestWindows:

    def test_current_week_runs_through_saturday(self):
        window = current_week_window(WEDNESDAY)
        assert window == [date(2026, 10, 14), date(2026, 10, 15), date(2026, 10, 16), date(2026, 10, 17)]

    def test_current_week_on_anchor_day_is_full_week(self):
        window = current_week_window(SUNDAY)
        assert len(window) == 7
        assert window[0] == SUNDAY
        assert day_name(window[-1]) == "saturday"

    def test_current_week_with_monday_anchor(self):
        window = current_week_window(WEDNESDAY, anchor="monday")
        assert window[-1] == date(2026, 10, 18)

    def test_renewal_window_is_seven_days_from_anchor(self):
        window = renewal_window(SUNDAY)
        assert window[0] == SUNDAY
        assert window[-1] == date(2026, 10, 24)
        assert len(window) == 7

    def test_week_start(self):
        assert week_start(WEDNESDAY) == date(2026, 10, 11)
        assert week_start(SUNDAY) == SUNDAY
        assert week_start(WEDNESDAY, "monday") == date(2026, 10, 12)


# =============================================================================
# MATERIALIZATION
# =============================================================================


class TestMaterialize:

    def test_lunch_and_dinner_share_one_order(self, app):
        sub = _subscription(
            ("wednesday", "lunch", 1, 1, 12000),
            ("wednesday", "dinner", 2, 2, 8000),
        )
        week = materialize(sub, current_week_window(WEDNESDAY))

        assert week.order_count == 1
        order = week.orders[0]
        assert len(order.items) == 2
        assert order.total_cents == 12000 + 2 * 8000
        assert order.delivery_datetime == datetime(2026, 10, 14, 12, 0)

    def test_days_without_selections_produce_nothing(self, app):
        sub = _subscription(
            ("monday", "lunch", 1, 1, 10000),
            ("friday", "dinner", 2, 1, 15000),
        )
        week = materialize(sub, renewal_window(SUNDAY))

        assert [o.delivery_datetime.date() for o in week.orders] == [date(2026, 10, 19), date(2026, 10, 23)]
        assert week.days == {"monday", "friday"}

    def test_orders_are_chronological_for_unsorted_window(self, app):
        sub = _subscription(
            ("sunday", "lunch", 1, 1, 9000),
            ("saturday", "dinner", 2, 1, 7000),
            ("tuesday", "lunch", 3, 1, 6000),
        )
        window = list(reversed(renewal_window(SUNDAY)))
        week = materialize(sub, window)

        dates = [o.delivery_datetime for o in week.orders]
        assert dates == sorted(dates)

    def test_week_total_is_sum_of_order_totals(self, app):
        sub = _subscription(
            ("sunday", "lunch", 1, 3, 9000),
            ("monday", "lunch", 2, 1, 10000),
            ("wednesday", "lunch", 3, 1, 12000),
            ("wednesday", "dinner", 4, 2, 8000),
        )
        week = materialize(sub, renewal_window(SUNDAY))

        assert week.week_total_cents == sum(o.total_cents for o in week.orders)
        assert week.week_total_cents == sub.weekly_total_cents

    def test_partial_week_skips_past_days(self, app):
        sub = _subscription(
            ("monday", "lunch", 1, 1, 10000),
            ("friday", "dinner", 2, 1, 15000),
        )
        week = materialize(sub, current_week_window(WEDNESDAY))

        assert week.order_count == 1
        assert week.week_total_cents == 15000

    def test_uses_snapshot_price(self, app):
        sub = _subscription(("friday", "dinner", 99, 1, 15000))
        week = materialize(sub, current_week_window(WEDNESDAY))

        assert week.orders[0].items[0].price_cents == 15000

    def test_order_fields(self, app):
        sub = _subscription(("friday", "dinner", 2, 1, 15000))
        week = materialize(sub, current_week_window(WEDNESDAY), payment_status="unpaid", delivery_hour=19)
        order = week.orders[0]

        assert order.status == "pending"
        assert order.payment_status == "unpaid"
        assert order.is_subscription is True
        assert order.subscription_id == 42
        assert order.user_id == 1
        assert order.restaurant_id == 2
        assert order.delivery_datetime == datetime(2026, 10, 16, 19, 0)

    def test_skip_dates(self, app):
        sub = _subscription(
            ("wednesday", "lunch", 1, 1, 12000),
            ("friday", "dinner", 2, 1, 15000),
        )
        week = materialize(sub, current_week_window(WEDNESDAY), skip_dates={WEDNESDAY})

        assert week.days == {"friday"}

    @pytest.mark.parametrize("window", [[], [date(2026, 10, 17)]])
    def test_empty_result(self, app, window):
        sub = _subscription(("friday", "dinner", 2, 1, 15000))
        week = materialize(sub, window)

        assert week.orders == []
        assert week.week_total_cents == 0
