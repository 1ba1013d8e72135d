# Overview: Flask API routes for subscriptions; plan management and the billing triggers.

# backend/mealplan/routes/subscriptions.py
"""
Subscription API Routes

DESIGN:
- Customers create, edit, pause, resume and cancel their weekly plans
- Creation charges the rest of the current week upfront from the wallet
- process-daily is the idempotent trigger for settlement, renewal and expiry
- trigger-payment is the legacy lump-sum demo charge

SECURITY:
- customer role required for plan management
- admin role required for process-daily (cron uses the CLI command instead)
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..models.users import ROLE_ADMIN, ROLE_CUSTOMER
from ..services import billing_service, subscription_service
from ..services.billing_service import BillingError
from ..services.lifecycle_service import LifecycleError
from ..services.wallet_service import InsufficientFundsError, format_amount
from ..time_utils import parse_iso_date, utctoday
from ..validation import NotFoundError, ValidationError, require_bool
from ..decorators import require_auth, require_role


subscriptions_bp = Blueprint("subscriptions", __name__, url_prefix="/api/subscriptions")


def _error_response(e: Exception):
    if isinstance(e, InsufficientFundsError):
        return jsonify(e.to_dict()), 400
    if isinstance(e, NotFoundError):
        return jsonify({"error": str(e)}), 404
    return jsonify({"error": str(e)}), 400


# =============================================================================
# QUERIES
# =============================================================================

@subscriptions_bp.get("/")
@subscriptions_bp.get("")
@require_auth
@require_role(ROLE_CUSTOMER)
def list_subscriptions_route():
    """Caller's subscriptions with restaurant name and menu item details."""
    try:
        subscriptions = subscription_service.list_subscriptions(g.current_user.id)
        return jsonify({"subscriptions": [s.to_dict() for s in subscriptions]}), 200
    except Exception:
        current_app.logger.exception("Failed to fetch subscriptions")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# CREATE
# =============================================================================

@subscriptions_bp.post("/")
@subscriptions_bp.post("")
@require_auth
@require_role(ROLE_CUSTOMER)
def create_subscription_route():
    """
    Create a subscription and pay the rest of this week from the wallet.

    Request body:
    {
        "restaurantId": 7,
        "mealSelections": [
            {"menuItemId": 12, "day": "monday", "mealType": "lunch", "quantity": 1}
        ],
        "planType": "weekly",   (optional: weekly, monthly, custom)
        "isRepeating": true     (optional, default true)
    }

    Returns:
        201: Subscription created, orders for the remaining week materialized
        400: Invalid input, or insufficient funds (required/available reported)
        404: Restaurant or menu item not found
    """
    try:
        data = request.get_json() or {}
        subscription = subscription_service.create_subscription(
            user_id=g.current_user.id,
            restaurant_id=data.get("restaurantId"),
            meal_selections=data.get("mealSelections"),
            plan_type=data.get("planType") or "weekly",
            is_repeating=data.get("isRepeating", True),
        )
        return jsonify({"subscription": subscription.to_dict()}), 201

    except (ValidationError, NotFoundError, InsufficientFundsError) as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create subscription")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# BILLING TRIGGERS
# =============================================================================

@subscriptions_bp.post("/process-daily")
@require_auth
@require_role(ROLE_ADMIN)
def process_daily_route():
    """
    Run the daily job: settle today's unpaid subscription orders, renew
    repeating plans on the anchor weekday, expire ended plans.

    Query params:
    - date: YYYY-MM-DD to process (default: today, UTC)

    Safe to call more than once per day.
    """
    try:
        try:
            today = parse_iso_date(request.args.get("date")) or utctoday()
        except ValueError:
            return jsonify({"error": "date must be YYYY-MM-DD"}), 400

        result = billing_service.process_daily(today)
        return jsonify({"date": today.isoformat(), "results": result.to_dict()}), 200

    except Exception:
        current_app.logger.exception("Failed to process daily subscriptions")
        return jsonify({"error": "Internal server error"}), 500


@subscriptions_bp.post("/trigger-payment")
@require_auth
@require_role(ROLE_CUSTOMER)
def trigger_payment_route():
    """Charge the plan totals of all active subscriptions as one payment (demo)."""
    try:
        payment, balance, count = billing_service.trigger_lump_payment(g.current_user.id)
        return jsonify({
            "message": f"Successfully paid {format_amount(payment.amount_cents)} for {count} active subscriptions",
            "payment": payment.to_dict(),
            "wallet_balance_cents": balance,
        }), 200

    except InsufficientFundsError as e:
        return jsonify(e.to_dict()), 400
    except BillingError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to process subscription payment")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# LIFECYCLE
# =============================================================================

@subscriptions_bp.patch("/<int:subscription_id>/pause")
@require_auth
@require_role(ROLE_CUSTOMER)
def pause_subscription_route(subscription_id: int):
    try:
        subscription = subscription_service.pause_subscription(subscription_id, g.current_user.id)
        return jsonify({"subscription": subscription.to_dict()}), 200
    except (NotFoundError, LifecycleError) as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to pause subscription")
        return jsonify({"error": "Internal server error"}), 500


@subscriptions_bp.patch("/<int:subscription_id>/resume")
@require_auth
@require_role(ROLE_CUSTOMER)
def resume_subscription_route(subscription_id: int):
    """
    Resume a paused subscription.

    A halted subscription is reactivated only by a successful charge for the
    rest of this week; if the wallet is still short the shortfall is returned.
    """
    try:
        subscription = subscription_service.resume_subscription(subscription_id, g.current_user.id)
        return jsonify({"subscription": subscription.to_dict()}), 200
    except (NotFoundError, LifecycleError, InsufficientFundsError) as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to resume subscription")
        return jsonify({"error": "Internal server error"}), 500


@subscriptions_bp.delete("/<int:subscription_id>")
@require_auth
@require_role(ROLE_CUSTOMER)
def cancel_subscription_route(subscription_id: int):
    try:
        subscription, cancelled = subscription_service.cancel_subscription(subscription_id, g.current_user.id)
        return jsonify({
            "message": "Subscription cancelled successfully",
            "subscription": subscription.to_dict(),
            "cancelled_orders": cancelled,
        }), 200
    except (NotFoundError, LifecycleError) as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to cancel subscription")
        return jsonify({"error": "Internal server error"}), 500


@subscriptions_bp.patch("/<int:subscription_id>")
@require_auth
@require_role(ROLE_CUSTOMER)
def update_subscription_route(subscription_id: int):
    """
    Edit meal selections and/or the repeat flag.

    Request body (all optional):
    {
        "mealSelections": [...],   (full replacement list)
        "isRepeating": false
    }
    """
    try:
        data = request.get_json() or {}
        is_repeating = None
        if "isRepeating" in data:
            # explicit null is rejected, an absent key leaves the flag as is
            is_repeating = require_bool(data["isRepeating"], "isRepeating")
        subscription = subscription_service.update_subscription(
            subscription_id,
            g.current_user.id,
            meal_selections=data.get("mealSelections"),
            is_repeating=is_repeating,
        )
        return jsonify({"subscription": subscription.to_dict()}), 200
    except (ValidationError, NotFoundError, LifecycleError) as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update subscription")
        return jsonify({"error": "Internal server error"}), 500
