# Overview: Flask API routes for orders; checkout, listings and status updates.

from flask import Blueprint, request, jsonify, g, current_app

from ..models.users import ROLE_CUSTOMER, ROLE_RESTAURANT
from ..services import order_service
from ..services.order_service import OrderError
from ..services.wallet_service import InsufficientFundsError
from ..validation import NotFoundError, ValidationError
from ..decorators import require_auth, require_role


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.post("/")
@orders_bp.post("")
@require_auth
@require_role(ROLE_CUSTOMER)
def create_order_route():
    """
    Place a one-off order.

    Request body:
    {
        "restaurantId": 7,
        "items": [{"itemId": 12, "quantity": 2}],
        "deliveryDateTime": "2026-10-20T12:00:00Z",
        "paymentMethod": "wallet"   (optional: wallet, card, local_app)
    }

    Returns:
        201: Order created (paid for wallet, unpaid for card/local_app)
        400: Invalid input or insufficient wallet balance
        404: Unknown menu item
    """
    try:
        data = request.get_json() or {}
        order = order_service.create_order(
            user_id=g.current_user.id,
            restaurant_id=data.get("restaurantId"),
            items=data.get("items"),
            delivery_datetime=data.get("deliveryDateTime"),
            payment_method=data.get("paymentMethod") or "wallet",
        )
        return jsonify({"order": order.to_dict()}), 201

    except InsufficientFundsError as e:
        return jsonify(e.to_dict()), 400
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to create order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/mine")
@require_auth
@require_role(ROLE_CUSTOMER)
def my_orders_route():
    orders = order_service.list_customer_orders(g.current_user.id)
    return jsonify({"orders": [o.to_dict() for o in orders]}), 200


@orders_bp.get("/restaurant")
@require_auth
@require_role(ROLE_RESTAURANT)
def restaurant_orders_route():
    orders = order_service.list_restaurant_orders(g.current_user.id, status=request.args.get("status"))
    return jsonify({"orders": [o.to_dict() for o in orders]}), 200


@orders_bp.patch("/<int:order_id>/status")
@require_auth
def update_order_status_route(order_id: int):
    """
    Request body: {"status": "accepted"}

    Cancelling a paid order refunds it to the wallet; completing an order
    may issue loyalty and referral rewards.
    """
    try:
        data = request.get_json() or {}
        order = order_service.update_order_status(order_id, g.current_user, data.get("status"))
        return jsonify({"order": order.to_dict()}), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except OrderError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to update order status")
        return jsonify({"error": "Internal server error"}), 500
