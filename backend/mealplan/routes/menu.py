# Overview: Flask API routes for the kitchen menu catalog.

from flask import Blueprint, request, jsonify, g, current_app

from ..models.users import ROLE_RESTAURANT
from ..services import catalog_service
from ..validation import NotFoundError, ValidationError
from ..decorators import require_auth, require_role


menu_bp = Blueprint("menu", __name__, url_prefix="/api/menu")


@menu_bp.get("/restaurants/<int:restaurant_id>")
def restaurant_menu_route(restaurant_id: int):
    items = catalog_service.list_restaurant_menu(restaurant_id)
    return jsonify({"restaurant_id": restaurant_id, "items": [i.to_dict() for i in items]}), 200


@menu_bp.post("/")
@menu_bp.post("")
@require_auth
@require_role(ROLE_RESTAURANT)
def create_menu_item_route():
    """
    Add a dish to the caller's menu.

    Request body:
    {
        "name": "Chicken Biryani",
        "price_cents": 25000,
        "day": "monday",
        "mealType": "lunch",
        "description": "..."   (optional)
    }
    """
    try:
        item = catalog_service.create_menu_item(g.current_user.id, request.get_json() or {})
        return jsonify({"item": item.to_dict()}), 201
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to create menu item")
        return jsonify({"error": "Internal server error"}), 500


@menu_bp.patch("/<int:item_id>")
@require_auth
@require_role(ROLE_RESTAURANT)
def update_menu_item_route(item_id: int):
    try:
        item = catalog_service.update_menu_item(item_id, g.current_user.id, request.get_json() or {})
        return jsonify({"item": item.to_dict()}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to update menu item")
        return jsonify({"error": "Internal server error"}), 500
