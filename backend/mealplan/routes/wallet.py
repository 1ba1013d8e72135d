# Overview: Flask API routes for the customer wallet; balance, recharge and ledger history.

from flask import Blueprint, request, jsonify, g, current_app

from ..services import wallet_service
from ..services.wallet_service import WalletError
from ..validation import ValidationError, require_positive_int
from ..decorators import require_auth


wallet_bp = Blueprint("wallet", __name__, url_prefix="/api/wallet")

RECENT_TRANSACTIONS = 20


@wallet_bp.get("/")
@wallet_bp.get("")
@require_auth
def get_wallet_route():
    """Balance plus the most recent ledger entries."""
    user_id = g.current_user.id
    return jsonify({
        "wallet_balance_cents": wallet_service.get_balance(user_id),
        "transactions": [p.to_dict() for p in wallet_service.get_payments(user_id, limit=RECENT_TRANSACTIONS)],
    }), 200


@wallet_bp.post("/recharge")
@require_auth
def recharge_route():
    """
    Top up the wallet (simulated successful gateway payment).

    Request body:
    {
        "amount_cents": 50000,
        "method": "card"   (optional: card, local_app)
    }
    """
    try:
        data = request.get_json() or {}
        amount_cents = require_positive_int(data.get("amount_cents"), "amount_cents")
        method = data.get("method") or wallet_service.METHOD_CARD

        balance, payment = wallet_service.recharge(g.current_user.id, amount_cents, method)
        return jsonify({
            "message": "Wallet recharged successfully",
            "wallet_balance_cents": balance,
            "payment": payment.to_dict(),
        }), 201

    except (ValidationError, WalletError) as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to recharge wallet")
        return jsonify({"error": "Internal server error"}), 500


@wallet_bp.get("/payments")
@require_auth
def list_payments_route():
    payments = wallet_service.get_payments(g.current_user.id)
    return jsonify({"payments": [p.to_dict() for p in payments]}), 200
