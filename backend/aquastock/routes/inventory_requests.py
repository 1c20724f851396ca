# Overview: Flask API routes for deduction requests.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth
from ..errors import PortalError
from ..extensions import db
from ..models.auth import ROLE_ADMIN, ROLE_ACCOUNTANT
from ..services import request_service


inventory_requests_bp = Blueprint("inventory_requests", __name__, url_prefix="/api/inventory-requests")


@inventory_requests_bp.get("")
@require_auth
def list_requests_route():
    """Admins and accountants see every request; everyone else sees their own."""
    user = g.current_user
    created_by = None if user.role in (ROLE_ADMIN, ROLE_ACCOUNTANT) else user.id
    requests_ = request_service.list_requests(
        status=request.args.get("status"),
        created_by_user_id=created_by,
    )
    return jsonify({"requests": [r.to_dict() for r in requests_]}), 200


@inventory_requests_bp.post("")
@require_auth
def create_requests_route():
    """
    Any signed-in user may ask for stock to be deducted.

    Body:
    {
        "items": [{"product_id", "quantity"}],
        "customer_id"?, "customer_name"?, "customer_phone"?,
        "save_customer"?, "notes"?
    }

    Returns 201 with one request per item.
    """
    try:
        data = request.get_json(silent=True) or {}
        created = request_service.create_deduction_requests(
            data.get("items"),
            g.current_user,
            customer_id=data.get("customer_id"),
            customer_name=data.get("customer_name"),
            customer_phone=data.get("customer_phone"),
            save_customer=bool(data.get("save_customer", False)),
            notes=data.get("notes"),
        )
        current_app.logger.info("%s deduction request(s) created by user %s", len(created), g.current_user.id)
        return jsonify({"requests": [r.to_dict() for r in created]}), 201

    except PortalError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create deduction requests")
        return jsonify({"error": "Internal server error"}), 500


@inventory_requests_bp.get("/<int:request_id>")
@require_auth
def get_request_route(request_id: int):
    try:
        return jsonify({"request": request_service.get_request(request_id).to_dict()}), 200
    except PortalError as e:
        return jsonify(e.to_dict()), e.status_code


@inventory_requests_bp.patch("/<int:request_id>")
@require_auth
def transition_request_route(request_id: int):
    """
    Body:
    {
        "status": "approved" | "rejected",
        "sale_id"?: link an existing sale (no deduction here),
        "unit_price_cents"? (or "unit_price", in cents): spawn an approved sale,
        "payment_method"?: for the spawned sale
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        unit_price_cents = data.get("unit_price_cents", data.get("unit_price"))
        updated = request_service.transition_deduction_request(
            request_id,
            data.get("status"),
            g.current_user,
            sale_id=data.get("sale_id"),
            unit_price_cents=unit_price_cents,
            payment_method=data.get("payment_method") or "cash",
        )
        return jsonify({"request": updated.to_dict()}), 200

    except PortalError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update deduction request %s", request_id)
        return jsonify({"error": "Internal server error"}), 500
