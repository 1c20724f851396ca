# Overview: Flask API routes for purchase orders (LPOs).

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_role
from ..errors import PortalError
from ..extensions import db
from ..models.auth import ROLE_ADMIN, ROLE_CLERK
from ..services import purchase_service
from ..validation import parse_id


lpo_bp = Blueprint("lpo", __name__, url_prefix="/api/lpo")


@lpo_bp.get("")
@require_auth
def list_lpos_route():
    orders = purchase_service.list_purchase_orders(status=request.args.get("status"))
    return jsonify({"lpos": [o.to_dict() for o in orders]}), 200


@lpo_bp.post("")
@require_auth
@require_role(ROLE_ADMIN, ROLE_CLERK)
def create_lpo_route():
    """
    Body:
    {
        "supplier_name", "target_location",
        "items": [{"product_id", "quantity", "unit_price_cents"}],
        "supplier_contact"?, "notes"?
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        order = purchase_service.create_purchase_order(
            data.get("supplier_name"),
            data.get("target_location"),
            data.get("items"),
            g.current_user,
            supplier_contact=data.get("supplier_contact"),
            notes=data.get("notes"),
        )
        current_app.logger.info("LPO %s created by user %s", order.id, g.current_user.id)
        return jsonify({"lpo": order.to_dict()}), 201

    except PortalError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create LPO")
        return jsonify({"error": "Internal server error"}), 500


@lpo_bp.get("/<int:lpo_id>")
@require_auth
def get_lpo_route(lpo_id: int):
    try:
        return jsonify({"lpo": purchase_service.get_purchase_order(lpo_id).to_dict()}), 200
    except PortalError as e:
        return jsonify(e.to_dict()), e.status_code


def _transition(lpo_id, action):
    try:
        order = purchase_service.transition_purchase_order(lpo_id, action, g.current_user)
        return jsonify({"lpo": order.to_dict()}), 200

    except PortalError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update LPO %s", lpo_id)
        return jsonify({"error": "Internal server error"}), 500


@lpo_bp.put("")
@require_auth
def transition_lpo_body_route():
    """Body: {"id", "action": "approve" | "reject"}"""
    data = request.get_json(silent=True) or {}
    try:
        lpo_id = parse_id(data.get("id"), "id")
    except PortalError as e:
        return jsonify(e.to_dict()), e.status_code
    return _transition(lpo_id, data.get("action"))


@lpo_bp.patch("/<int:lpo_id>")
@require_auth
def transition_lpo_route(lpo_id: int):
    """Body: {"action": "approve" | "reject"}"""
    data = request.get_json(silent=True) or {}
    return _transition(lpo_id, data.get("action"))
