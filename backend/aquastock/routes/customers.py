# Overview: Flask API routes for the customer address book.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_role
from ..errors import PortalError
from ..extensions import db
from ..models.auth import ROLE_ADMIN, ROLE_CLERK
from ..services import customer_service


customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("")
@require_auth
def list_customers_route():
    customers = customer_service.list_customers()
    return jsonify({"customers": [c.to_dict() for c in customers]}), 200


@customers_bp.post("")
@require_auth
@require_role(ROLE_ADMIN, ROLE_CLERK)
def create_customer_route():
    """
    Body: {"name", "phone"?, "email"?, "notes"?}

    Returns 409 when the phone or email already belongs to a customer.
    """
    try:
        data = request.get_json(silent=True) or {}
        customer = customer_service.create_customer(
            data.get("name"),
            phone=data.get("phone"),
            email=data.get("email"),
            notes=data.get("notes"),
            actor_user_id=g.current_user.id,
        )
        return jsonify({"customer": customer.to_dict()}), 201

    except PortalError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create customer")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.post("/resolve")
@require_auth
@require_role(ROLE_ADMIN, ROLE_CLERK)
def resolve_customer_route():
    """Find by phone (then email) or create. Idempotent by phone."""
    try:
        data = request.get_json(silent=True) or {}
        customer = customer_service.resolve_customer(
            name=data.get("name"),
            phone=data.get("phone"),
            email=data.get("email"),
            notes=data.get("notes"),
            actor_user_id=g.current_user.id,
        )
        return jsonify({"customer": customer.to_dict()}), 200

    except PortalError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to resolve customer")
        return jsonify({"error": "Internal server error"}), 500
