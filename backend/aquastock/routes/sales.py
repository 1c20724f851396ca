# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

"""Sales API routes. Approval authority is checked in the approval state machine."""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_role
from ..errors import PortalError
from ..extensions import db
from ..models.auth import ROLE_ADMIN, ROLE_CLERK
from ..services import sales_service


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.get("")
@require_auth
def list_sales_route():
    sales = sales_service.list_sales(status=request.args.get("status"))
    return jsonify({"sales": [s.to_dict() for s in sales]}), 200


@sales_bp.post("")
@require_auth
@require_role(ROLE_ADMIN, ROLE_CLERK)
def create_sale_route():
    """
    Create a pending sale.

    Body:
    {
        "items": [{"product_id", "quantity", "unit_price_cents"}],
        "customer_id"?, "customer_name"?, "customer_phone"?, "save_customer"?,
        "payment_method"?, "notes"?, "request_id"?
    }
    """
    try:
        data = request.get_json(silent=True) or {}

        sale = sales_service.create_sale(
            data.get("items"),
            g.current_user,
            customer_id=data.get("customer_id"),
            customer_name=data.get("customer_name"),
            customer_phone=data.get("customer_phone"),
            save_customer=bool(data.get("save_customer", False)),
            payment_method=data.get("payment_method") or "cash",
            notes=data.get("notes"),
            request_id=data.get("request_id"),
        )
        current_app.logger.info("Sale %s created by user %s", sale.id, g.current_user.id)
        return jsonify({"sale": sale.to_dict()}), 201

    except PortalError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/<int:sale_id>")
@require_auth
def get_sale_route(sale_id: int):
    try:
        return jsonify({"sale": sales_service.get_sale(sale_id).to_dict()}), 200
    except PortalError as e:
        return jsonify(e.to_dict()), e.status_code


@sales_bp.patch("/<int:sale_id>")
@require_auth
def transition_sale_route(sale_id: int):
    """
    Body: {"status": "approved" | "rejected"}

    Returns:
        200: transitioned
        403: role may not approve/reject sales
        404: no such sale
        409: already processed, or insufficient stock at utawala
    """
    try:
        data = request.get_json(silent=True) or {}
        sale = sales_service.transition_sale(sale_id, data.get("status"), g.current_user)
        return jsonify({"sale": sale.to_dict()}), 200

    except PortalError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update sale %s", sale_id)
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.put("/<int:sale_id>/items")
@require_auth
@require_role(ROLE_ADMIN, ROLE_CLERK)
def update_sale_items_route(sale_id: int):
    """
    Replace a pending sale's items.

    Body: {"items": [{"product_id", "quantity", "unit_price_cents"}]}
    """
    try:
        data = request.get_json(silent=True) or {}
        sale = sales_service.update_sale_items(sale_id, data.get("items"), g.current_user)
        return jsonify({"sale": sale.to_dict()}), 200

    except PortalError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update items of sale %s", sale_id)
        return jsonify({"error": "Internal server error"}), 500
