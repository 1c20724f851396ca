# backend/aquastock/routes/transfers.py
"""
Inter-location transfer API routes.

Completion and cancellation are restricted to the warehouse clerk by the
approval state machine.
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_role
from ..errors import PortalError
from ..extensions import db
from ..models.auth import ROLE_ADMIN, ROLE_CLERK
from ..services import transfer_service


transfers_bp = Blueprint("transfers", __name__, url_prefix="/api/transfers")


@transfers_bp.get("")
@require_auth
def list_transfers_route():
    transfers = transfer_service.list_transfers(status=request.args.get("status"))
    return jsonify({"transfers": [t.to_dict() for t in transfers]}), 200


@transfers_bp.post("")
@require_auth
@require_role(ROLE_ADMIN, ROLE_CLERK)
def create_transfer_route():
    """
    Create a pending transfer.

    Request body:
    {
        "product_id": int,
        "from_location": "kamulu" | "utawala",
        "to_location": "kamulu" | "utawala",
        "quantity": number,
        "notes": str (optional)
    }

    Returns:
        201: Transfer created
        400: Invalid request
        403: Forbidden
        404: Product not found
    """
    try:
        data = request.get_json(silent=True) or {}
        transfer = transfer_service.create_transfer(
            data.get("product_id"),
            data.get("from_location"),
            data.get("to_location"),
            data.get("quantity"),
            g.current_user,
            notes=data.get("notes"),
        )
        current_app.logger.info("Transfer %s created by user %s", transfer.id, g.current_user.id)
        return jsonify({"transfer": transfer.to_dict()}), 201

    except PortalError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create transfer")
        return jsonify({"error": "Internal server error"}), 500


@transfers_bp.get("/<int:transfer_id>")
@require_auth
def get_transfer_route(transfer_id: int):
    try:
        return jsonify({"transfer": transfer_service.get_transfer(transfer_id).to_dict()}), 200
    except PortalError as e:
        return jsonify(e.to_dict()), e.status_code


@transfers_bp.patch("/<int:transfer_id>")
@require_auth
def transition_transfer_route(transfer_id: int):
    """
    Body: {"status": "completed" | "cancelled"}

    Returns:
        200: Transfer completed/cancelled
        403: Caller is not a clerk
        404: Transfer not found
        409: Already processed, or insufficient stock at the source
    """
    try:
        data = request.get_json(silent=True) or {}
        transfer = transfer_service.transition_transfer(transfer_id, data.get("status"), g.current_user)
        return jsonify({"transfer": transfer.to_dict()}), 200

    except PortalError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update transfer %s", transfer_id)
        return jsonify({"error": "Internal server error"}), 500
