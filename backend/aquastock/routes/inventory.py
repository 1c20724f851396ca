# backend/aquastock/routes/inventory.py
"""
Inventory read routes.

Stock changes never happen here: they come from approved sales, LPOs,
transfers and deduction requests, or the admin stock-take override on
/api/products/<id>/stock.
"""
from flask import Blueprint, request, jsonify

from ..decorators import require_auth
from ..errors import PortalError
from ..services import stock_service, transaction_log_service
from ..validation import parse_location


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("")
@require_auth
def list_inventory_route():
    """Stock records joined to their products. ?location= narrows to one location."""
    try:
        records = stock_service.list_stock(request.args.get("location"))
    except PortalError as e:
        return jsonify(e.to_dict()), e.status_code

    items = []
    for record in records:
        row = record.to_dict()
        row["product_name"] = record.product.name
        row["min_stock_level"] = float(record.product.min_stock_level)
        row["is_low"] = record.quantity < record.product.min_stock_level
        items.append(row)
    return jsonify({"items": items}), 200


@inventory_bp.get("/transactions")
@require_auth
def list_transactions_route():
    """
    Transaction log, newest first.

    Query: product_id, location, type, reference_type, reference_id, limit (max 1000)
    """
    try:
        location = request.args.get("location")
        if location:
            location = parse_location(location)
        limit = min(max(request.args.get("limit", 200, type=int), 1), 1000)

        entries = transaction_log_service.list_transactions(
            product_id=request.args.get("product_id", type=int),
            location=location,
            type=request.args.get("type"),
            reference_type=request.args.get("reference_type"),
            reference_id=request.args.get("reference_id", type=int),
            limit=limit,
        )
        return jsonify({"transactions": [e.to_dict() for e in entries]}), 200

    except PortalError as e:
        return jsonify(e.to_dict()), e.status_code
