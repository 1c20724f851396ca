# Overview: Flask API routes for products, categories and per-location stock.

from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import require_auth, require_role
from ..errors import PortalError
from ..extensions import db
from ..models.auth import ROLE_ADMIN, ROLE_CLERK
from ..services import stock_service


products_bp = Blueprint("products", __name__)


@products_bp.get("/api/products")
@require_auth
def list_products_route():
    category_id = request.args.get("category_id", type=int)
    products = stock_service.list_products(category_id=category_id)
    return jsonify({"products": [p.to_dict(include_stock=True) for p in products]}), 200


@products_bp.post("/api/products")
@require_auth
@require_role(ROLE_ADMIN, ROLE_CLERK)
def create_product_route():
    """
    Create a product. Stock records at every location start at zero.

    Body: {"name", "description"?, "min_stock_level"?, "category_id"?}
    """
    try:
        data = request.get_json(silent=True) or {}
        product = stock_service.create_product(
            name=data.get("name"),
            description=data.get("description"),
            min_stock_level=data.get("min_stock_level", 0),
            category_id=data.get("category_id"),
        )
        current_app.logger.info("Product %s created by user %s", product.id, g.current_user.id)
        return jsonify({"product": product.to_dict(include_stock=True)}), 201

    except PortalError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/api/products/<int:product_id>")
@require_auth
def get_product_route(product_id: int):
    try:
        product = stock_service.get_product(product_id)
        return jsonify({"product": product.to_dict(include_stock=True)}), 200
    except PortalError as e:
        return jsonify(e.to_dict()), e.status_code


@products_bp.get("/api/products/<int:product_id>/stock")
@require_auth
def get_stock_route(product_id: int):
    """?location=kamulu|utawala; without it, every location."""
    try:
        location = request.args.get("location")
        if location:
            quantity = stock_service.get_stock(product_id, location)
            return jsonify({
                "product_id": product_id,
                "location": location,
                "quantity": float(quantity),
            }), 200

        product = stock_service.get_product(product_id)
        return jsonify({
            "product_id": product_id,
            "inventory": product.to_dict(include_stock=True)["inventory"],
        }), 200

    except PortalError as e:
        return jsonify(e.to_dict()), e.status_code


@products_bp.post("/api/products/<int:product_id>/stock")
@require_auth
@require_role(ROLE_ADMIN)
def adjust_stock_route(product_id: int):
    """
    Stock-take override. Sets the quantity outright.

    Body: {"location", "quantity"}
    """
    try:
        data = request.get_json(silent=True) or {}
        record = stock_service.adjust_stock(
            product_id,
            data.get("location"),
            data.get("quantity"),
            actor_user_id=g.current_user.id,
        )
        current_app.logger.info(
            "Stock for product %s at %s set to %s by user %s",
            product_id,
            record.location,
            record.quantity,
            g.current_user.id,
        )
        return jsonify({"stock": record.to_dict()}), 200

    except PortalError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to adjust stock")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/api/products/low-stock")
@require_auth
def low_stock_route():
    try:
        records = stock_service.list_low_stock(request.args.get("location"))
        return jsonify({"items": [r.to_dict() for r in records]}), 200
    except PortalError as e:
        return jsonify(e.to_dict()), e.status_code


@products_bp.get("/api/product-categories")
@require_auth
def list_categories_route():
    categories = stock_service.list_categories()
    return jsonify({"categories": [c.to_dict() for c in categories]}), 200


@products_bp.post("/api/product-categories")
@require_auth
@require_role(ROLE_ADMIN)
def create_category_route():
    try:
        data = request.get_json(silent=True) or {}
        category = stock_service.create_category(data.get("name"), data.get("description"))
        return jsonify({"category": category.to_dict()}), 201

    except PortalError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create category")
        return jsonify({"error": "Internal server error"}), 500
