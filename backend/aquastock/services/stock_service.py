# Overview: Service-layer operations for products and the per-location stock store.

"""
Stock Store

Products are global; quantities live in StockRecord, one row per
(product, location). Product creation seeds both rows at zero in the same
DB transaction, so a product without its two stock records is never
visible.

Reads here take no locks. Quantity changes go through mutation_service,
including the administrative override (adjust_stock).
"""
from __future__ import annotations

from decimal import Decimal

from sqlalchemy.exc import IntegrityError

from ..errors import NotFound, ValidationError
from ..extensions import db
from ..models import Product, ProductCategory, StockRecord
from ..models.inventory import LOCATIONS
from ..validation import parse_location, parse_quantity, required_text, optional_text
from . import mutation_service
from .concurrency import run_with_retry


def create_product(
    name: str,
    description: str | None = None,
    min_stock_level=0,
    category_id: int | None = None,
) -> Product:
    """
    Create a product and its zero-quantity stock record at every location.

    Raises:
        ValidationError: bad name / min_stock_level
        NotFound: category_id does not exist
    """
    name = required_text(name, "name", max_length=255)
    description = optional_text(description, "description")
    min_level = parse_quantity(min_stock_level, "min_stock_level", allow_zero=True)

    def _op():
        if category_id is not None and db.session.get(ProductCategory, category_id) is None:
            raise NotFound(f"Category {category_id} not found")

        product = Product(
            name=name,
            description=description,
            min_stock_level=min_level,
            category_id=category_id,
        )
        db.session.add(product)
        db.session.flush()

        for location in LOCATIONS:
            db.session.add(StockRecord(product_id=product.id, location=location, quantity=Decimal("0")))

        db.session.commit()
        return product

    return run_with_retry(_op)


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFound(f"Product {product_id} not found")
    return product


def list_products(category_id: int | None = None) -> list[Product]:
    query = db.session.query(Product)
    if category_id is not None:
        query = query.filter(Product.category_id == category_id)
    return query.order_by(Product.name).all()


def get_stock_record(product_id: int, location: str) -> StockRecord:
    location = parse_location(location)
    record = (
        db.session.query(StockRecord)
        .filter_by(product_id=product_id, location=location)
        .first()
    )
    if record is None:
        raise NotFound(f"No stock record for product {product_id} at {location}")
    return record


def get_stock(product_id: int, location: str) -> Decimal:
    """Current quantity of a product at a location."""
    location = parse_location(location)
    # Column query, not the entity: identity-map copies can lag behind the
    # conditional UPDATEs issued by mutation_service.
    quantity = (
        db.session.query(StockRecord.quantity)
        .filter_by(product_id=product_id, location=location)
        .scalar()
    )
    if quantity is None:
        raise NotFound(f"No stock record for product {product_id} at {location}")
    return Decimal(quantity)


def adjust_stock(product_id: int, location: str, new_quantity, actor_user_id: int | None = None) -> StockRecord:
    """
    Administrative stock-take override: set the quantity outright.

    Not recorded in the transaction log.
    """
    location = parse_location(location)
    quantity = parse_quantity(new_quantity, "quantity", allow_zero=True)

    def _op():
        get_product(product_id)
        record = mutation_service.set_quantity(product_id, location, quantity)
        db.session.commit()
        return record

    return run_with_retry(_op)


def list_stock(location: str | None = None) -> list[StockRecord]:
    query = db.session.query(StockRecord).join(Product)
    if location is not None:
        query = query.filter(StockRecord.location == parse_location(location))
    return query.order_by(Product.name, StockRecord.location).all()


def list_low_stock(location: str | None = None) -> list[StockRecord]:
    """Stock records below their product's reorder threshold."""
    query = (
        db.session.query(StockRecord)
        .join(Product)
        .filter(StockRecord.quantity < Product.min_stock_level)
    )
    if location is not None:
        query = query.filter(StockRecord.location == parse_location(location))
    return query.order_by(Product.name, StockRecord.location).all()


def create_category(name: str, description: str | None = None) -> ProductCategory:
    name = required_text(name, "name", max_length=120)
    description = optional_text(description, "description")

    def _op():
        category = ProductCategory(name=name, description=description)
        db.session.add(category)
        try:
            db.session.flush()
        except IntegrityError:
            db.session.rollback()
            raise ValidationError(f"Category {name!r} already exists")
        db.session.commit()
        return category

    return run_with_retry(_op)


def list_categories() -> list[ProductCategory]:
    return db.session.query(ProductCategory).order_by(ProductCategory.name).all()
