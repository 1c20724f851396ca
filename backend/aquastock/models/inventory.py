from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


# The two warehouses. Every product has exactly one StockRecord per location.
LOCATION_KAMULU = "kamulu"
LOCATION_UTAWALA = "utawala"
LOCATIONS = (LOCATION_KAMULU, LOCATION_UTAWALA)

# Sales and deduction requests draw stock from this location.
SALES_LOCATION = LOCATION_UTAWALA

# Transaction log entry types
TXN_SALE = "sale"
TXN_TRANSFER = "transfer"
TXN_PURCHASE = "purchase"
TRANSACTION_TYPES = (TXN_SALE, TXN_TRANSFER, TXN_PURCHASE)


class ProductCategory(db.Model):
    __tablename__ = "product_categories"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False, unique=True)
    description = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "created_at": to_utc_z(self.created_at),
        }


class Product(db.Model):
    """
    Product master data.

    Owned globally, not per location. Quantities live in StockRecord.
    Only descriptive fields change after creation.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("min_stock_level >= 0", name="ck_products_min_stock_non_negative"),
        db.Index("ix_products_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    # Reorder threshold, compared per location
    min_stock_level = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    category_id = db.Column(db.Integer, db.ForeignKey("product_categories.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    category = db.relationship("ProductCategory", backref=db.backref("products", lazy=True))

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r}>"

    def to_dict(self, include_stock: bool = False) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "min_stock_level": float(self.min_stock_level),
            "category_id": self.category_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_stock:
            data["inventory"] = [record.to_dict() for record in self.stock_records]
        return data


class StockRecord(db.Model):
    """
    Quantity of one product at one location.

    INVARIANTS:
    - Exactly one row per (product_id, location), seeded at product creation.
    - quantity >= 0 always (CHECK constraint backs the conditional updates
      in services/mutation_service.py).
    - Only mutation_service changes quantity.
    """
    __tablename__ = "stock_records"
    __table_args__ = (
        db.UniqueConstraint("product_id", "location", name="uq_stock_records_product_location"),
        db.CheckConstraint("quantity >= 0", name="ck_stock_records_quantity_non_negative"),
        db.CheckConstraint("location IN ('kamulu', 'utawala')", name="ck_stock_records_location"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    location = db.Column(db.String(16), nullable=False)
    quantity = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship(
        "Product",
        backref=db.backref("stock_records", lazy=True, order_by="StockRecord.location"),
    )

    def __repr__(self) -> str:
        return f"<StockRecord product_id={self.product_id} location={self.location} quantity={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "location": self.location,
            "quantity": float(self.quantity),
            "updated_at": to_utc_z(self.updated_at),
        }


class InventoryTransaction(db.Model):
    """
    Append-only log of completed physical movements.

    One row per stock record touched: a sale line writes one negative row,
    an LPO line one positive row, a transfer one negative row at the source
    and one positive row at the destination. Written in the same DB
    transaction as the quantity change it records; never updated or deleted.
    """
    __tablename__ = "inventory_transactions"
    __table_args__ = (
        db.Index("ix_invtx_product_location_created", "product_id", "location", "created_at"),
        db.Index("ix_invtx_reference", "reference_type", "reference_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    location = db.Column(db.String(16), nullable=False)

    type = db.Column(db.String(16), nullable=False, index=True)
    quantity_delta = db.Column(db.Numeric(12, 2), nullable=False)

    # What caused the movement: sale / purchase_order / transfer / inventory_request
    reference_type = db.Column(db.String(32), nullable=False)
    reference_id = db.Column(db.Integer, nullable=False)

    note = db.Column(db.String(255), nullable=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "location": self.location,
            "type": self.type,
            "quantity_delta": float(self.quantity_delta),
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "note": self.note,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }
