from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


LPO_STATUS_PENDING = "pending"
LPO_STATUS_APPROVED = "approved"
LPO_STATUS_REJECTED = "rejected"


class PurchaseOrder(db.Model):
    """
    Local Purchase Order (LPO) to a supplier.

    LIFECYCLE: pending -> approved | rejected (both terminal).
    Approval receives every line into target_location.
    """
    __tablename__ = "purchase_orders"
    __table_args__ = (
        db.CheckConstraint(
            "status IN ('pending', 'approved', 'rejected')",
            name="ck_purchase_orders_status",
        ),
        db.CheckConstraint(
            "target_location IN ('kamulu', 'utawala')",
            name="ck_purchase_orders_target_location",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    status = db.Column(db.String(16), nullable=False, default=LPO_STATUS_PENDING)

    supplier_name = db.Column(db.String(255), nullable=False)
    supplier_contact = db.Column(db.String(255), nullable=True)
    target_location = db.Column(db.String(16), nullable=False)
    notes = db.Column(db.Text, nullable=True)

    total_amount_cents = db.Column(db.Integer, nullable=False, default=0)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    approved_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    items = db.relationship(
        "PurchaseOrderItem",
        backref="purchase_order",
        lazy=True,
        order_by="PurchaseOrderItem.id",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<PurchaseOrder id={self.id} status={self.status} target={self.target_location}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "status": self.status,
            "supplier_name": self.supplier_name,
            "supplier_contact": self.supplier_contact,
            "target_location": self.target_location,
            "notes": self.notes,
            "total_amount_cents": self.total_amount_cents,
            "created_by_user_id": self.created_by_user_id,
            "approved_by_user_id": self.approved_by_user_id,
            "approved_at": to_utc_z(self.approved_at) if self.approved_at else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "items": [item.to_dict() for item in self.items],
        }


class PurchaseOrderItem(db.Model):
    __tablename__ = "purchase_order_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_po_items_quantity_positive"),
        db.CheckConstraint("unit_price_cents >= 0", name="ck_po_items_price_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    purchase_order_id = db.Column(db.Integer, db.ForeignKey("purchase_orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Numeric(12, 2), nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    total_price_cents = db.Column(db.Integer, nullable=False)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_order_id": self.purchase_order_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "quantity": float(self.quantity),
            "unit_price_cents": self.unit_price_cents,
            "total_price_cents": self.total_price_cents,
        }
