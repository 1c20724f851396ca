from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


REQUEST_STATUS_PENDING = "pending"
REQUEST_STATUS_APPROVED = "approved"
REQUEST_STATUS_REJECTED = "rejected"


class DeductionRequest(db.Model):
    """
    Request to take stock out for a customer, usually raised by staff
    without sale rights.

    LIFECYCLE: pending -> approved | rejected (both terminal).
    Approval either links an existing sale (sale_id) or deducts the stock
    itself; see services/request_service.py.
    """
    __tablename__ = "inventory_requests"
    __table_args__ = (
        db.CheckConstraint(
            "status IN ('pending', 'approved', 'rejected')",
            name="ck_inventory_requests_status",
        ),
        db.CheckConstraint("quantity > 0", name="ck_inventory_requests_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    status = db.Column(db.String(16), nullable=False, default=REQUEST_STATUS_PENDING)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    quantity = db.Column(db.Numeric(12, 2), nullable=False)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    customer_name = db.Column(db.String(255), nullable=True)
    customer_phone = db.Column(db.String(32), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    approved_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    product = db.relationship("Product")
    customer = db.relationship("Customer")
    sale = db.relationship("Sale", foreign_keys=[sale_id])

    def __repr__(self) -> str:
        return f"<DeductionRequest id={self.id} status={self.status} product_id={self.product_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "status": self.status,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "quantity": float(self.quantity),
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "notes": self.notes,
            "sale_id": self.sale_id,
            "created_by_user_id": self.created_by_user_id,
            "approved_by_user_id": self.approved_by_user_id,
            "approved_at": to_utc_z(self.approved_at) if self.approved_at else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
