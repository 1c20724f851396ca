from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


TRANSFER_STATUS_PENDING = "pending"
TRANSFER_STATUS_COMPLETED = "completed"
TRANSFER_STATUS_CANCELLED = "cancelled"


class Transfer(db.Model):
    """
    Movement of one product between the two locations.

    LIFECYCLE: pending -> completed | cancelled (both terminal).
    Completion moves quantity from_location -> to_location in one DB
    transaction; cancellation touches no stock.
    """
    __tablename__ = "transfers"
    __table_args__ = (
        db.CheckConstraint(
            "status IN ('pending', 'completed', 'cancelled')",
            name="ck_transfers_status",
        ),
        db.CheckConstraint("from_location <> to_location", name="ck_transfers_distinct_locations"),
        db.CheckConstraint("quantity > 0", name="ck_transfers_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    status = db.Column(db.String(16), nullable=False, default=TRANSFER_STATUS_PENDING)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    from_location = db.Column(db.String(16), nullable=False)
    to_location = db.Column(db.String(16), nullable=False)
    quantity = db.Column(db.Numeric(12, 2), nullable=False)
    notes = db.Column(db.Text, nullable=True)

    # transferred_by in the portal UI
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    approved_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    product = db.relationship("Product")

    def __repr__(self) -> str:
        return (
            f"<Transfer id={self.id} status={self.status} "
            f"{self.from_location}->{self.to_location} qty={self.quantity}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "status": self.status,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "from_location": self.from_location,
            "to_location": self.to_location,
            "quantity": float(self.quantity),
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "approved_by_user_id": self.approved_by_user_id,
            "approved_at": to_utc_z(self.approved_at) if self.approved_at else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
