"""
Purchase Order (LPO) Service

LIFECYCLE:
1. pending: LPO raised by a clerk/admin with its lines and supplier info
2. approved: admin approval receives every line into target_location
3. rejected: admin rejection; stock untouched

Both outcomes are terminal.
"""
from __future__ import annotations

from ..errors import NotFound, ValidationError
from ..extensions import db
from ..models import Product, PurchaseOrder, PurchaseOrderItem
from ..validation import optional_text, parse_line_items, parse_location, required_text
from . import workflow
from .concurrency import run_with_retry


# The portal's LPO screen sends actions, not statuses
ACTION_TO_STATUS = {
    "approve": "approved",
    "reject": "rejected",
}


def create_purchase_order(
    supplier_name: str,
    target_location: str,
    items,
    actor,
    *,
    supplier_contact: str | None = None,
    notes: str | None = None,
) -> PurchaseOrder:
    """
    Create a pending LPO.

    Args:
        supplier_name: supplier display name
        target_location: location the stock will be received into
        items: [{"product_id", "quantity", "unit_price_cents"}]
        actor: creating User

    Raises:
        ValidationError: bad input
        NotFound: an item's product does not exist
    """
    supplier_name = required_text(supplier_name, "supplier_name", max_length=255)
    supplier_contact = optional_text(supplier_contact, "supplier_contact", max_length=255)
    notes = optional_text(notes, "notes")
    target_location = parse_location(target_location, "target_location")
    lines = parse_line_items(items)

    def _op():
        product_ids = {line["product_id"] for line in lines}
        found = {row.id for row in db.session.query(Product.id).filter(Product.id.in_(product_ids)).all()}
        missing = sorted(product_ids - found)
        if missing:
            raise NotFound(f"Product not found: {missing[0]}", details={"product_ids": missing})

        purchase_order = PurchaseOrder(
            supplier_name=supplier_name,
            supplier_contact=supplier_contact,
            target_location=target_location,
            notes=notes,
            total_amount_cents=sum(line["total_price_cents"] for line in lines),
            created_by_user_id=actor.id,
        )
        for line in lines:
            purchase_order.items.append(PurchaseOrderItem(
                product_id=line["product_id"],
                quantity=line["quantity"],
                unit_price_cents=line["unit_price_cents"],
                total_price_cents=line["total_price_cents"],
            ))

        db.session.add(purchase_order)
        db.session.commit()
        return purchase_order

    return run_with_retry(_op)


def transition_purchase_order(purchase_order_id: int, action: str, actor) -> PurchaseOrder:
    """
    Approve or reject a pending LPO (admin only).

    action is "approve" / "reject"; "approved" / "rejected" are accepted too.
    """
    status = ACTION_TO_STATUS.get(action, action) if isinstance(action, str) else None
    if status not in workflow.PURCHASE_ORDER.target_states:
        raise ValidationError(
            f"Invalid LPO action: {action!r}",
            details={"allowed": sorted(ACTION_TO_STATUS)},
        )
    return workflow.transition(workflow.PURCHASE_ORDER, purchase_order_id, status, actor)


def get_purchase_order(purchase_order_id: int) -> PurchaseOrder:
    purchase_order = db.session.get(PurchaseOrder, purchase_order_id)
    if purchase_order is None:
        raise NotFound(f"LPO {purchase_order_id} not found")
    return purchase_order


def list_purchase_orders(status: str | None = None) -> list[PurchaseOrder]:
    query = db.session.query(PurchaseOrder)
    if status is not None:
        query = query.filter(PurchaseOrder.status == status)
    return query.order_by(PurchaseOrder.created_at.desc(), PurchaseOrder.id.desc()).all()
