# backend/aquastock/services/transfer_service.py
"""
Inter-location transfer service.

WHY: Move stock of one product between kamulu and utawala with an
accountable hand-off. The transfer is raised as pending and only the
warehouse clerk completes or cancels it.

LIFECYCLE:
1. pending: Transfer created
2. completed: from_location decremented and to_location incremented in
   one DB transaction (two TRANSFER log entries)
3. cancelled: Cancelled before completion; stock untouched
"""
from __future__ import annotations

from ..errors import NotFound, ValidationError
from ..extensions import db
from ..models import Product, Transfer
from ..validation import optional_text, parse_location, parse_quantity
from . import workflow
from .concurrency import run_with_retry


def create_transfer(
    product_id: int,
    from_location: str,
    to_location: str,
    quantity,
    actor,
    notes: str | None = None,
) -> Transfer:
    """
    Create a new transfer (status: pending).

    Stock is not checked here; completion checks it against the source
    location at the time it happens.

    Raises:
        ValidationError: same location, bad quantity
        NotFound: product does not exist
    """
    from_location = parse_location(from_location, "from_location")
    to_location = parse_location(to_location, "to_location")
    if from_location == to_location:
        raise ValidationError("Cannot transfer to the same location")
    quantity = parse_quantity(quantity)
    notes = optional_text(notes, "notes")

    def _op():
        if db.session.get(Product, product_id) is None:
            raise NotFound(f"Product {product_id} not found")

        transfer = Transfer(
            product_id=product_id,
            from_location=from_location,
            to_location=to_location,
            quantity=quantity,
            notes=notes,
            created_by_user_id=actor.id,
        )
        db.session.add(transfer)
        db.session.commit()
        return transfer

    return run_with_retry(_op)


def transition_transfer(transfer_id: int, status: str, actor) -> Transfer:
    """Complete (moves stock) or cancel a pending transfer (clerk only)."""
    return workflow.transition(workflow.TRANSFER, transfer_id, status, actor)


def get_transfer(transfer_id: int) -> Transfer:
    transfer = db.session.get(Transfer, transfer_id)
    if transfer is None:
        raise NotFound(f"Transfer {transfer_id} not found")
    return transfer


def list_transfers(status: str | None = None) -> list[Transfer]:
    query = db.session.query(Transfer)
    if status is not None:
        query = query.filter(Transfer.status == status)
    return query.order_by(Transfer.created_at.desc(), Transfer.id.desc()).all()
