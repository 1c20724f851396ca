# Overview: Service-layer operations for the inventory transaction log.

from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from ..models import InventoryTransaction
from ..models.inventory import TRANSACTION_TYPES
"""
Transaction Log Invariants (authoritative)

- Append-only record of completed physical movements (sale deduction,
  transfer out/in, purchase receipt).
- Entries are written inside the same DB transaction as the stock change
  they record; a rolled-back mutation leaves no entry behind.
- No updates or deletes of existing entries.
- Manual stock-take corrections (adjust_stock) are deliberately NOT logged.
"""


def append_transaction(
    *,
    product_id: int,
    location: str,
    type: str,
    quantity_delta: Decimal,
    reference_type: str,
    reference_id: int,
    actor_user_id: int | None = None,
    note: str | None = None,
) -> InventoryTransaction:
    """Append one log entry. Flushes, never commits."""
    if type not in TRANSACTION_TYPES:
        raise ValueError(f"Unknown transaction type {type!r}")

    txn = InventoryTransaction(
        product_id=product_id,
        location=location,
        type=type,
        quantity_delta=quantity_delta,
        reference_type=reference_type,
        reference_id=reference_id,
        created_by_user_id=actor_user_id,
        note=note,
    )
    db.session.add(txn)
    db.session.flush()
    return txn


def list_transactions(
    *,
    product_id: int | None = None,
    location: str | None = None,
    type: str | None = None,
    reference_type: str | None = None,
    reference_id: int | None = None,
    limit: int = 200,
) -> list[InventoryTransaction]:
    """Newest first."""
    query = db.session.query(InventoryTransaction)
    if product_id is not None:
        query = query.filter(InventoryTransaction.product_id == product_id)
    if location is not None:
        query = query.filter(InventoryTransaction.location == location)
    if type is not None:
        query = query.filter(InventoryTransaction.type == type)
    if reference_type is not None:
        query = query.filter(InventoryTransaction.reference_type == reference_type)
    if reference_id is not None:
        query = query.filter(InventoryTransaction.reference_id == reference_id)

    return (
        query.order_by(InventoryTransaction.created_at.desc(), InventoryTransaction.id.desc())
        .limit(limit)
        .all()
    )
