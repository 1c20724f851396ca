# Overview: Mutation engine; the only code that changes StockRecord.quantity.

"""
Mutation Engine

Translates one approved transition into one stock delta.

RULES:
- Every quantity change is a single conditional UPDATE, never
  read-compute-write:
      decrement: UPDATE ... SET quantity = quantity - :n
                 WHERE product_id = :p AND location = :l AND quantity >= :n
      increment: UPDATE ... SET quantity = quantity + :n WHERE ...
  A decrement that matches no row lost a race (or never had the stock)
  and raises InsufficientStock.
- A deduction across several lines is checked up front for every line
  (so the error names every shortfall) and then applied; any failure
  propagates and the caller's run_with_retry rolls back the whole DB
  transaction, so zero lines end up deducted.
- A transfer's two rows change in the same DB transaction.
- Functions here flush but never commit; the transition owns the commit.
- Each physical movement appends a transaction log entry.
"""
from __future__ import annotations

from decimal import Decimal

from sqlalchemy import update

from ..errors import InsufficientStock, NotFound
from ..extensions import db
from ..models import StockRecord
from ..models.inventory import SALES_LOCATION, TXN_PURCHASE, TXN_SALE, TXN_TRANSFER
from .concurrency import lock_for_update
from .transaction_log_service import append_transaction


def _record_filter(product_id: int, location: str):
    return (StockRecord.product_id == product_id) & (StockRecord.location == location)


def _conditional_decrement(product_id: int, location: str, quantity: Decimal) -> bool:
    """Decrement iff sufficient. True when exactly one row changed."""
    stmt = (
        update(StockRecord)
        .where(_record_filter(product_id, location))
        .where(StockRecord.quantity >= quantity)
        .values(quantity=StockRecord.quantity - quantity)
        .execution_options(synchronize_session=False)
    )
    return db.session.execute(stmt).rowcount == 1


def _increment(product_id: int, location: str, quantity: Decimal) -> None:
    stmt = (
        update(StockRecord)
        .where(_record_filter(product_id, location))
        .values(quantity=StockRecord.quantity + quantity)
        .execution_options(synchronize_session=False)
    )
    if db.session.execute(stmt).rowcount != 1:
        raise NotFound(f"No stock record for product {product_id} at {location}")


def _aggregate(lines) -> dict[int, Decimal]:
    """Sum quantities per product, keeping first-seen order."""
    totals: dict[int, Decimal] = {}
    for product_id, quantity in lines:
        totals[product_id] = totals.get(product_id, Decimal("0")) + Decimal(quantity)
    return totals


def check_available(location: str, totals: dict[int, Decimal]) -> None:
    """
    Raise InsufficientStock listing every product short at location.

    Rows are locked in id order (FOR UPDATE where the backend supports it)
    so concurrent multi-line deductions cannot deadlock each other.
    """
    records = (
        lock_for_update(
            db.session.query(StockRecord)
            .filter(StockRecord.location == location, StockRecord.product_id.in_(list(totals)))
            .order_by(StockRecord.id)
        )
        .populate_existing()
        .all()
    )
    available = {record.product_id: Decimal(record.quantity) for record in records}

    missing = [product_id for product_id in totals if product_id not in available]
    if missing:
        raise NotFound(f"No stock record at {location} for products {missing}")

    shortfalls = []
    for product_id, requested in totals.items():
        on_hand = available[product_id]
        if on_hand < requested:
            shortfalls.append({
                "product_id": product_id,
                "location": location,
                "requested": float(requested),
                "available": float(on_hand),
                "shortfall": float(requested - on_hand),
            })

    if shortfalls:
        raise InsufficientStock(
            f"Insufficient stock at {location}",
            details={"items": shortfalls},
        )


def deduct(
    lines,
    *,
    location: str,
    reference_type: str,
    reference_id: int,
    actor_user_id: int | None = None,
    note: str | None = None,
) -> None:
    """
    All-or-nothing deduction of (product_id, quantity) lines at location.

    One log entry per line (type=sale).
    """
    lines = [(product_id, Decimal(quantity)) for product_id, quantity in lines]
    totals = _aggregate(lines)
    check_available(location, totals)

    for product_id, requested in totals.items():
        if not _conditional_decrement(product_id, location, requested):
            # Lost a race between the check and the update
            raise InsufficientStock(
                f"Insufficient stock at {location}",
                details={"items": [{"product_id": product_id, "location": location, "requested": float(requested)}]},
            )

    for product_id, quantity in lines:
        append_transaction(
            product_id=product_id,
            location=location,
            type=TXN_SALE,
            quantity_delta=-quantity,
            reference_type=reference_type,
            reference_id=reference_id,
            actor_user_id=actor_user_id,
            note=note,
        )


def apply_sale(sale, actor_user_id: int | None = None) -> None:
    """Deduct every sale item from the sales location."""
    deduct(
        [(item.product_id, item.quantity) for item in sale.items],
        location=SALES_LOCATION,
        reference_type="sale",
        reference_id=sale.id,
        actor_user_id=actor_user_id,
        note=f"Sale {sale.id}",
    )


def apply_request_deduction(request, actor_user_id: int | None = None) -> None:
    """Sale-style deduction for a deduction request approved without a sale."""
    deduct(
        [(request.product_id, request.quantity)],
        location=SALES_LOCATION,
        reference_type="inventory_request",
        reference_id=request.id,
        actor_user_id=actor_user_id,
        note=f"Deduction request {request.id}",
    )


def apply_purchase_receipt(purchase_order, actor_user_id: int | None = None) -> None:
    """Receive every LPO line into the order's target location. No sufficiency check."""
    location = purchase_order.target_location
    for item in purchase_order.items:
        _increment(item.product_id, location, Decimal(item.quantity))
        append_transaction(
            product_id=item.product_id,
            location=location,
            type=TXN_PURCHASE,
            quantity_delta=Decimal(item.quantity),
            reference_type="purchase_order",
            reference_id=purchase_order.id,
            actor_user_id=actor_user_id,
            note=f"LPO {purchase_order.id} from {purchase_order.supplier_name}",
        )


def apply_transfer(transfer, actor_user_id: int | None = None) -> None:
    """Move quantity from_location -> to_location; both sides or neither."""
    quantity = Decimal(transfer.quantity)
    check_available(transfer.from_location, {transfer.product_id: quantity})

    if not _conditional_decrement(transfer.product_id, transfer.from_location, quantity):
        raise InsufficientStock(
            f"Insufficient stock at {transfer.from_location}",
            details={"items": [{
                "product_id": transfer.product_id,
                "location": transfer.from_location,
                "requested": float(quantity),
            }]},
        )
    _increment(transfer.product_id, transfer.to_location, quantity)

    note = f"Transfer {transfer.id} {transfer.from_location} -> {transfer.to_location}"
    append_transaction(
        product_id=transfer.product_id,
        location=transfer.from_location,
        type=TXN_TRANSFER,
        quantity_delta=-quantity,
        reference_type="transfer",
        reference_id=transfer.id,
        actor_user_id=actor_user_id,
        note=note,
    )
    append_transaction(
        product_id=transfer.product_id,
        location=transfer.to_location,
        type=TXN_TRANSFER,
        quantity_delta=quantity,
        reference_type="transfer",
        reference_id=transfer.id,
        actor_user_id=actor_user_id,
        note=note,
    )


def set_quantity(product_id: int, location: str, quantity: Decimal) -> StockRecord:
    """Stock-take override. Single UPDATE; not logged."""
    stmt = (
        update(StockRecord)
        .where(_record_filter(product_id, location))
        .values(quantity=quantity)
        .execution_options(synchronize_session=False)
    )
    if db.session.execute(stmt).rowcount != 1:
        raise NotFound(f"No stock record for product {product_id} at {location}")

    return (
        db.session.query(StockRecord)
        .filter_by(product_id=product_id, location=location)
        .populate_existing()
        .one()
    )
