"""
Sales Service

WHY: A sale is recorded as pending and only touches stock when an
admin/accountant approves it. Approval deducts every item from the sales
location (utawala) all-or-nothing; rejection never touches stock.
"""
from __future__ import annotations

from flask import current_app
from sqlalchemy import update

from ..errors import InvalidTransition, NotFound, ValidationError
from ..extensions import db
from ..models import Customer, Product, Sale, SaleItem
from ..models.sales import PAYMENT_METHODS, SALE_STATUS_PENDING
from ..time_utils import utcnow
from ..validation import optional_text, parse_id, parse_line_items
from . import workflow
from .concurrency import run_with_retry
from .customer_service import resolve_customer


def _require_products(product_ids) -> None:
    ids = set(product_ids)
    found = {row.id for row in db.session.query(Product.id).filter(Product.id.in_(ids)).all()}
    missing = sorted(ids - found)
    if missing:
        raise NotFound(f"Products not found: {missing}", details={"product_ids": missing})


def build_sale(
    lines: list[dict],
    *,
    created_by_user_id: int | None,
    customer_id: int | None = None,
    customer_name: str | None = None,
    customer_phone: str | None = None,
    payment_method: str = "cash",
    notes: str | None = None,
    request_id: int | None = None,
    status: str = SALE_STATUS_PENDING,
) -> Sale:
    """
    Add a sale and its items to the session (flushes, does not commit).

    lines come from validation.parse_line_items; the total is frozen here.
    """
    sale = Sale(
        status=status,
        customer_id=customer_id,
        customer_name=customer_name,
        customer_phone=customer_phone,
        payment_method=payment_method,
        notes=notes,
        total_amount_cents=sum(line["total_price_cents"] for line in lines),
        request_id=request_id,
        created_by_user_id=created_by_user_id,
    )
    for line in lines:
        sale.items.append(SaleItem(
            product_id=line["product_id"],
            quantity=line["quantity"],
            unit_price_cents=line["unit_price_cents"],
            total_price_cents=line["total_price_cents"],
        ))
    db.session.add(sale)
    db.session.flush()
    return sale


def create_sale(
    items,
    actor,
    *,
    customer_id: int | None = None,
    customer_name: str | None = None,
    customer_phone: str | None = None,
    save_customer: bool = False,
    payment_method: str = "cash",
    notes: str | None = None,
    request_id: int | None = None,
) -> Sale:
    """
    Create a pending sale.

    Args:
        items: [{"product_id", "quantity", "unit_price_cents"}]
        actor: creating User
        customer_id: existing customer, or
        customer_name/customer_phone (+ save_customer): resolve or create one
        request_id: deduction request this sale fulfils; the request is
            approved and linked in the same DB transaction (admin only)

    Raises:
        ValidationError, NotFound, Forbidden, InvalidTransition,
        DuplicateCustomer, StorageFailure
    """
    lines = parse_line_items(items)
    if payment_method not in PAYMENT_METHODS:
        raise ValidationError(
            f"payment_method must be one of: {', '.join(PAYMENT_METHODS)}",
        )
    customer_name = optional_text(customer_name, "customer_name", max_length=255)
    customer_phone = optional_text(customer_phone, "customer_phone", max_length=32)
    notes = optional_text(notes, "notes")
    if customer_id is not None:
        customer_id = parse_id(customer_id, "customer_id")

    if request_id is not None:
        request_id = parse_id(request_id, "request_id")
        # Fail fast on role before any customer row is written
        workflow.check_allowed(workflow.DEDUCTION_REQUEST, workflow.DEDUCTION_REQUEST.positive_state, actor)

    if save_customer and customer_id is None and (customer_name or customer_phone):
        customer = resolve_customer(name=customer_name, phone=customer_phone, actor_user_id=actor.id)
        customer_id = customer.id

    from .request_service import attach_sale

    def _op():
        _require_products(line["product_id"] for line in lines)
        if customer_id is not None and db.session.get(Customer, customer_id) is None:
            raise NotFound(f"Customer {customer_id} not found")

        sale = build_sale(
            lines,
            created_by_user_id=actor.id,
            customer_id=customer_id,
            customer_name=customer_name,
            customer_phone=customer_phone,
            payment_method=payment_method,
            notes=notes,
        )

        if request_id is not None:
            # Claims the request first; the link to it is written only if it exists
            attach_sale(request_id, sale, actor)

        db.session.commit()
        return sale

    return run_with_retry(_op)


def update_sale_items(sale_id: int, items, actor) -> Sale:
    """
    Replace the items of a pending sale (e.g. to correct a quantity after
    an InsufficientStock rejection of the approval).

    The pending check is a conditional UPDATE in the same DB transaction as
    the item rewrite, so an approval racing this edit either sees the old
    items or the new ones, never a mix.

    Raises:
        ValidationError, NotFound, InvalidTransition, StorageFailure
    """
    lines = parse_line_items(items)

    def _op():
        _require_products(line["product_id"] for line in lines)
        stmt = (
            update(Sale)
            .where(Sale.id == sale_id)
            .where(Sale.status == SALE_STATUS_PENDING)
            .values(
                total_amount_cents=sum(line["total_price_cents"] for line in lines),
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        if db.session.execute(stmt).rowcount != 1:
            sale = db.session.get(Sale, sale_id, populate_existing=True)
            if sale is None:
                raise NotFound(f"Sale {sale_id} not found")
            raise InvalidTransition(
                f"Sale {sale_id} has already been processed",
                details={"status": sale.status},
            )

        sale = db.session.get(Sale, sale_id, populate_existing=True)
        sale.items.clear()
        db.session.flush()
        for line in lines:
            sale.items.append(SaleItem(
                product_id=line["product_id"],
                quantity=line["quantity"],
                unit_price_cents=line["unit_price_cents"],
                total_price_cents=line["total_price_cents"],
            ))
        db.session.commit()
        return sale

    sale = run_with_retry(_op)
    current_app.logger.info("Sale %s items replaced by user %s", sale_id, actor.id)
    return sale


def transition_sale(sale_id: int, status: str, actor) -> Sale:
    """Approve (deducts stock) or reject a pending sale."""
    return workflow.transition(workflow.SALE, sale_id, status, actor)


def get_sale(sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise NotFound(f"Sale {sale_id} not found")
    return sale


def list_sales(status: str | None = None) -> list[Sale]:
    query = db.session.query(Sale)
    if status is not None:
        query = query.filter(Sale.status == status)
    return query.order_by(Sale.created_at.desc(), Sale.id.desc()).all()
