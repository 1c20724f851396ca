# Overview: Request orchestrator; ties deduction requests to sales and customers.

"""
Deduction Requests

Any signed-in user may ask for stock to be taken out for a customer.
An admin then either rejects the request or approves it one of three ways:

1. Direct (sale_id given): link an existing sale. The sale's own approval
   performs the stock deduction, so nothing is deducted here.
2. Priced (unit_price_cents given): spawn an approved one-line sale for
   the request, deduct through the sale path and link it. Keeps money and
   audit trail on the Sale.
3. Lightweight (neither): deduct the requested quantity from the sales
   location directly, logged against the request. No Sale row exists.

Paths 2 and 3 share the sale path's insufficient-stock and
exactly-once guarantees: the request is claimed with a conditional
UPDATE, and claim + deduction commit together or not at all.
"""
from __future__ import annotations

from ..errors import NotFound, ValidationError
from ..extensions import db
from ..models import Customer, DeductionRequest, Product, Sale
from ..models.requests import REQUEST_STATUS_APPROVED
from ..models.sales import PAYMENT_METHODS, SALE_STATUS_APPROVED, SALE_STATUS_REJECTED
from ..time_utils import utcnow
from ..validation import line_total_cents, optional_text, parse_cents, parse_id, parse_line_items
from . import mutation_service, workflow
from .concurrency import run_with_retry
from .customer_service import resolve_customer


def create_deduction_requests(
    items,
    actor,
    *,
    customer_id: int | None = None,
    customer_name: str | None = None,
    customer_phone: str | None = None,
    save_customer: bool = False,
    notes: str | None = None,
) -> list[DeductionRequest]:
    """
    Create one pending request per item.

    Args:
        items: [{"product_id", "quantity"}], at least one
        actor: requesting User (any role)

    Returns:
        The created requests, in item order.
    """
    parsed = [
        (line["product_id"], line["quantity"])
        for line in parse_line_items(items, require_price=False)
    ]

    customer_name = optional_text(customer_name, "customer_name", max_length=255)
    customer_phone = optional_text(customer_phone, "customer_phone", max_length=32)
    notes = optional_text(notes, "notes")
    if customer_id is not None:
        customer_id = parse_id(customer_id, "customer_id")

    if save_customer and customer_id is None and (customer_name or customer_phone):
        customer_id = resolve_customer(name=customer_name, phone=customer_phone, actor_user_id=actor.id).id

    def _op():
        product_ids = {product_id for product_id, _ in parsed}
        found = {row.id for row in db.session.query(Product.id).filter(Product.id.in_(product_ids)).all()}
        missing = sorted(product_ids - found)
        if missing:
            raise NotFound(f"Products not found: {missing}", details={"product_ids": missing})
        if customer_id is not None and db.session.get(Customer, customer_id) is None:
            raise NotFound(f"Customer {customer_id} not found")

        created = []
        for product_id, quantity in parsed:
            request = DeductionRequest(
                product_id=product_id,
                quantity=quantity,
                customer_id=customer_id,
                customer_name=customer_name,
                customer_phone=customer_phone,
                notes=notes,
                created_by_user_id=actor.id,
            )
            db.session.add(request)
            created.append(request)
        db.session.flush()
        db.session.commit()
        return created

    return run_with_retry(_op)


def _link(request: DeductionRequest, sale: Sale) -> None:
    if sale.status == SALE_STATUS_REJECTED:
        raise ValidationError(f"Sale {sale.id} was rejected and cannot fulfil a request")
    if sale.request_id is not None and sale.request_id != request.id:
        raise ValidationError(
            f"Sale {sale.id} already fulfils request {sale.request_id}",
            details={"sale_id": sale.id, "request_id": sale.request_id},
        )
    sale.request_id = request.id


def attach_sale(request_id: int, sale: Sale, actor) -> DeductionRequest:
    """
    Direct approval inside the caller's DB transaction (no commit).

    Used when a sale is created for a request.
    """
    workflow.check_allowed(workflow.DEDUCTION_REQUEST, REQUEST_STATUS_APPROVED, actor)
    request = workflow.claim(
        workflow.DEDUCTION_REQUEST,
        request_id,
        REQUEST_STATUS_APPROVED,
        actor.id,
        extra_values={"sale_id": sale.id},
    )
    _link(request, sale)
    return request


def _link_existing_sale(sale_id: int):
    def _mutation(request, actor_user_id):
        sale = db.session.get(Sale, sale_id)
        if sale is None:
            raise NotFound(f"Sale {sale_id} not found")
        _link(request, sale)
        request.sale_id = sale.id
    return _mutation


def _spawn_sale(unit_price_cents: int, payment_method: str):
    from .sales_service import build_sale

    def _mutation(request, actor_user_id):
        quantity = request.quantity
        sale = build_sale(
            [{
                "product_id": request.product_id,
                "quantity": quantity,
                "unit_price_cents": unit_price_cents,
                "total_price_cents": line_total_cents(quantity, unit_price_cents),
            }],
            created_by_user_id=actor_user_id,
            customer_id=request.customer_id,
            customer_name=request.customer_name,
            customer_phone=request.customer_phone,
            payment_method=payment_method,
            notes=request.notes,
            request_id=request.id,
            status=SALE_STATUS_APPROVED,
        )
        sale.approved_by_user_id = actor_user_id
        sale.approved_at = utcnow()
        mutation_service.apply_sale(sale, actor_user_id)
        request.sale_id = sale.id
    return _mutation


def transition_deduction_request(
    request_id: int,
    status: str,
    actor,
    *,
    sale_id=None,
    unit_price_cents=None,
    payment_method: str = "cash",
) -> DeductionRequest:
    """
    Approve or reject a pending deduction request (admin only).

    Args:
        status: "approved" or "rejected"
        sale_id: direct approval against an existing sale
        unit_price_cents: priced approval, spawns an approved sale
        payment_method: for the spawned sale

    Raises:
        ValidationError, Forbidden, NotFound, InvalidTransition,
        InsufficientStock, StorageFailure
    """
    kind = workflow.DEDUCTION_REQUEST

    if status != REQUEST_STATUS_APPROVED:
        # Rejection, or an unknown status the state machine will refuse
        return workflow.transition(kind, request_id, status, actor)

    if sale_id is not None and unit_price_cents is not None:
        raise ValidationError("Provide either sale_id or unit_price_cents, not both")

    if sale_id is not None:
        sale_id = parse_id(sale_id, "sale_id")
        # sale_id is written by the mutation once the sale is known to exist
        return workflow.transition(
            kind,
            request_id,
            status,
            actor,
            mutation=_link_existing_sale(sale_id),
        )

    if unit_price_cents is not None:
        unit_price_cents = parse_cents(unit_price_cents, "unit_price_cents")
        if payment_method not in PAYMENT_METHODS:
            raise ValidationError(f"payment_method must be one of: {', '.join(PAYMENT_METHODS)}")
        return workflow.transition(
            kind,
            request_id,
            status,
            actor,
            mutation=_spawn_sale(unit_price_cents, payment_method),
        )

    return workflow.transition(kind, request_id, status, actor)


def get_request(request_id: int) -> DeductionRequest:
    request = db.session.get(DeductionRequest, request_id)
    if request is None:
        raise NotFound(f"Request {request_id} not found")
    return request


def list_requests(status: str | None = None, created_by_user_id: int | None = None) -> list[DeductionRequest]:
    query = db.session.query(DeductionRequest)
    if status is not None:
        query = query.filter(DeductionRequest.status == status)
    if created_by_user_id is not None:
        query = query.filter(DeductionRequest.created_by_user_id == created_by_user_id)
    return query.order_by(DeductionRequest.created_at.desc(), DeductionRequest.id.desc()).all()
