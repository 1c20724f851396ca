# Overview: Service-layer operations for customers; create-or-reuse by phone/email.

"""
Customer resolution

Phone is the stable identity key, email the fallback. Duplicate prevention
relies on the UNIQUE constraints on customers.phone / customers.email:
lookups first, then an INSERT whose IntegrityError is caught and
translated (re-resolve, or DuplicateCustomer). There is no
check-then-insert window that a concurrent request could slip through.
"""
from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from ..errors import DuplicateCustomer, NotFound, ValidationError
from ..extensions import db
from ..models import Customer
from ..validation import optional_text
from .concurrency import run_with_retry


def _normalize(name, phone, email, notes):
    name = optional_text(name, "name", max_length=255)
    phone = optional_text(phone, "phone", max_length=32)
    email = optional_text(email, "email", max_length=255)
    if email is not None:
        email = email.lower()
    notes = optional_text(notes, "notes")
    return name, phone, email, notes


def find_customer(phone: str | None = None, email: str | None = None) -> Customer | None:
    """Phone first, then email."""
    if phone:
        customer = db.session.query(Customer).filter_by(phone=phone).first()
        if customer is not None:
            return customer
    if email:
        return db.session.query(Customer).filter_by(email=email).first()
    return None


def _refresh(customer: Customer, name: str | None, phone: str | None, email: str | None) -> None:
    """Refresh descriptive fields on reuse; never change an existing phone."""
    if name and customer.name != name:
        customer.name = name
    if phone and not customer.phone:
        customer.phone = phone
    if email and customer.email != email:
        taken = db.session.query(Customer.id).filter(
            Customer.email == email,
            Customer.id != customer.id,
        ).first()
        if taken is None:
            customer.email = email


def resolve_customer(
    name: str | None = None,
    phone: str | None = None,
    email: str | None = None,
    notes: str | None = None,
    actor_user_id: int | None = None,
) -> Customer:
    """
    Return the customer identified by phone (then email), creating it if
    neither matches. Idempotent by phone.

    Commits its own DB transaction; call it before starting the unit of
    work that uses the returned id.

    Raises:
        ValidationError: nothing to identify or name a new customer by
        DuplicateCustomer: a conflicting row appeared that cannot be reused
    """
    name, phone, email, notes = _normalize(name, phone, email, notes)
    if not (name or phone or email):
        raise ValidationError("Customer name, phone or email is required")

    def _op():
        customer = find_customer(phone, email)
        if customer is not None:
            _refresh(customer, name, phone, email)
            db.session.commit()
            return customer

        if name is None:
            raise ValidationError("Customer name is required to create a new customer")

        customer = Customer(
            name=name,
            phone=phone,
            email=email,
            notes=notes,
            created_by_user_id=actor_user_id,
        )
        db.session.add(customer)
        try:
            db.session.flush()
        except IntegrityError:
            # A concurrent request inserted the same phone/email first
            db.session.rollback()
            existing = find_customer(phone, email)
            if existing is None:
                raise DuplicateCustomer("A customer with this phone number or email already exists")
            return existing

        db.session.commit()
        return customer

    return run_with_retry(_op)


def create_customer(
    name: str,
    phone: str | None = None,
    email: str | None = None,
    notes: str | None = None,
    actor_user_id: int | None = None,
) -> Customer:
    """
    Explicit address-book insert. Never reuses an existing row.

    Raises:
        DuplicateCustomer: phone or email already belongs to a customer
    """
    name, phone, email, notes = _normalize(name, phone, email, notes)
    if name is None:
        raise ValidationError("name is required")

    def _op():
        customer = Customer(
            name=name,
            phone=phone,
            email=email,
            notes=notes,
            created_by_user_id=actor_user_id,
        )
        db.session.add(customer)
        try:
            db.session.flush()
        except IntegrityError:
            db.session.rollback()
            raise DuplicateCustomer(
                "A customer with this phone number or email already exists",
                details={"phone": phone, "email": email},
            )
        db.session.commit()
        return customer

    return run_with_retry(_op)


def get_customer(customer_id: int) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if customer is None:
        raise NotFound(f"Customer {customer_id} not found")
    return customer


def list_customers() -> list[Customer]:
    return db.session.query(Customer).order_by(Customer.name).all()
