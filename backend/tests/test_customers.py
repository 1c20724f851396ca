"""
Customer resolution tests.

Verifies:
- Resolution is idempotent by phone
- Email is the fallback key
- Duplicate phone/email on explicit creation is DuplicateCustomer
"""

import pytest

from aquastock.errors import DuplicateCustomer, ValidationError
from aquastock.models import Customer
from aquastock.services import customer_service


class TestResolveCustomer:

    def test_same_phone_different_names(self, db_session, clerk):
        first = customer_service.resolve_customer(name="Mary Njeri", phone="0711222333", actor_user_id=clerk.id)
        second = customer_service.resolve_customer(name="Mary N.", phone="0711222333", actor_user_id=clerk.id)

        assert second.id == first.id
        assert db_session.query(Customer).count() == 1
        # Descriptive fields are refreshed on reuse
        assert second.name == "Mary N."

    def test_falls_back_to_email(self, db_session):
        first = customer_service.resolve_customer(name="Brian", email="Brian@Example.com")
        second = customer_service.resolve_customer(name="Brian K", email="brian@example.com")

        assert second.id == first.id
        assert first.email == "brian@example.com"

    def test_phone_added_to_email_match(self, db_session):
        first = customer_service.resolve_customer(name="Faith", email="faith@example.com")
        second = customer_service.resolve_customer(phone="0733444555", email="faith@example.com")

        assert second.id == first.id
        assert second.phone == "0733444555"

    def test_new_customer_needs_a_name(self, db_session):
        with pytest.raises(ValidationError):
            customer_service.resolve_customer(phone="0799000000")
        assert db_session.query(Customer).count() == 0

    def test_needs_some_identity(self, db_session):
        with pytest.raises(ValidationError):
            customer_service.resolve_customer()

    def test_email_not_stolen_from_another_customer(self, db_session):
        other = customer_service.create_customer("Other", email="shared@example.com")
        mine = customer_service.resolve_customer(name="Mine", phone="0700000001")

        again = customer_service.resolve_customer(name="Mine", phone="0700000001", email="shared@example.com")

        assert again.id == mine.id
        assert again.email is None
        assert customer_service.get_customer(other.id).email == "shared@example.com"


class TestResolveInsertCollision:
    """The lookup misses a row another request commits before our INSERT lands."""

    def test_reuses_the_row_that_won(self, db_session, monkeypatch):
        winner = customer_service.create_customer("Wanjiru", phone="0711000111")
        real_find = customer_service.find_customer
        lookups = []

        def find_missing_first_time(phone=None, email=None):
            lookups.append(phone)
            if len(lookups) == 1:
                return None
            return real_find(phone, email)

        monkeypatch.setattr(customer_service, "find_customer", find_missing_first_time)

        resolved = customer_service.resolve_customer(name="Wanjiru W", phone="0711000111")

        assert resolved.id == winner.id
        assert len(lookups) == 2
        assert db_session.query(Customer).count() == 1

    def test_unrecoverable_collision_is_duplicate(self, db_session, monkeypatch):
        customer_service.create_customer("Wanjiru", phone="0711000111")
        monkeypatch.setattr(customer_service, "find_customer", lambda phone=None, email=None: None)

        with pytest.raises(DuplicateCustomer):
            customer_service.resolve_customer(name="Wanjiru W", phone="0711000111")
        assert db_session.query(Customer).count() == 1


class TestCreateCustomer:

    def test_duplicate_phone(self, db_session):
        customer_service.create_customer("Peter", phone="0744555666")

        with pytest.raises(DuplicateCustomer):
            customer_service.create_customer("Pete", phone="0744555666")
        assert db_session.query(Customer).count() == 1

    def test_duplicate_email(self, db_session):
        customer_service.create_customer("Ann", email="ann@example.com")

        with pytest.raises(DuplicateCustomer):
            customer_service.create_customer("Ann B", email="ANN@example.com")

    def test_blank_phone_is_not_a_duplicate(self, db_session):
        customer_service.create_customer("No Phone 1", phone="")
        customer_service.create_customer("No Phone 2", phone="  ")

        assert db_session.query(Customer).filter(Customer.phone.is_(None)).count() == 2
