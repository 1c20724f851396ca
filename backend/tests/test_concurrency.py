"""
Concurrency tests against a file-backed SQLite database.

Each worker thread runs in its own app context (own session, own
connection), the way concurrent HTTP requests do.

Verifies:
- Two concurrent approvals of one sale: exactly one wins, the other is
  InvalidTransition, stock is deducted and logged once
- Concurrent resolutions of one phone number produce one customer
"""

import threading
from decimal import Decimal

import pytest

from aquastock import create_app
from aquastock.extensions import db
from aquastock.models import Customer, InventoryTransaction, User
from aquastock.models.auth import ROLE_ACCOUNTANT, ROLE_ADMIN, ROLE_CLERK
from aquastock.services import customer_service, sales_service, stock_service


@pytest.fixture(scope='function')
def file_app(tmp_path):
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'concurrency.db'}",
        'RETRY_ATTEMPTS': 10,
        'RETRY_BACKOFF_SECONDS': 0.01,
    })
    with app.app_context():
        db.create_all()

    yield app

    with app.app_context():
        db.session.remove()
        db.engine.dispose()


def _seed_user(role: str) -> int:
    user = User(email=f"{role}@aquastock.test", password_hash="unused", role=role)
    db.session.add(user)
    db.session.commit()
    return user.id


def _run_together(app, targets):
    """Start one thread per target behind a barrier; return their results."""
    barrier = threading.Barrier(len(targets))
    results = []
    lock = threading.Lock()

    def worker(target):
        with app.app_context():
            try:
                barrier.wait()
                outcome = target()
            except Exception as exc:
                outcome = exc
            finally:
                db.session.remove()
            with lock:
                results.append(outcome)

    threads = [threading.Thread(target=worker, args=(target,)) for target in targets]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return results


def test_concurrent_double_approval(file_app):
    with file_app.app_context():
        admin_id = _seed_user(ROLE_ADMIN)
        accountant_id = _seed_user(ROLE_ACCOUNTANT)
        clerk = db.session.get(User, _seed_user(ROLE_CLERK))

        product = stock_service.create_product("20L Bottle")
        stock_service.adjust_stock(product.id, "utawala", 10)
        product_id = product.id

        sale = sales_service.create_sale(
            [{"product_id": product_id, "quantity": 3, "unit_price_cents": 1500}], clerk,
        )
        sale_id = sale.id

    def approve_as(user_id):
        def _approve():
            actor = db.session.get(User, user_id)
            sales_service.transition_sale(sale_id, "approved", actor)
            return "ok"
        return _approve

    results = _run_together(file_app, [approve_as(admin_id), approve_as(accountant_id)])

    outcomes = sorted(r if r == "ok" else type(r).__name__ for r in results)
    assert outcomes == ["InvalidTransition", "ok"]

    with file_app.app_context():
        assert stock_service.get_stock(product_id, "utawala") == Decimal("7")
        assert db.session.query(InventoryTransaction).count() == 1
        assert sales_service.get_sale(sale_id).status == "approved"


def test_concurrent_resolution_of_one_phone(file_app):
    def resolve(n):
        def _resolve():
            return customer_service.resolve_customer(name=f"Wanjiru {n}", phone="0711000111").id
        return _resolve

    results = _run_together(file_app, [resolve(n) for n in range(4)])

    assert [r for r in results if isinstance(r, Exception)] == []
    assert len(set(results)) == 1

    with file_app.app_context():
        assert db.session.query(Customer).count() == 1
