"""
Pytest fixtures for aquastock backend tests.

Provides test database setup, one user per role, products with stock, and
test client helpers.
"""

import sqlite3

import pytest
from sqlalchemy import event, update
from sqlalchemy.engine import Engine

from aquastock import create_app
from aquastock.extensions import db
from aquastock.models import Sale, User
from aquastock.models.auth import ROLE_ADMIN, ROLE_ACCOUNTANT, ROLE_CLERK, ROLE_USER
from aquastock.services import stock_service
from aquastock.services.auth_service import hash_password
from aquastock.services.session_service import create_session


TEST_PASSWORD = "Password123!"


@event.listens_for(Engine, "connect")
def _enforce_sqlite_foreign_keys(dbapi_connection, connection_record):
    # SQLite checks foreign keys only on connections that turn them on
    if isinstance(dbapi_connection, sqlite3.Connection):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def wipe_tables():
    """Delete every row, children first. Commits."""
    # sales.request_id and inventory_requests.sale_id point at each other
    db.session.execute(update(Sale).values(request_id=None))
    for table in reversed(db.metadata.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'RETRY_BACKOFF_SECONDS': 0,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.session.rollback()
        wipe_tables()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        wipe_tables()

        yield db.session

        # Cleanup after test
        db.session.rollback()


def _make_user(db_session, role: str) -> User:
    user = User(
        email=f"{role}@aquastock.test",
        full_name=f"Test {role.title()}",
        password_hash=_password_hash(),
        role=role,
    )
    db_session.add(user)
    db_session.commit()
    return user


_HASH_CACHE = {}


def _password_hash() -> str:
    # bcrypt at cost 12 is slow; hash once per test run
    if "hash" not in _HASH_CACHE:
        _HASH_CACHE["hash"] = hash_password(TEST_PASSWORD)
    return _HASH_CACHE["hash"]


@pytest.fixture(scope='function')
def admin(db_session):
    return _make_user(db_session, ROLE_ADMIN)


@pytest.fixture(scope='function')
def accountant(db_session):
    return _make_user(db_session, ROLE_ACCOUNTANT)


@pytest.fixture(scope='function')
def clerk(db_session):
    return _make_user(db_session, ROLE_CLERK)


@pytest.fixture(scope='function')
def basic_user(db_session):
    return _make_user(db_session, ROLE_USER)


@pytest.fixture(scope='function')
def product(db_session):
    """Product with 10 at utawala and 20 at kamulu."""
    p = stock_service.create_product("20L Bottle", min_stock_level=5)
    stock_service.adjust_stock(p.id, "utawala", 10)
    stock_service.adjust_stock(p.id, "kamulu", 20)
    return p


@pytest.fixture(scope='function')
def second_product(db_session):
    """Product with 3 at utawala and nothing at kamulu."""
    p = stock_service.create_product("Dispenser", min_stock_level=1)
    stock_service.adjust_stock(p.id, "utawala", 3)
    return p


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


def _headers_for(user: User) -> dict:
    _, token = create_session(user.id)
    return auth_headers(token)


@pytest.fixture(scope='function')
def admin_headers(admin):
    return _headers_for(admin)


@pytest.fixture(scope='function')
def accountant_headers(accountant):
    return _headers_for(accountant)


@pytest.fixture(scope='function')
def clerk_headers(clerk):
    return _headers_for(clerk)


@pytest.fixture(scope='function')
def user_headers(basic_user):
    return _headers_for(basic_user)
