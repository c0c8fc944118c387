"""
Pytest fixtures for SoleMate backend tests.

Provides an in-memory database, a per-test table wipe, catalog/user/guest
fixtures, and the Flask test client.
"""

import hashlib
import hmac
import json
import re

import pytest

from solemate import create_app
from solemate.config import TestConfig
from solemate.extensions import db
from solemate.services import catalog_service, messaging_service, session_service
from solemate.services.auth_service import create_user
from solemate.services.owner import GuestOwner, UserOwner


PASSWORD = "Password123"

SHIPPING_ADDRESS = {
    "name": "Asha Rao",
    "phone": "+919876543210",
    "address_line1": "12 MG Road",
    "address_line2": None,
    "city": "Bengaluru",
    "state": "Karnataka",
    "postal_code": "560001",
    "country": "IN",
}

GUEST_CONTACT = {
    "name": "Asha Rao",
    "email": "asha@example.com",
    "phone": "+919876543210",
}


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestConfig)

    with app.app_context():
        db.create_all()
        yield app
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
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        messaging_service.clear_outbox()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def catalog(db_session):
    """
    One active sneaker with two variants and one inactive product.

    - runner_9: 2500.00, 5 in stock
    - runner_10: 500.00, 2 in stock
    - retired: variant of an inactive product, 3 in stock
    """
    runner = catalog_service.create_product(
        patch={"name": "Air Stride Runner", "brand": "Stride", "category": "RUNNING", "gender": "MEN"},
        variants=[
            ({"sku": "RUN-BLK-9", "size": "9", "color": "Black", "price_cents": 250000}, 5),
            ({"sku": "RUN-BLK-10", "size": "10", "color": "Black", "price_cents": 50000}, 2),
        ],
        performed_by="test",
    )
    retired = catalog_service.create_product(
        patch={"name": "Old Court", "brand": "Heritage", "category": "SNEAKERS", "is_active": False},
        variants=[({"sku": "OLD-WHT-8", "size": "8", "color": "White", "price_cents": 30000}, 3)],
        performed_by="test",
    )
    variants = {v.sku: v for v in runner.variants}
    return {
        "product": runner,
        "runner_9": variants["RUN-BLK-9"],
        "runner_10": variants["RUN-BLK-10"],
        "retired_product": retired,
        "retired": retired.variants[0],
    }


@pytest.fixture(scope='function')
def user(db_session):
    return create_user(email="shopper@example.com", password=PASSWORD, full_name="Shopper")


@pytest.fixture(scope='function')
def other_user(db_session):
    return create_user(email="someone@example.com", password=PASSWORD)


@pytest.fixture(scope='function')
def admin(db_session):
    return create_user(email="admin@solemate.local", password=PASSWORD, is_admin=True)


@pytest.fixture(scope='function')
def user_owner(user):
    return UserOwner(user.id)


@pytest.fixture(scope='function')
def guest(db_session):
    """(GuestSession, plaintext token, GuestOwner)"""
    session, token = session_service.create_session()
    return session, token, GuestOwner(session.id)


@pytest.fixture(scope='function')
def guest_owner(guest):
    return guest[2]


def last_code(target: str | None = None) -> str:
    """Most recent 6-digit code sent through the memory outbox."""
    for message in reversed(messaging_service.get_outbox()):
        if target is None or message["target"] == target:
            match = re.search(r"\b(\d{6})\b", message["message"])
            if match:
                return match.group(1)
    raise AssertionError("no code in outbox")


def signed_webhook(payload: dict, secret: str = "test-webhook-secret") -> tuple[bytes, dict]:
    body = json.dumps(payload).encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return body, {"X-Payment-Signature": signature, "Content-Type": "application/json"}


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


def guest_headers(token: str) -> dict:
    return {'X-Session-Id': token}


def get_auth_token(client, email: str, password: str = PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={'email': email, 'password': password})
    if response.status_code == 200:
        return response.json['data']['token']
    return None
