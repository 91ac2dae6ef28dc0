"""
Shared fixtures.

Environment is configured before anything from `lounge` is imported:
settings are read once at import time.
"""

import os
import tempfile
from datetime import datetime
from pathlib import Path
from unittest.mock import MagicMock, patch

_DB_DIR = tempfile.mkdtemp(prefix="lounge-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{Path(_DB_DIR) / 'test.db'}"
os.environ["REDIS_URL"] = "redis://localhost:6379/15"
os.environ["RAZORPAY_KEY_ID"] = "rzp_test_key"
os.environ["RAZORPAY_KEY_SECRET"] = "test_key_secret"
os.environ["RAZORPAY_WEBHOOK_SECRET"] = "test_webhook_secret"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from lounge.database import SessionLocal, engine, get_db  # noqa: E402
from lounge.models.generated import (  # noqa: E402
    Base,
    Bookings,
    Customers,
    Sessions,
    SlotBlocks,
    Stations,
)
from lounge.services.payments import get_payment_gateway  # noqa: E402

BOOKING_DATE = "2025-01-20"
# A fixed "now" the day before the booking date, so live sessions never apply
NOW = datetime(2025, 1, 19, 12, 0, 0)


class FakeVerifier:
    """Payment verifier with a fixed answer; counts calls."""

    def __init__(self, paid: bool = True, on_verify=None):
        self.paid = paid
        self.on_verify = on_verify
        self.calls = []

    def verify(self, order_id, payment_id, signature):
        self.calls.append((order_id, payment_id, signature))
        if self.on_verify:
            self.on_verify()
        return self.paid


class FakeGateway(FakeVerifier):
    """Stands in for RazorpayGateway in router tests."""

    def __init__(self, paid: bool = True, orders=None):
        super().__init__(paid)
        self.orders = orders or {}

    def fetch_order(self, order_id):
        return self.orders.get(order_id)


@pytest.fixture(autouse=True)
def schema():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def redis_mock():
    """Events go to a mock; assert on redis_mock.rpush."""
    mock = MagicMock()
    with patch("lounge.services.events.redis_client", mock):
        yield mock


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def stations(db):
    """Three active stations and one retired one."""
    rows = [
        Stations(name="Console 1", type="ps5", hourly_rate=150),
        Stations(name="Console 2", type="ps5", hourly_rate=150),
        Stations(name="VR Pod", type="vr", hourly_rate=300),
        Stations(name="Old Console", type="ps4", hourly_rate=100, is_active=0),
    ]
    db.add_all(rows)
    db.commit()
    return {s.name: s.id for s in rows}


@pytest.fixture
def customer(db):
    row = Customers(name="Asha", phone="9876543210", custom_id="CUE3210TEST")
    db.add(row)
    db.commit()
    return row


@pytest.fixture
def add_booking(db, customer):
    def _add(station_id, start, end, status="confirmed", booking_date=BOOKING_DATE, payment_txn_id=None):
        row = Bookings(
            station_id=station_id,
            customer_id=customer.id,
            booking_date=booking_date,
            start_time=start,
            end_time=end,
            duration=60,
            status=status,
            payment_txn_id=payment_txn_id,
        )
        db.add(row)
        db.commit()
        return row
    return _add


@pytest.fixture
def add_session(db):
    def _add(station_id, start_time, end_time=None):
        row = Sessions(station_id=station_id, start_time=start_time, end_time=end_time)
        db.add(row)
        db.commit()
        return row
    return _add


@pytest.fixture
def add_block(db):
    def _add(station_id, start, end, expires_at, is_confirmed=False, booking_date=BOOKING_DATE):
        row = SlotBlocks(
            station_id=station_id,
            booking_date=booking_date,
            start_time=start,
            end_time=end,
            expires_at=expires_at,
            is_confirmed=is_confirmed,
        )
        db.add(row)
        db.commit()
        return row
    return _add


@pytest.fixture
def gateway():
    return FakeGateway(paid=True)


@pytest.fixture
def client(gateway):
    from lounge.main import app

    def override_get_db():
        session = SessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
