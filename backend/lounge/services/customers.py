# backend/lounge/services/customers.py
"""
Customer resolution for committed bookings.

Two commits for the same new phone number can both miss the lookup and
both insert. The unique index on customers.phone rejects the second
insert; the loser re-reads and adopts the winner's row.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..errors import CustomerCreateConflict, StorageError, ValidationError, storage_errors
from ..models.generated import Customers as DBCustomers
from .phone import generate_customer_code, normalize_phone
from .slots.config import BookingConfig, get_booking_config

logger = logging.getLogger(__name__)


def find_customer_by_phone(db: Session, phone: str) -> Optional[DBCustomers]:
    """Look up a customer by an already normalized phone."""
    with storage_errors("Customer lookup"):
        return db.query(DBCustomers).filter(DBCustomers.phone == phone).first()


def resolve_customer(
    db: Session,
    name: str,
    phone: str,
    email: Optional[str] = None,
    customer_id: Optional[str] = None,
    now: Optional[datetime] = None,
    config: Optional[BookingConfig] = None,
) -> DBCustomers:
    """
    Find the customer for a booking, creating it if needed.

    Order:
    1. An explicit customer_id that exists wins
    2. Lookup by normalized phone
    3. Insert; on a unique-phone race, adopt the row that won
    """
    config = config or get_booking_config()

    if customer_id:
        with storage_errors("Customer lookup"):
            customer = db.get(DBCustomers, customer_id)
        if customer:
            return customer
        logger.warning(f"[CUSTOMER] Unknown customer id {customer_id}, falling back to phone")

    normalized = normalize_phone(phone, config)
    if not normalized:
        raise ValidationError("Customer phone is required", received=phone)

    customer = find_customer_by_phone(db, normalized)
    if customer:
        return customer

    try:
        return _create_customer(db, name, normalized, email, now)
    except CustomerCreateConflict:
        customer = find_customer_by_phone(db, normalized)
        if customer is None:
            raise StorageError("Failed to create or find customer", phone=normalized)
        logger.warning(
            f"[CUSTOMER] Phone {normalized} was created concurrently, "
            f"adopting customer_id={customer.id}"
        )
        return customer


def _create_customer(
    db: Session,
    name: str,
    phone: str,
    email: Optional[str],
    now: Optional[datetime],
) -> DBCustomers:
    customer = DBCustomers(
        name=(name or "").strip() or "Guest",
        phone=phone,
        email=(email or "").strip() or None,
        custom_id=generate_customer_code(phone, now),
        is_member=False,
        loyalty_points=0,
        total_spent=0,
        total_play_time=0,
    )
    try:
        db.add(customer)
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise CustomerCreateConflict("Customer phone already exists", phone=phone) from e
    except SQLAlchemyError as e:
        db.rollback()
        raise StorageError("Customer creation failed") from e

    with storage_errors("Customer reload"):
        db.refresh(customer)
    logger.info(f"[CUSTOMER] Created customer_id={customer.id} code={customer.custom_id}")
    return customer
