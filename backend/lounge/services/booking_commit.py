# backend/lounge/services/booking_commit.py
"""
Idempotent booking commit.

Creates the booking rows for one verified payment exactly once, no matter
how many times or from how many callers it is invoked for that payment.

Stages:
    VERIFYING_PAYMENT → RESOLVING_CUSTOMER → CHECKING_CONFLICT
    → INSERTING → CONFIRMING_BLOCKS → DONE

Whenever bookings with the payment's payment_txn_id already exist before
INSERTING, the commit short-circuits to ALREADY_COMMITTED and returns
their ids. The existence check runs after verification, after customer
resolution and right before the insert. The unique constraint on
(payment_txn_id, station, slot) decides the last race: the losing insert
fails as a whole and is answered with the winner's rows.

No lock is taken; the database is the only shared state.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..errors import LoungeError, PaymentInvalid, SlotNoLongerAvailable, StorageError, storage_errors
from ..models.generated import Bookings as DBBookings
from ..models.generated import Customers as DBCustomers
from .customers import resolve_customer
from .events import emit_event
from .payload import BookingPayload
from .payments import PaymentVerifier
from .slots.availability import check_availability, resolve_stations
from .slots.blocks import confirm_blocks
from .slots.config import BookingConfig, get_booking_config

logger = logging.getLogger(__name__)


class CommitStage(str, Enum):
    VERIFYING_PAYMENT = "verifying_payment"
    RESOLVING_CUSTOMER = "resolving_customer"
    CHECKING_CONFLICT = "checking_conflict"
    INSERTING = "inserting"
    CONFIRMING_BLOCKS = "confirming_blocks"
    ALREADY_COMMITTED = "already_committed"
    DONE = "done"


@dataclass(frozen=True)
class PaymentReference:
    order_id: str
    payment_id: str
    signature: Optional[str] = None


@dataclass
class CommitResult:
    booking_ids: list[str]
    customer_id: Optional[str] = None
    already_committed: bool = False
    stages: list[CommitStage] = field(default_factory=list)


def find_committed_booking_ids(db: Session, payment_id: str) -> list[str]:
    """Ids of bookings already created for this payment, sorted."""
    with storage_errors("Idempotency check"):
        rows = (
            db.query(DBBookings.id)
            .filter(DBBookings.payment_txn_id == payment_id)
            .order_by(DBBookings.id)
            .all()
        )
    return [booking_id for (booking_id,) in rows]


class BookingCommitter:
    """
    One commit attempt for one payment.

    Args:
        db: Session owned by the calling trigger
        verifier: Payment verification collaborator
        now: Reference time for hold expiry and "today"
        source: Trigger name, for logs and events
    """

    def __init__(
        self,
        db: Session,
        verifier: PaymentVerifier,
        now: Optional[datetime] = None,
        config: Optional[BookingConfig] = None,
        source: str = "unknown",
    ):
        self.db = db
        self.verifier = verifier
        self.now = now or datetime.now()
        self.config = config or get_booking_config()
        self.source = source
        self.stages: list[CommitStage] = []

    def _enter(self, ref: PaymentReference, stage: CommitStage) -> None:
        self.stages.append(stage)
        logger.info(f"[COMMIT] payment={ref.payment_id} source={self.source} stage={stage.value}")

    def _already_committed(self, ref: PaymentReference) -> Optional[CommitResult]:
        booking_ids = find_committed_booking_ids(self.db, ref.payment_id)
        if not booking_ids:
            return None
        self._enter(ref, CommitStage.ALREADY_COMMITTED)
        return CommitResult(
            booking_ids=booking_ids,
            already_committed=True,
            stages=list(self.stages),
        )

    # ── Entry point ──────────────────────────────────────────────────────

    def commit(self, ref: PaymentReference, payload: BookingPayload) -> CommitResult:
        # Step 1: Verify payment
        self._enter(ref, CommitStage.VERIFYING_PAYMENT)
        try:
            paid = self.verifier.verify(ref.order_id, ref.payment_id, ref.signature)
        except Exception:
            logger.exception(f"[COMMIT] Verification error for payment={ref.payment_id}")
            paid = False
        if not paid:
            logger.error(f"[COMMIT] Payment verification failed: payment={ref.payment_id}")
            raise PaymentInvalid(
                "Payment verification failed",
                payment_id=ref.payment_id,
                order_id=ref.order_id,
            )

        # Step 2: First idempotency check
        done = self._already_committed(ref)
        if done:
            return done

        # Step 3: Customer
        self._enter(ref, CommitStage.RESOLVING_CUSTOMER)
        customer = resolve_customer(
            self.db,
            name=payload.customer.name,
            phone=payload.customer.phone,
            email=payload.customer.email,
            customer_id=payload.customer.id or None,
            now=self.now,
            config=self.config,
        )

        done = self._already_committed(ref)
        if done:
            done.customer_id = customer.id
            return done

        # Step 4: Re-validate the slots
        self._enter(ref, CommitStage.CHECKING_CONFLICT)
        station_ids = [s.id for s in resolve_stations(self.db, payload.stations)]
        self._check_conflicts(ref, payload, station_ids)

        # Step 5: Last idempotency check, then insert
        done = self._already_committed(ref)
        if done:
            done.customer_id = customer.id
            return done

        self._enter(ref, CommitStage.INSERTING)
        inserted = self._insert(ref, payload, station_ids, customer.id)
        if inserted is None:
            # Lost the race on the unique constraint
            done = self._already_committed(ref)
            if not done:
                raise StorageError(
                    "Booking insert conflicted but no bookings exist for this payment",
                    payment_id=ref.payment_id,
                )
            done.customer_id = customer.id
            return done

        # Step 6: Confirm holds (best effort)
        self._enter(ref, CommitStage.CONFIRMING_BLOCKS)
        for slot in payload.slots:
            try:
                confirm_blocks(self.db, station_ids, payload.booking_date, slot, now=self.now)
            except LoungeError as e:
                logger.warning(
                    f"[COMMIT] payment={ref.payment_id} could not confirm holds "
                    f"for {slot}: {e.message}"
                )

        self._enter(ref, CommitStage.DONE)
        logger.info(
            f"[COMMIT] payment={ref.payment_id} created {len(inserted)} booking(s) "
            f"for customer_id={customer.id}"
        )
        emit_event("booking_created", {
            "booking_ids": inserted,
            "payment_id": ref.payment_id,
            "order_id": ref.order_id,
            "customer_id": customer.id,
            "source": self.source,
        })

        return CommitResult(
            booking_ids=inserted,
            customer_id=customer.id,
            stages=list(self.stages),
        )

    # ── Helpers ──────────────────────────────────────────────────────────

    def _check_conflicts(
        self,
        ref: PaymentReference,
        payload: BookingPayload,
        station_ids: list[str],
    ) -> None:
        """
        Raise SlotNoLongerAvailable if another booking took any slot.

        Holds are not consulted: a hold on the exact slot may be the
        payer's own, and a hold never blocks its own confirmation.
        Bookings of this same payment are not conflicts either.
        """
        conflicts = []
        for slot in payload.slots:
            availability = check_availability(
                self.db,
                station_ids,
                payload.booking_date,
                slot.start_time,
                slot.end_time,
                now=self.now,
                config=self.config,
                include_blocks=False,
                exclude_payment_txn_id=ref.payment_id,
            )
            for entry in availability:
                if not entry["is_available"]:
                    conflicts.append({
                        "station_id": entry["station_id"],
                        "station_name": entry["station_name"],
                        "start_time": slot.start_time,
                        "end_time": slot.end_time,
                        "conflict_reason": entry["conflict_reason"],
                    })

        if not conflicts:
            return

        logger.error(
            f"[COMMIT] payment={ref.payment_id} order={ref.order_id} captured but "
            f"slot no longer available: {conflicts}"
        )
        emit_event("payment_unreconciled", {
            "payment_id": ref.payment_id,
            "order_id": ref.order_id,
            "booking_date": payload.booking_date,
            "conflicts": conflicts,
            "customer_phone": payload.customer.phone,
            "source": self.source,
        })
        raise SlotNoLongerAvailable(
            "Selected slot is no longer available. Please contact support for a refund or another slot.",
            payment_id=ref.payment_id,
            conflicts=conflicts,
        )

    def _insert(
        self,
        ref: PaymentReference,
        payload: BookingPayload,
        station_ids: list[str],
        customer_id: str,
    ) -> Optional[list[str]]:
        """
        Insert one row per (station, slot) in one transaction.

        The customer's total_spent grows by the paid total in the same
        transaction, so a lost race adds nothing.

        Returns:
            New booking ids, or None if another commit for the same
            payment inserted first.
        """
        pricing = payload.pricing
        total_rows = len(station_ids) * len(payload.slots)
        discount_percentage = (
            (pricing.discount / pricing.original) * 100
            if pricing.discount > 0 and pricing.original > 0 else None
        )

        rows = [
            DBBookings(
                station_id=station_id,
                customer_id=customer_id,
                booking_date=payload.booking_date,
                start_time=slot.start_time,
                end_time=slot.end_time,
                duration=payload.duration,
                status="confirmed",
                original_price=pricing.original / total_rows,
                discount_percentage=discount_percentage,
                final_price=pricing.final / total_rows,
                coupon_code=payload.coupon_code or None,
                payment_mode=self.config.payment_mode,
                payment_txn_id=ref.payment_id,
                notes=f"Razorpay Order: {ref.order_id}",
            )
            for station_id in station_ids
            for slot in payload.slots
        ]

        try:
            self.db.add_all(rows)
            self.db.flush()
            booking_ids = sorted(row.id for row in rows)
            self.db.query(DBCustomers).filter(DBCustomers.id == customer_id).update(
                {DBCustomers.total_spent: DBCustomers.total_spent + pricing.final},
                synchronize_session=False,
            )
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            logger.warning(
                f"[COMMIT] payment={ref.payment_id} insert lost to a concurrent commit"
            )
            return None
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StorageError("Booking insert failed", payment_id=ref.payment_id) from e

        return booking_ids


def commit_booking(
    db: Session,
    ref: PaymentReference,
    payload: BookingPayload,
    verifier: PaymentVerifier,
    now: Optional[datetime] = None,
    config: Optional[BookingConfig] = None,
    source: str = "unknown",
) -> CommitResult:
    """Commit the bookings for one payment. Safe to call repeatedly."""
    committer = BookingCommitter(db, verifier, now=now, config=config, source=source)
    return committer.commit(ref, payload)
