"""
Idempotent booking commit.

Concurrency tests use real threads, each with its own Session, against
the file-backed test database.
"""

import json
import threading
from datetime import timedelta

import pytest

from lounge.database import SessionLocal
from lounge.errors import PaymentInvalid, SlotNoLongerAvailable, StationNotFound
from lounge.models.generated import Bookings, Customers, SlotBlocks
from lounge.services import booking_commit
from lounge.services.booking_commit import (
    CommitStage,
    PaymentReference,
    commit_booking,
    find_committed_booking_ids,
)
from lounge.services.payload import decode_booking_payload

from conftest import BOOKING_DATE, NOW, FakeVerifier


def make_payload(stations, slots=(("14:00", "15:00"),), phone="9876543210", pricing=None):
    return decode_booking_payload({
        "s": list(stations),
        "d": BOOKING_DATE,
        "t": [{"s": s, "e": e} for s, e in slots],
        "du": 60,
        "c": {"n": "Asha", "p": phone, "e": "asha@example.com"},
        "p": pricing or {"o": 300, "d": 0, "f": 300},
    })


def ref(payment_id="pay_1", order_id="order_1"):
    return PaymentReference(order_id=order_id, payment_id=payment_id, signature="sig")


def events(redis_mock, event_type):
    pushed = [json.loads(call.args[1]) for call in redis_mock.rpush.call_args_list]
    return [e for e in pushed if e["type"] == event_type]


def run_threads(targets, timeout=30):
    threads = [threading.Thread(target=t) for t in targets]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=timeout)


class TestCommit:
    def test_creates_one_row_per_station_and_slot(self, db, stations, customer, redis_mock):
        payload = make_payload(
            ["Console 1", "Console 2"],
            slots=[("14:00", "15:00"), ("15:00", "16:00")],
            pricing={"o": 600, "d": 60, "f": 540},
        )
        result = commit_booking(db, ref(), payload, FakeVerifier(), now=NOW, source="test")

        assert result.already_committed is False
        assert result.customer_id == customer.id
        assert len(result.booking_ids) == 4
        assert result.stages == [
            CommitStage.VERIFYING_PAYMENT,
            CommitStage.RESOLVING_CUSTOMER,
            CommitStage.CHECKING_CONFLICT,
            CommitStage.INSERTING,
            CommitStage.CONFIRMING_BLOCKS,
            CommitStage.DONE,
        ]

        rows = db.query(Bookings).all()
        assert len(rows) == 4
        assert {(r.station_id, r.start_time) for r in rows} == {
            (stations["Console 1"], "14:00"), (stations["Console 1"], "15:00"),
            (stations["Console 2"], "14:00"), (stations["Console 2"], "15:00"),
        }
        for row in rows:
            assert row.original_price == pytest.approx(150)
            assert row.final_price == pytest.approx(135)
            assert row.discount_percentage == pytest.approx(10)
            assert row.status == "confirmed"
            assert row.payment_mode == "razorpay"
            assert row.payment_txn_id == "pay_1"
            assert row.notes == "Razorpay Order: order_1"
            assert row.customer_id == customer.id

        created = events(redis_mock, "booking_created")
        assert len(created) == 1
        assert created[0]["booking_ids"] == result.booking_ids

        db.refresh(customer)
        assert customer.total_spent == pytest.approx(540)

    def test_no_discount_stores_null_percentage(self, db, stations, customer):
        commit_booking(db, ref(), make_payload(["Console 1"]), FakeVerifier(), now=NOW)
        row = db.query(Bookings).one()
        assert row.discount_percentage is None
        assert row.final_price == pytest.approx(300)

    def test_new_customer_created_from_payload(self, db, stations):
        result = commit_booking(
            db, ref(), make_payload(["VR Pod"], phone="+91 91234 56780"), FakeVerifier(), now=NOW,
        )
        created = db.get(Customers, result.customer_id)
        assert created.phone == "9123456780"
        assert created.custom_id.startswith("CUE6780")

    def test_payers_own_hold_is_confirmed_not_a_conflict(self, db, stations, customer, add_block):
        hold = add_block(stations["Console 1"], "14:00", "15:00", NOW + timedelta(minutes=5))

        result = commit_booking(db, ref(), make_payload(["Console 1"]), FakeVerifier(), now=NOW)

        assert len(result.booking_ids) == 1
        db.expire_all()
        assert db.get(SlotBlocks, hold.id).is_confirmed is True


class TestIdempotency:
    def test_second_commit_returns_same_ids(self, db, stations, customer):
        payload = make_payload(["Console 1", "VR Pod"])
        first = commit_booking(db, ref(), payload, FakeVerifier(), now=NOW)
        second = commit_booking(db, ref(), payload, FakeVerifier(), now=NOW)

        assert second.already_committed is True
        assert second.booking_ids == first.booking_ids
        assert db.query(Bookings).count() == 2
        db.refresh(customer)
        assert customer.total_spent == pytest.approx(300)

    def test_short_circuits_before_customer_resolution(self, db, stations, add_booking):
        existing = add_booking(stations["Console 1"], "14:00", "15:00", payment_txn_id="pay_1")

        result = commit_booking(
            db, ref(), make_payload(["Console 1"], phone="9000011111"), FakeVerifier(), now=NOW,
        )

        assert result.already_committed is True
        assert result.booking_ids == [existing.id]
        assert result.stages == [CommitStage.VERIFYING_PAYMENT, CommitStage.ALREADY_COMMITTED]
        assert db.query(Customers).filter(Customers.phone == "9000011111").count() == 0

    def test_find_committed_booking_ids(self, db, stations, add_booking):
        a = add_booking(stations["Console 1"], "10:00", "11:00", payment_txn_id="pay_x")
        b = add_booking(stations["Console 2"], "10:00", "11:00", payment_txn_id="pay_x")
        add_booking(stations["VR Pod"], "10:00", "11:00", payment_txn_id="pay_y")
        assert find_committed_booking_ids(db, "pay_x") == sorted([a.id, b.id])
        assert find_committed_booking_ids(db, "pay_none") == []

    def test_insert_conflict_adopts_concurrent_winner(self, db, stations, customer, redis_mock, monkeypatch):
        """The last existence check misses a row set another session commits right before the insert."""
        real_find = booking_commit.find_committed_booking_ids
        calls, winner_ids = [], []

        def find_with_concurrent_commit(session, payment_id):
            calls.append(payment_id)
            if len(calls) != 3:
                return real_find(session, payment_id)
            other = SessionLocal()
            try:
                row = Bookings(
                    station_id=stations["Console 1"],
                    customer_id=customer.id,
                    booking_date=BOOKING_DATE,
                    start_time="14:00",
                    end_time="15:00",
                    duration=60,
                    status="confirmed",
                    payment_txn_id=payment_id,
                )
                other.add(row)
                other.commit()
                winner_ids.append(row.id)
            finally:
                other.close()
            return []

        monkeypatch.setattr(booking_commit, "find_committed_booking_ids", find_with_concurrent_commit)

        result = commit_booking(db, ref(), make_payload(["Console 1"]), FakeVerifier(), now=NOW)

        assert len(calls) == 4
        assert result.already_committed is True
        assert result.booking_ids == winner_ids
        assert result.customer_id == customer.id
        assert result.stages[-2:] == [CommitStage.INSERTING, CommitStage.ALREADY_COMMITTED]
        assert db.query(Bookings).filter(Bookings.payment_txn_id == "pay_1").count() == 1
        assert events(redis_mock, "booking_created") == []
        db.refresh(customer)
        assert customer.total_spent == 0

    def test_concurrent_triggers_create_one_row_set(self, stations, customer):
        """Webhook and browser return racing for the same fresh payment."""
        barrier = threading.Barrier(2)
        verifier = FakeVerifier(on_verify=lambda: barrier.wait(timeout=10))
        payload = make_payload(["Console 1", "Console 2"], slots=[("14:00", "15:00"), ("16:00", "17:00")])
        results, errors = [], []

        def trigger(source):
            def run():
                session = SessionLocal()
                try:
                    results.append(commit_booking(
                        session, ref(), payload, verifier, now=NOW, source=source,
                    ))
                except Exception as e:  # collected for the assertion below
                    errors.append(e)
                finally:
                    session.close()
            return run

        run_threads([trigger("webhook"), trigger("payment_return")])

        assert errors == []
        assert len(results) == 2
        assert results[0].booking_ids == results[1].booking_ids
        assert len(results[0].booking_ids) == 4
        assert sorted(r.already_committed for r in results) == [False, True]

        session = SessionLocal()
        try:
            assert session.query(Bookings).filter(Bookings.payment_txn_id == "pay_1").count() == 4
        finally:
            session.close()

    def test_concurrent_payments_share_new_customer(self, stations):
        """Different payments, same new phone: one customer row, both commits succeed."""
        barrier = threading.Barrier(2)
        verifier = FakeVerifier(on_verify=lambda: barrier.wait(timeout=10))
        results, errors = [], []

        def trigger(payment_id, station):
            def run():
                session = SessionLocal()
                try:
                    results.append(commit_booking(
                        session,
                        ref(payment_id=payment_id, order_id=f"order_{payment_id}"),
                        make_payload([station], phone="9555512345"),
                        verifier,
                        now=NOW,
                    ))
                except Exception as e:  # collected for the assertion below
                    errors.append(e)
                finally:
                    session.close()
            return run

        run_threads([trigger("pay_a", "Console 1"), trigger("pay_b", "Console 2")])

        assert errors == []
        assert len(results) == 2
        assert results[0].customer_id == results[1].customer_id

        session = SessionLocal()
        try:
            assert session.query(Customers).filter(Customers.phone == "9555512345").count() == 1
            assert session.query(Bookings).count() == 2
        finally:
            session.close()


class TestTerminalOutcomes:
    def test_slot_taken_by_another_payment(self, db, stations, add_booking, redis_mock):
        add_booking(stations["Console 1"], "14:00", "15:00", payment_txn_id="pay_other")

        with pytest.raises(SlotNoLongerAvailable) as exc:
            commit_booking(db, ref(), make_payload(["Console 1"]), FakeVerifier(), now=NOW)

        assert exc.value.status_code == 409
        assert exc.value.details["conflicts"][0]["station_name"] == "Console 1"
        assert db.query(Bookings).filter(Bookings.payment_txn_id == "pay_1").count() == 0

        alerts = events(redis_mock, "payment_unreconciled")
        assert len(alerts) == 1
        assert alerts[0]["payment_id"] == "pay_1"

    def test_partial_conflict_writes_nothing(self, db, stations, add_booking):
        add_booking(stations["Console 2"], "15:30", "16:30")
        payload = make_payload(["Console 1", "Console 2"], slots=[("14:00", "15:00"), ("15:00", "16:00")])

        with pytest.raises(SlotNoLongerAvailable):
            commit_booking(db, ref(), payload, FakeVerifier(), now=NOW)
        assert db.query(Bookings).filter(Bookings.payment_txn_id == "pay_1").count() == 0

    def test_unverified_payment_writes_nothing(self, db, stations):
        verifier = FakeVerifier(paid=False)
        with pytest.raises(PaymentInvalid):
            commit_booking(db, ref(), make_payload(["Console 1"], phone="9000011111"), verifier, now=NOW)

        assert verifier.calls == [("order_1", "pay_1", "sig")]
        assert db.query(Bookings).count() == 0
        assert db.query(Customers).count() == 0

    def test_verifier_error_is_not_paid(self, db, stations):
        class BrokenVerifier:
            def verify(self, order_id, payment_id, signature):
                raise TimeoutError("gateway timed out")

        with pytest.raises(PaymentInvalid):
            commit_booking(db, ref(), make_payload(["Console 1"]), BrokenVerifier(), now=NOW)
        assert db.query(Bookings).count() == 0

    def test_unknown_station_in_payload(self, db, stations, customer):
        with pytest.raises(StationNotFound):
            commit_booking(db, ref(), make_payload(["Pool Table"]), FakeVerifier(), now=NOW)
        assert db.query(Bookings).count() == 0
