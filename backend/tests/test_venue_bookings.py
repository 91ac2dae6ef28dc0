"""Pay-at-venue bookings."""

import json
from datetime import timedelta

import pytest

from lounge.errors import MalformedTime, SlotUnavailable, StationNotFound
from lounge.models.generated import Bookings, Customers
from lounge.services.venue_bookings import create_venue_booking

from conftest import BOOKING_DATE, NOW


def book(db, stations=("Console 1",), start="14:00", end="15:00", phone="9876543210", **kwargs):
    return create_venue_booking(
        db, list(stations), BOOKING_DATE, start, end,
        name="Asha", phone=phone, now=NOW, **kwargs,
    )


class TestCreateVenueBooking:
    def test_rows_for_existing_customer(self, db, stations, customer, redis_mock):
        result = book(db, stations=("Console 1", "Console 2"))

        assert result.customer_id == customer.id
        rows = db.query(Bookings).all()
        assert sorted(r.id for r in rows) == result.booking_ids
        for row in rows:
            assert row.payment_mode == "venue"
            assert row.payment_txn_id is None
            assert row.status == "confirmed"
            assert row.final_price == pytest.approx(150)

        pushed = [json.loads(call.args[1]) for call in redis_mock.rpush.call_args_list]
        assert [e["source"] for e in pushed if e["type"] == "booking_created"] == ["venue"]

    def test_spend_aggregate_untouched(self, db, stations, customer):
        book(db, final_price=500)
        db.refresh(customer)
        assert customer.total_spent == 0

    def test_new_customer_created(self, db, stations):
        result = book(db, phone="91234 56780")
        assert db.get(Customers, result.customer_id).phone == "9123456780"

    def test_live_hold_blocks(self, db, stations, customer, add_block):
        add_block(stations["Console 1"], "14:00", "15:00", NOW + timedelta(minutes=5))

        with pytest.raises(SlotUnavailable) as exc:
            book(db)
        assert exc.value.details["conflicts"][0]["conflict_reason"] == (
            "Currently being booked by another customer"
        )
        assert db.query(Bookings).count() == 0

    def test_expired_hold_does_not_block(self, db, stations, customer, add_block):
        add_block(stations["Console 1"], "14:00", "15:00", NOW - timedelta(minutes=1))
        assert len(book(db).booking_ids) == 1

    def test_adjacent_booking_does_not_block(self, db, stations, add_booking):
        add_booking(stations["Console 1"], "13:00", "14:00")
        assert len(book(db).booking_ids) == 1

    def test_midnight_end(self, db, stations, customer):
        book(db, start="23:00", end="00:00")
        row = db.query(Bookings).one()
        assert row.duration == 60
        assert row.end_time == "00:00"

    def test_invalid_input(self, db, stations, customer):
        with pytest.raises(MalformedTime):
            book(db, start="9:00")
        with pytest.raises(StationNotFound):
            book(db, stations=("Pool Table",))
        assert db.query(Bookings).count() == 0
