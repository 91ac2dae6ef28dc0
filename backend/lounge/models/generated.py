from uuid import uuid4

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()
metadata = Base.metadata


def _uuid() -> str:
    return str(uuid4())


class Stations(Base):
    __tablename__ = 'stations'

    id = Column(Text, primary_key=True, default=_uuid)
    name = Column(Text, nullable=False)
    type = Column(Text, nullable=False)
    hourly_rate = Column(Float, nullable=False, server_default=text('0'))
    is_active = Column(Integer, nullable=False, server_default=text('1'))

    bookings = relationship('Bookings', back_populates='station')
    slot_blocks = relationship('SlotBlocks', back_populates='station')
    sessions = relationship('Sessions', back_populates='station')


class Customers(Base):
    __tablename__ = 'customers'

    id = Column(Text, primary_key=True, default=_uuid)
    name = Column(Text, nullable=False)
    phone = Column(Text, nullable=False, unique=True)
    email = Column(Text)
    custom_id = Column(Text)
    is_member = Column(Boolean, nullable=False, server_default=text('0'))
    loyalty_points = Column(Integer, nullable=False, server_default=text('0'))
    total_spent = Column(Float, nullable=False, server_default=text('0'))
    total_play_time = Column(Integer, nullable=False, server_default=text('0'))
    created_at = Column(Text, server_default=text('CURRENT_TIMESTAMP'))

    bookings = relationship('Bookings', back_populates='customer')


class Bookings(Base):
    __tablename__ = 'bookings'
    __table_args__ = (
        # One row per (payment, station, slot): a second writer for the
        # same payment fails the whole multi-row insert.
        UniqueConstraint(
            'payment_txn_id', 'station_id', 'booking_date', 'start_time', 'end_time',
            name='uq_bookings_payment_slot',
        ),
        Index('ix_bookings_station_date', 'station_id', 'booking_date'),
        Index('ix_bookings_payment_txn_id', 'payment_txn_id'),
    )

    id = Column(Text, primary_key=True, default=_uuid)
    station_id = Column(ForeignKey('stations.id', ondelete='CASCADE'), nullable=False)
    customer_id = Column(ForeignKey('customers.id', ondelete='CASCADE'), nullable=False)
    booking_date = Column(Text, nullable=False)
    start_time = Column(Text, nullable=False)
    end_time = Column(Text, nullable=False)
    duration = Column(Integer, nullable=False, server_default=text('60'))
    status = Column(Text, nullable=False, server_default=text("'confirmed'"))
    original_price = Column(Float)
    discount_percentage = Column(Float)
    final_price = Column(Float)
    coupon_code = Column(Text)
    payment_mode = Column(Text)
    payment_txn_id = Column(Text)
    notes = Column(Text)
    created_at = Column(Text, server_default=text('CURRENT_TIMESTAMP'))

    station = relationship('Stations', back_populates='bookings')
    customer = relationship('Customers', back_populates='bookings')


class SlotBlocks(Base):
    __tablename__ = 'slot_blocks'
    __table_args__ = (
        Index('ix_slot_blocks_slot', 'station_id', 'booking_date', 'start_time', 'end_time'),
    )

    id = Column(Text, primary_key=True, default=_uuid)
    station_id = Column(ForeignKey('stations.id', ondelete='CASCADE'), nullable=False)
    booking_date = Column(Text, nullable=False)
    start_time = Column(Text, nullable=False)
    end_time = Column(Text, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    is_confirmed = Column(Boolean, nullable=False, server_default=text('0'))
    session_id = Column(Text)
    created_at = Column(Text, server_default=text('CURRENT_TIMESTAMP'))

    station = relationship('Stations', back_populates='slot_blocks')


class Sessions(Base):
    __tablename__ = 'sessions'

    id = Column(Text, primary_key=True, default=_uuid)
    station_id = Column(ForeignKey('stations.id', ondelete='CASCADE'), nullable=False)
    customer_id = Column(ForeignKey('customers.id', ondelete='SET NULL'))
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime)

    station = relationship('Stations', back_populates='sessions')
