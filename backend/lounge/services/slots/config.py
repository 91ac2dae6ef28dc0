# backend/lounge/services/slots/config.py
"""
Booking configuration for holds, customers and commits.
"""

from dataclasses import dataclass
from datetime import timedelta
from functools import lru_cache


@dataclass(frozen=True)
class BookingConfig:
    """
    Configuration for the reservation core.

    Attributes:
        slot_block_ttl_minutes: How long a checkout hold keeps a slot
        country_code: Dialing prefix stripped from stored phone numbers
        phone_length: Digits in a canonical local phone number
        default_duration_minutes: Duration used when a payload omits it
        payment_mode: Value written to bookings.payment_mode for online payments
        venue_payment_mode: Value written for bookings paid at the venue
        blocking_statuses: Booking statuses that occupy a slot
    """
    slot_block_ttl_minutes: int = 10
    country_code: str = "91"
    phone_length: int = 10
    default_duration_minutes: int = 60
    payment_mode: str = "razorpay"
    venue_payment_mode: str = "venue"
    blocking_statuses: tuple[str, ...] = ("confirmed", "in-progress")

    def __post_init__(self):
        """Validate configuration."""
        if self.slot_block_ttl_minutes <= 0:
            raise ValueError(
                f"slot_block_ttl_minutes must be positive, got {self.slot_block_ttl_minutes}"
            )
        if not self.country_code.isdigit():
            raise ValueError(f"country_code must be digits, got {self.country_code!r}")

    @property
    def slot_block_ttl(self) -> timedelta:
        return timedelta(minutes=self.slot_block_ttl_minutes)


@lru_cache
def get_booking_config() -> BookingConfig:
    """
    Get booking configuration (singleton).

    In the future, this can read from environment or database.
    """
    return BookingConfig()
