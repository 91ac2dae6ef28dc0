# backend/lounge/services/phone.py
"""
Phone normalization and customer codes.

Customers are keyed by a canonical local number: digits only, without the
country code. "+91 98765-43210", "919876543210" and "9876543210" are the
same customer.
"""

import re
import time
from datetime import datetime
from typing import Optional

from .slots.config import BookingConfig, get_booking_config

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def normalize_phone(phone, config: Optional[BookingConfig] = None) -> str:
    """Strip formatting and a leading country code or trunk zero."""
    config = config or get_booking_config()
    digits = re.sub(r"\D", "", str(phone or ""))
    local = config.phone_length
    cc = config.country_code

    if local < len(digits) <= local + len(cc) + 1 and digits.startswith(cc):
        digits = digits[-local:]
    elif len(digits) == local + 1 and digits.startswith("0"):
        digits = digits[1:]
    return digits


def is_valid_mobile(phone: str, config: Optional[BookingConfig] = None) -> bool:
    """Canonical local mobile number: exact length, starts with 6-9."""
    config = config or get_booking_config()
    return (
        len(phone) == config.phone_length
        and phone.isdigit()
        and phone[0] in "6789"
    )


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    out = []
    while value:
        value, rem = divmod(value, 36)
        out.append(_BASE36[rem])
    return "".join(reversed(out))


def generate_customer_code(phone: str, now: Optional[datetime] = None) -> str:
    """Human-readable customer code, e.g. CUE3210K9ZQ."""
    millis = int((now.timestamp() if now else time.time()) * 1000)
    stamp = _to_base36(millis)[-4:].upper()
    return f"CUE{normalize_phone(phone)[-4:]}{stamp}"
