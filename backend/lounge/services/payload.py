# backend/lounge/services/payload.py
"""
Booking payload decoding.

The same checkout payload reaches the committer from two places:
- Gateway order notes (webhook), JSON-encoded with short keys and possibly
  split over booking_data_1 / booking_data_2 to fit the notes size limit
- The browser's cached checkout request (payment return), verbose keys

Both decode into one BookingPayload. Key variants are tried in a fixed
order: compact, then intermediate, then verbose. Empty values count as
absent, so a later variant fills in for an empty earlier one.
"""

import json
import re
from typing import Any, Optional

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic import ValidationError as SchemaError

from ..errors import ValidationError
from .slots.config import BookingConfig, get_booking_config
from .slots.intervals import Slot, parse_date, parse_slot

_SPLIT_KEY_RE = re.compile(r"^booking_data_(\d+)$")


def _coupons(value: Any) -> str:
    if not value:
        return ""
    if isinstance(value, dict):
        return ",".join(str(v) for v in value.values() if v)
    if isinstance(value, (list, tuple)):
        return ",".join(str(v) for v in value if v)
    return str(value)


class _PayloadModel(BaseModel):
    model_config = ConfigDict(frozen=True, coerce_numbers_to_str=True)

    @model_validator(mode="before")
    @classmethod
    def drop_empty(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if v is not None and v != ""}
        return data


class CustomerInfo(_PayloadModel):
    name: str = Field("", validation_alias=AliasChoices("n", "name"))
    phone: str = Field("", validation_alias=AliasChoices("p", "phone"))
    email: str = Field("", validation_alias=AliasChoices("e", "email"))
    id: str = Field("", validation_alias=AliasChoices("i", "id"))


class Pricing(_PayloadModel):
    original: float = Field(0.0, validation_alias=AliasChoices("o", "original"))
    discount: float = Field(0.0, validation_alias=AliasChoices("d", "discount"))
    final: float = Field(0.0, validation_alias=AliasChoices("f", "final"))
    transaction_fee: float = Field(0.0, validation_alias=AliasChoices("tf", "transactionFee"))
    total_with_fee: float = Field(0.0, validation_alias=AliasChoices("twf", "totalWithFee"))
    coupons: str = ""

    @field_validator("coupons", mode="before")
    @classmethod
    def join_coupons(cls, value: Any) -> str:
        return _coupons(value)


class SlotEntry(_PayloadModel):
    start_time: str = Field("", validation_alias=AliasChoices("s", "start_time"))
    end_time: str = Field("", validation_alias=AliasChoices("e", "end_time"))


class BookingPayload(_PayloadModel):
    stations: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("s", "stations", "selectedStations"),
    )
    booking_date: str = Field("", validation_alias=AliasChoices("d", "date", "selectedDateISO"))
    slots: list[Slot] = Field(default_factory=list, validation_alias=AliasChoices("t", "slots"))
    duration: Optional[int] = Field(None, validation_alias=AliasChoices("du", "dur", "duration"))
    customer: CustomerInfo = Field(
        default_factory=CustomerInfo,
        validation_alias=AliasChoices("c", "cust", "customer"),
    )
    pricing: Pricing = Field(
        default_factory=Pricing,
        validation_alias=AliasChoices("p", "price", "pricing"),
    )
    coupon_code: str = Field(
        "",
        validation_alias=AliasChoices("cp", "coup", "coupons", "coupon_code"),
    )

    @field_validator("stations", mode="before")
    @classmethod
    def split_stations(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = [s.strip() for s in value.split(",") if s.strip()]
        if isinstance(value, (list, tuple)):
            return list(dict.fromkeys(str(s) for s in value))
        return value

    @field_validator("slots", mode="before")
    @classmethod
    def parse_slots(cls, value: Any) -> Any:
        if not isinstance(value, (list, tuple)):
            return value
        slots = []
        for item in value:
            if not isinstance(item, dict):
                raise ValidationError("Invalid slot entry", received=item)
            entry = SlotEntry.model_validate(item)
            slots.append(parse_slot(entry.start_time, entry.end_time))
        return list(dict.fromkeys(slots))

    @field_validator("customer", "pricing", mode="before")
    @classmethod
    def objects_only(cls, value: Any) -> Any:
        return value if isinstance(value, (dict, BaseModel)) else {}

    @field_validator("coupon_code", mode="before")
    @classmethod
    def join_coupons(cls, value: Any) -> str:
        return _coupons(value)

    @property
    def row_count(self) -> int:
        """Booking rows this payload produces: one per station per slot."""
        return len(self.stations) * len(self.slots)


# ── Raw payload extraction ───────────────────────────────────────────────


def unwrap_notes(raw: Any) -> Any:
    """
    Pull the booking payload out of a gateway notes object.

    Returns the payload as found (dict or JSON string), or None when the
    notes carry no booking data. Anything that is not a notes object is
    returned unchanged.
    """
    if not isinstance(raw, dict):
        return raw

    if raw.get("booking_data"):
        return raw["booking_data"]

    parts = []
    for key, value in raw.items():
        match = _SPLIT_KEY_RE.match(key)
        if match and value:
            parts.append((int(match.group(1)), value))
    if parts:
        parts.sort()
        return "".join(str(value) for _, value in parts)

    # Notes object without booking data vs. an already decoded payload
    if any(k in raw for k in ("s", "stations", "selectedStations")):
        return raw
    return None


def _load(raw: Any) -> dict:
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8")
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError:
            raise ValidationError("Booking data is not valid JSON") from None
    if not isinstance(raw, dict):
        raise ValidationError("Booking data must be an object", received=type(raw).__name__)
    return raw


# ── Decode ───────────────────────────────────────────────────────────────


def decode_booking_payload(raw: Any, config: Optional[BookingConfig] = None) -> BookingPayload:
    """
    Decode a compact or verbose booking payload.

    Raises:
        ValidationError: no data, no stations, no slots, bad date or times.
    """
    config = config or get_booking_config()

    raw = unwrap_notes(raw)
    if raw is None:
        raise ValidationError("No booking data available")

    try:
        payload = BookingPayload.model_validate(_load(raw))
    except SchemaError as e:
        raise ValidationError(
            "Invalid booking data",
            errors=[
                {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
                for err in e.errors()
            ],
        ) from None

    if not payload.stations:
        raise ValidationError("Booking data has no stations", required=["s|stations"])
    parse_date(payload.booking_date)
    if not payload.slots:
        raise ValidationError("Booking data has no slots", required=["t|slots"])

    updates = {}
    if payload.duration is None:
        updates["duration"] = config.default_duration_minutes
    if not payload.coupon_code and payload.pricing.coupons:
        updates["coupon_code"] = payload.pricing.coupons
    return payload.model_copy(update=updates) if updates else payload
