# backend/lounge/errors.py
"""
Error taxonomy for the reservation core.

Every error carries the HTTP status it maps to and a JSON body, so routers
can let them propagate and the handlers registered in main.py render them.
"""

from contextlib import contextmanager
from typing import Any, Iterator, Optional

from sqlalchemy.exc import SQLAlchemyError


class LoungeError(Exception):
    """Base class for all domain errors."""

    status_code = 500

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        return {"ok": False, "error": self.message, **self.details}


class ValidationError(LoungeError):
    """Malformed client input. Always correctable by the caller."""

    status_code = 400


class MalformedTime(ValidationError):
    """Time string is not HH:MM (24-hour)."""


class NotFound(LoungeError):
    status_code = 404


class StationNotFound(NotFound):
    """
    One or more station names could not be resolved.

    Answered as 400 with the whole catalog attached so the caller can
    correct the request without a second round trip.
    """

    status_code = 400

    def __init__(self, unmatched: list[str], catalog: list[dict]):
        super().__init__(
            "Could not find stations matching the provided names",
            unmatched_station_names=unmatched,
            available_stations=catalog,
            help="Use exact station names or valid station ids.",
        )
        self.unmatched = unmatched
        self.catalog = catalog


class PaymentInvalid(LoungeError):
    """Payment verification failed. Terminal: nothing was written."""

    status_code = 400


class SlotUnavailable(LoungeError):
    """The requested slot conflicts with a booking, hold or live session."""

    status_code = 409


class SlotNoLongerAvailable(SlotUnavailable):
    """
    Payment was captured but the slot went to somebody else.

    Terminal for the caller; must reach an operator for refund or
    manual reconciliation.
    """


class CustomerCreateConflict(LoungeError):
    """Customer insert lost a race on the unique phone. Recovered internally."""

    status_code = 409


class StorageError(LoungeError):
    """Transient storage failure. Retrying the whole commit is safe."""

    status_code = 503

    def __init__(self, message: str, **details: Any):
        details.setdefault("retryable", True)
        super().__init__(message, **details)


@contextmanager
def storage_errors(operation: str, cause: Optional[str] = None) -> Iterator[None]:
    """Translate SQLAlchemy failures inside the block into StorageError."""
    try:
        yield
    except SQLAlchemyError as e:
        raise StorageError(f"{operation} failed", cause=cause or type(e).__name__) from e
