# backend/lounge/routers/customers.py

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..database import get_db
from ..errors import NotFound, ValidationError
from ..schemas.customers import CustomerLookupResponse, CustomerRead
from ..services.customers import find_customer_by_phone
from ..services.phone import is_valid_mobile, normalize_phone

router = APIRouter(prefix="/customers", tags=["customers"])


@router.get("/lookup", response_model=CustomerLookupResponse)
def lookup_customer(
    phone: str = Query(""),
    db: Session = Depends(get_db),
):
    """Find a customer by phone in any common format."""
    normalized = normalize_phone(phone)
    if not is_valid_mobile(normalized):
        raise ValidationError(
            "Invalid phone number. Use a 10-digit mobile number",
            required=["phone"],
            received=phone,
        )

    customer = find_customer_by_phone(db, normalized)
    if customer is None:
        raise NotFound("Customer not found", phone=normalized)
    return CustomerLookupResponse(customer=CustomerRead.model_validate(customer))
