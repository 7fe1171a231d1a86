"""
edudash/api/fees.py
Parent-facing fee summary, payment window and payment bookkeeping.
"""

from datetime import datetime
from typing import Annotated, Optional

from fastapi import APIRouter, Header, Query

from edudash.core.errors import ValidationError
from edudash.features.fees.service import (
    get_outstanding_fees,
    get_payment_window,
    record_payment as service_record_payment,
    update_payment_window,
)
from edudash.models.fees import (
    FeesSummary,
    Payment,
    PaymentWindow,
    RecordPaymentRequest,
    UpdatePaymentWindowRequest,
)

router = APIRouter(prefix="/api/fees", tags=["fees"])


def _parse_now(now: Optional[str]) -> Optional[datetime]:
    if now is None:
        return None
    try:
        return datetime.fromisoformat(now.replace("Z", "+00:00"))
    except ValueError:
        raise ValidationError(f"Invalid 'now' timestamp: {now}")


@router.get("/outstanding", response_model=FeesSummary)
def outstanding_fees(
    user_id: Annotated[str, Header(alias="X-User-Id")],
    now: Optional[str] = Query(None, description="Optional ISO timestamp for deterministic testing"),
):
    return get_outstanding_fees(user_id, _parse_now(now))


@router.get("/payment-window", response_model=PaymentWindow)
def read_payment_window(user_id: Annotated[str, Header(alias="X-User-Id")]):
    return get_payment_window(user_id)


@router.put("/payment-window", response_model=PaymentWindow)
def change_payment_window(
    body: UpdatePaymentWindowRequest,
    user_id: Annotated[str, Header(alias="X-User-Id")],
):
    """First change wins; the window locks afterwards (403 on later changes)."""
    return update_payment_window(user_id, body.start_day, body.end_day)


@router.post("/payments", response_model=Payment, status_code=201)
def record_payment(
    body: RecordPaymentRequest,
    user_id: Annotated[str, Header(alias="X-User-Id")],
    now: Optional[str] = Query(None, description="Optional ISO timestamp for deterministic testing"),
):
    return service_record_payment(user_id, body.fee_ids, body.amount, body.method, _parse_now(now))
