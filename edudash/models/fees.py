"""
edudash/models/fees.py

Tuition fees, payments and the per-parent payment window.
"""

from datetime import date, datetime
from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field, model_validator


class FeeType(str, Enum):
    TUITION = "tuition"
    ACTIVITY = "activity"
    MEAL = "meal"
    TRANSPORT = "transport"
    MATERIAL = "material"
    LATE_FEE = "late_fee"
    REGISTRATION = "registration"
    OTHER = "other"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class PaymentWindow(BaseModel):
    """Days of the month in which a parent pays before fees become overdue."""
    model_config = ConfigDict(frozen=True)

    start_day: int = Field(default=1, ge=1, le=31)
    end_day: int = Field(default=7, ge=1, le=31)
    locked: bool = False


class StudentRef(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    first_name: str
    last_name: str


class PaymentFee(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    preschool_id: str
    student_id: str
    fee_type: FeeType
    billing_period: str
    title: str
    description: Optional[str] = None
    amount: float
    currency: str
    due_date: date
    is_recurring: bool = True
    is_overdue: bool = False
    is_paid: bool = False
    created_at: datetime
    updated_at: datetime
    student: Optional[StudentRef] = None


class Payment(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    parent_id: str
    student_id: Optional[str] = None
    fee_ids: List[str]
    amount: float
    currency: str
    method: str
    status: PaymentStatus
    processed_at: datetime


class FeesSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    fees: List[PaymentFee]
    total_outstanding: float
    total_paid_this_month: float
    overdue_amount: float
    next_payment_due: Optional[date] = None
    upcoming_fees: List[PaymentFee] = []
    recent_payments: List[Payment] = []


class UpdatePaymentWindowRequest(BaseModel):
    start_day: int = Field(ge=1, le=31)
    end_day: int = Field(ge=1, le=31)

    @model_validator(mode="after")
    def _ordered(self):
        if self.start_day > self.end_day:
            raise ValueError("start_day must not be after end_day")
        return self


class RecordPaymentRequest(BaseModel):
    fee_ids: List[str] = Field(min_length=1)
    amount: float = Field(gt=0)
    method: str = Field(default="eft", max_length=50)
