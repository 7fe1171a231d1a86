"""
edudash/features/fees/service.py

Age-based tuition fees and the parent payment window.

Handles:
- Monthly fee derivation from a child's age
- Overdue rule based on the parent's payment window
- Idempotent monthly fee generation (one tuition fee per student per month)
- Outstanding fee summaries and payment bookkeeping (no provider calls)
"""

import calendar
import logging
from datetime import date, datetime, timezone
from typing import Dict, List, Optional, Tuple
from uuid import uuid4

from sqlalchemy import select, insert, update
from sqlalchemy.exc import IntegrityError

from edudash.core.config import settings
from edudash.core.database import get_db_session, payment_fees, payments, students, users, as_utc
from edudash.core.errors import NotFoundError, PermissionError, ValidationError
from edudash.models.fees import (
    FeeType,
    FeesSummary,
    Payment,
    PaymentFee,
    PaymentStatus,
    PaymentWindow,
    StudentRef,
)


logger = logging.getLogger(__name__)

UPCOMING_FEES_LIMIT = 5

# (min_age, max_age, monthly amount); anything else pays DEFAULT_MONTHLY_FEE
AGE_FEE_BANDS = (
    (1, 3, 720.0),
    (4, 6, 680.0),
)
DEFAULT_MONTHLY_FEE = 700.0


def _normalize_now(now: Optional[datetime]) -> datetime:
    if now is None:
        return datetime.now(timezone.utc)
    return as_utc(now)


def calculate_age(date_of_birth: date, today: Optional[date] = None) -> int:
    """Whole years between date_of_birth and today."""
    today = today or datetime.now(timezone.utc).date()
    age = today.year - date_of_birth.year
    if (today.month, today.day) < (date_of_birth.month, date_of_birth.day):
        age -= 1
    return age


def monthly_fee_for_age(age: int) -> float:
    for low, high, amount in AGE_FEE_BANDS:
        if low <= age <= high:
            return amount
    return DEFAULT_MONTHLY_FEE


def billing_period_for(now: datetime) -> str:
    return f"{now.year:04d}-{now.month:02d}"


def _clamp_day(year: int, month: int, day: int) -> int:
    return min(day, calendar.monthrange(year, month)[1])


def window_end(window: PaymentWindow, year: int, month: int) -> datetime:
    """Last second of the payment window in the given month (UTC)."""
    day = _clamp_day(year, month, window.end_day)
    return datetime(year, month, day, 23, 59, 59, tzinfo=timezone.utc)


def due_date_for(window: PaymentWindow, year: int, month: int) -> date:
    return date(year, month, _clamp_day(year, month, window.end_day))


def is_overdue(window: PaymentWindow, now: Optional[datetime] = None) -> bool:
    """True once `now` is past this month's payment window."""
    now = _normalize_now(now)
    return now > window_end(window, now.year, now.month)


def _default_window() -> PaymentWindow:
    return PaymentWindow(
        start_day=settings.DEFAULT_PAYMENT_WINDOW_START,
        end_day=settings.DEFAULT_PAYMENT_WINDOW_END,
    )


def _window_from_row(row) -> PaymentWindow:
    defaults = _default_window()
    return PaymentWindow(
        start_day=row.payment_window_start or defaults.start_day,
        end_day=row.payment_window_end or defaults.end_day,
        locked=bool(row.payment_window_locked),
    )


def get_payment_window(parent_id: str) -> PaymentWindow:
    """The parent's window, or the configured default when none is set."""
    with get_db_session() as session:
        row = session.execute(
            select(
                users.c.payment_window_start,
                users.c.payment_window_end,
                users.c.payment_window_locked,
            ).where(users.c.user_id == parent_id)
        ).first()
    if row is None:
        return _default_window()
    return _window_from_row(row)


def update_payment_window(parent_id: str, start_day: int, end_day: int) -> PaymentWindow:
    """
    Set the parent's payment window. Only the first change is allowed;
    afterwards the window is locked and only school staff may change it.

    Raises:
        ValidationError: days outside 1..31 or start after end
        NotFoundError: unknown parent
        PermissionError: window already locked
    """
    if not (1 <= start_day <= 31 and 1 <= end_day <= 31):
        raise ValidationError("Payment window days must be between 1 and 31")
    if start_day > end_day:
        raise ValidationError("Payment window start must not be after its end")

    with get_db_session() as session:
        row = session.execute(
            select(users.c.payment_window_locked).where(users.c.user_id == parent_id)
        ).first()
        if row is None:
            raise NotFoundError("Parent profile not found")
        if row.payment_window_locked:
            raise PermissionError("Payment window is locked and can only be changed by school admin")

        session.execute(
            update(users)
            .where(users.c.user_id == parent_id)
            .values(
                payment_window_start=start_day,
                payment_window_end=end_day,
                payment_window_locked=True,
            )
        )

    logger.info(
        "[fees] payment_window.updated",
        extra={"user_id": parent_id, "start_day": start_day, "end_day": end_day},
    )
    return PaymentWindow(start_day=start_day, end_day=end_day, locked=True)


def _row_to_fee(row, student: Optional[StudentRef] = None) -> PaymentFee:
    return PaymentFee(
        id=row.id,
        preschool_id=row.preschool_id,
        student_id=row.student_id,
        fee_type=FeeType(row.fee_type),
        billing_period=row.billing_period,
        title=row.title,
        description=row.description,
        amount=row.amount,
        currency=row.currency,
        due_date=row.due_date,
        is_recurring=bool(row.is_recurring),
        is_overdue=bool(row.is_overdue),
        is_paid=bool(row.is_paid),
        created_at=as_utc(row.created_at),
        updated_at=as_utc(row.updated_at),
        student=student,
    )


def _row_to_payment(row) -> Payment:
    return Payment(
        id=row.id,
        parent_id=row.parent_id,
        student_id=row.student_id,
        fee_ids=list(row.fee_ids or []),
        amount=row.amount,
        currency=row.currency,
        method=row.method,
        status=PaymentStatus(row.status),
        processed_at=as_utc(row.processed_at),
    )


def _active_students(session, parent_id: str):
    return session.execute(
        select(students)
        .where(students.c.parent_id == parent_id)
        .where(students.c.is_active.is_(True))
        .order_by(students.c.first_name)
    ).all()


def _month_bounds(now: datetime) -> Tuple[datetime, datetime]:
    start = datetime(now.year, now.month, 1, tzinfo=timezone.utc)
    last_day = calendar.monthrange(now.year, now.month)[1]
    end = datetime(now.year, now.month, last_day, 23, 59, 59, 999999, tzinfo=timezone.utc)
    return start, end


def _find_tuition_fee(session, student_id: str, period: str):
    return session.execute(
        select(payment_fees)
        .where(payment_fees.c.student_id == student_id)
        .where(payment_fees.c.fee_type == FeeType.TUITION.value)
        .where(payment_fees.c.billing_period == period)
    ).first()


def _has_completed_payment(session, student_id: str, now: datetime) -> bool:
    start, end = _month_bounds(now)
    row = session.execute(
        select(payments.c.id)
        .where(payments.c.student_id == student_id)
        .where(payments.c.status == PaymentStatus.COMPLETED.value)
        .where(payments.c.processed_at >= start)
        .where(payments.c.processed_at <= end)
    ).first()
    return row is not None


def _refresh_overdue(session, row, overdue: bool, now: datetime):
    if bool(row.is_overdue) == overdue or row.is_paid:
        return row
    session.execute(
        update(payment_fees)
        .where(payment_fees.c.id == row.id)
        .values(is_overdue=overdue, updated_at=now)
    )
    return _find_tuition_fee(session, row.student_id, row.billing_period)


def generate_monthly_fees(parent_id: str, now: Optional[datetime] = None) -> List[PaymentFee]:
    """
    Ensure each of the parent's active students has this month's tuition fee.

    Existing fees are returned with their overdue flag refreshed. Students
    with a completed payment this month are skipped. Safe to call
    repeatedly: the unique (student, fee_type, billing_period) constraint
    keeps a single fee per month even under concurrent calls.
    """
    now = _normalize_now(now)
    period = billing_period_for(now)
    window = get_payment_window(parent_id)
    overdue = is_overdue(window, now)
    fees: List[PaymentFee] = []

    with get_db_session() as session:
        student_rows = _active_students(session, parent_id)

    for student in student_rows:
        ref = StudentRef(id=student.id, first_name=student.first_name, last_name=student.last_name)

        with get_db_session() as session:
            existing = _find_tuition_fee(session, student.id, period)
            if existing is not None:
                fees.append(_row_to_fee(_refresh_overdue(session, existing, overdue, now), ref))
                continue

            if _has_completed_payment(session, student.id, now):
                logger.info(
                    "[fees] student paid this month, skipping",
                    extra={"user_id": parent_id, "student_id": student.id, "billing_period": period},
                )
                continue

        age = calculate_age(student.date_of_birth, now.date())
        values = {
            "id": str(uuid4()),
            "preschool_id": student.preschool_id,
            "student_id": student.id,
            "fee_type": FeeType.TUITION.value,
            "billing_period": period,
            "title": f"School fee {calendar.month_name[now.month]} {now.year}",
            "description": f"Monthly school fee for {student.first_name} {student.last_name} (Age {age})",
            "amount": monthly_fee_for_age(age),
            "currency": settings.FEE_CURRENCY,
            "due_date": due_date_for(window, now.year, now.month),
            "is_recurring": True,
            "is_overdue": overdue,
            "is_paid": False,
            "created_at": now,
            "updated_at": now,
        }
        try:
            with get_db_session() as session:
                session.execute(insert(payment_fees).values(**values))
            fees.append(PaymentFee(**values, student=ref))
            logger.info(
                "[fees] fee.generated",
                extra={
                    "user_id": parent_id,
                    "student_id": student.id,
                    "billing_period": period,
                    "amount": values["amount"],
                },
            )
        except IntegrityError:
            # Another request generated it first
            with get_db_session() as session:
                existing = _find_tuition_fee(session, student.id, period)
            if existing is None:
                raise
            fees.append(_row_to_fee(existing, ref))

    return fees


def _paid_this_month(session, parent_id: str, now: datetime) -> List[Payment]:
    start, end = _month_bounds(now)
    rows = session.execute(
        select(payments)
        .where(payments.c.parent_id == parent_id)
        .where(payments.c.status == PaymentStatus.COMPLETED.value)
        .where(payments.c.processed_at >= start)
        .where(payments.c.processed_at <= end)
        .order_by(payments.c.processed_at.desc())
    ).all()
    return [_row_to_payment(row) for row in rows]


def get_outstanding_fees(parent_id: str, now: Optional[datetime] = None) -> FeesSummary:
    """
    Generate this month's fees if needed, then summarize everything unpaid.

    A fee counts as overdue once its due date is before today.
    """
    now = _normalize_now(now)
    today = now.date()
    generate_monthly_fees(parent_id, now)

    with get_db_session() as session:
        student_rows = _active_students(session, parent_id)
        refs: Dict[str, StudentRef] = {
            row.id: StudentRef(id=row.id, first_name=row.first_name, last_name=row.last_name)
            for row in student_rows
        }
        fee_rows = []
        if refs:
            fee_rows = session.execute(
                select(payment_fees)
                .where(payment_fees.c.student_id.in_(list(refs)))
                .where(payment_fees.c.is_paid.is_(False))
                .order_by(payment_fees.c.due_date)
            ).all()
        recent = _paid_this_month(session, parent_id, now)

    fees = [_row_to_fee(row, refs.get(row.student_id)) for row in fee_rows]
    upcoming = sorted((fee for fee in fees if fee.due_date >= today), key=lambda fee: fee.due_date)

    return FeesSummary(
        fees=fees,
        total_outstanding=sum(fee.amount for fee in fees),
        total_paid_this_month=sum(payment.amount for payment in recent),
        overdue_amount=sum(fee.amount for fee in fees if fee.due_date < today),
        next_payment_due=upcoming[0].due_date if upcoming else None,
        upcoming_fees=upcoming[:UPCOMING_FEES_LIMIT],
        recent_payments=recent[:UPCOMING_FEES_LIMIT],
    )


def record_payment(
    parent_id: str,
    fee_ids: List[str],
    amount: float,
    method: str = "eft",
    now: Optional[datetime] = None,
) -> Payment:
    """
    Store a completed payment and mark its fees paid.

    Raises:
        ValidationError: empty fee list, non-positive amount or a fee
            that is already paid
        NotFoundError: a fee does not belong to one of the parent's students
    """
    now = _normalize_now(now)
    if not fee_ids:
        raise ValidationError("At least one fee is required")
    if amount <= 0:
        raise ValidationError("Payment amount must be positive")

    with get_db_session() as session:
        student_ids = {row.id for row in _active_students(session, parent_id)}
        rows = session.execute(
            select(payment_fees).where(payment_fees.c.id.in_(fee_ids))
        ).all()
        found = {row.id: row for row in rows if row.student_id in student_ids}

        missing = [fee_id for fee_id in fee_ids if fee_id not in found]
        if missing:
            raise NotFoundError(f"Fees not found: {', '.join(missing)}")
        already_paid = [fee_id for fee_id, row in found.items() if row.is_paid]
        if already_paid:
            raise ValidationError(f"Fees already paid: {', '.join(already_paid)}")

        fee_students = {row.student_id for row in found.values()}
        payment_values = {
            "id": str(uuid4()),
            "parent_id": parent_id,
            "student_id": next(iter(fee_students)) if len(fee_students) == 1 else None,
            "fee_ids": list(fee_ids),
            "amount": amount,
            "currency": settings.FEE_CURRENCY,
            "method": method,
            "status": PaymentStatus.COMPLETED.value,
            "processed_at": now,
        }
        session.execute(insert(payments).values(**payment_values))
        session.execute(
            update(payment_fees)
            .where(payment_fees.c.id.in_(list(fee_ids)))
            .values(is_paid=True, is_overdue=False, updated_at=now)
        )

    logger.info(
        "[fees] payment.recorded",
        extra={"user_id": parent_id, "fee_count": len(fee_ids), "amount": amount, "method": method},
    )
    return Payment(**payment_values)
