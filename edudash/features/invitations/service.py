"""
edudash/features/invitations/service.py

School invitation codes: generation, validation, redemption, revocation.

Handles:
- One active code per (school, invitation type); duplicates are collapsed
- Teacher invitations as single-use, email-bound codes
- Usage-count enforcement with a compare-and-set increment on redemption

The school_invitation_codes table is the only store. Teacher invitation
listings are derived from it.
"""

import logging
import secrets
import string
from datetime import datetime, timedelta, timezone
from typing import List, Optional
from uuid import uuid4

from sqlalchemy import select, insert, update, delete, func
from sqlalchemy.exc import IntegrityError

from edudash.core.config import settings
from edudash.core.database import get_db_session, school_invitation_codes, users, as_utc
from edudash.core.errors import ConflictError, InvitationError, NotFoundError, ValidationError
from edudash.core.logging import log_event
from edudash.models.invitation import (
    InvitationStatus,
    InvitationType,
    Redemption,
    SchoolInvitationCode,
    TeacherInvitation,
)


logger = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits
MAX_CODE_ATTEMPTS = 5

# Addresses used as "anyone may redeem" markers on older codes
PLACEHOLDER_EMAILS = frozenset({"parent@pending.local", "any", "any@any"})


def _normalize_now(now: Optional[datetime]) -> datetime:
    if now is None:
        return datetime.now(timezone.utc)
    return as_utc(now)


def _normalize_code(code: str) -> str:
    return code.strip().upper()


def generate_code(length: Optional[int] = None) -> str:
    """Random uppercase alphanumeric code (A-Z, 0-9)."""
    length = length or settings.INVITE_CODE_LENGTH
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def _row_to_code(row) -> SchoolInvitationCode:
    return SchoolInvitationCode(
        id=row.id,
        code=row.code,
        preschool_id=row.preschool_id,
        invitation_type=InvitationType(row.invitation_type),
        invited_email=row.invited_email,
        invited_name=row.invited_name,
        invited_by=row.invited_by,
        description=row.description,
        expires_at=as_utc(row.expires_at),
        max_uses=row.max_uses,
        current_uses=row.current_uses or 0,
        is_active=bool(row.is_active),
        used_at=as_utc(row.used_at),
        used_by=row.used_by,
        revoked_at=as_utc(row.revoked_at),
        created_at=as_utc(row.created_at),
    )


def _insert_code(session, values: dict) -> dict:
    """Insert a code row, regenerating the code on collision."""
    for attempt in range(MAX_CODE_ATTEMPTS):
        values = {**values, "code": generate_code()}
        existing = session.execute(
            select(school_invitation_codes.c.id).where(school_invitation_codes.c.code == values["code"])
        ).first()
        if existing is None:
            session.execute(insert(school_invitation_codes).values(**values))
            return values
        logger.info("[invitations] code collision, retrying", extra={"attempt": attempt + 1})
    raise ConflictError("Could not generate a unique invitation code")


def create_school_code(
    preschool_id: str,
    created_by: str,
    *,
    invitation_type: InvitationType = InvitationType.PARENT,
    description: Optional[str] = None,
    max_uses: Optional[int] = None,
    expiry_days: Optional[int] = None,
    invited_email: Optional[str] = None,
    invited_name: Optional[str] = None,
    now: Optional[datetime] = None,
) -> SchoolInvitationCode:
    """
    Create the school's active code for `invitation_type`.

    Any previously active code of the same type is deactivated first, so a
    school never has two live codes of one type.

    Defaults: parent codes last PARENT_CODE_EXPIRY_DAYS with
    PARENT_CODE_MAX_USES uses; other types are single use.
    """
    now = _normalize_now(now)
    invitation_type = InvitationType(invitation_type)

    if max_uses is None:
        max_uses = settings.PARENT_CODE_MAX_USES if invitation_type == InvitationType.PARENT else 1
    if expiry_days is None:
        expiry_days = settings.PARENT_CODE_EXPIRY_DAYS

    with get_db_session() as session:
        session.execute(
            update(school_invitation_codes)
            .where(school_invitation_codes.c.preschool_id == preschool_id)
            .where(school_invitation_codes.c.invitation_type == invitation_type.value)
            .where(school_invitation_codes.c.is_active.is_(True))
            .values(is_active=False)
        )
        values = _insert_code(session, {
            "id": str(uuid4()),
            "preschool_id": preschool_id,
            "invitation_type": invitation_type.value,
            "invited_email": invited_email.lower() if invited_email else None,
            "invited_name": invited_name,
            "invited_by": created_by,
            "description": description,
            "expires_at": now + timedelta(days=expiry_days),
            "max_uses": max_uses,
            "current_uses": 0,
            "is_active": True,
            "created_at": now,
        })

    logger.info(
        "[invitations] code.created",
        extra={
            "preschool_id": preschool_id,
            "invitation_type": invitation_type.value,
            "max_uses": max_uses,
            "expires_at": values["expires_at"].isoformat(),
        },
    )
    return SchoolInvitationCode(**values)


def get_active_code(
    preschool_id: str,
    invitation_type: InvitationType = InvitationType.PARENT,
    now: Optional[datetime] = None,
) -> Optional[SchoolInvitationCode]:
    """
    Return the school's live code of this type, or None.

    If several active codes exist the newest is kept and the rest are
    deactivated.
    """
    now = _normalize_now(now)
    invitation_type = InvitationType(invitation_type)

    with get_db_session() as session:
        rows = session.execute(
            select(school_invitation_codes)
            .where(school_invitation_codes.c.preschool_id == preschool_id)
            .where(school_invitation_codes.c.invitation_type == invitation_type.value)
            .where(school_invitation_codes.c.is_active.is_(True))
            .order_by(school_invitation_codes.c.created_at.desc())
        ).all()

        if not rows:
            return None

        newest, duplicates = rows[0], rows[1:]
        if duplicates:
            session.execute(
                update(school_invitation_codes)
                .where(school_invitation_codes.c.id.in_([row.id for row in duplicates]))
                .values(is_active=False)
            )
            logger.warning(
                "[invitations] duplicate active codes deactivated",
                extra={
                    "preschool_id": preschool_id,
                    "invitation_type": invitation_type.value,
                    "deactivated": len(duplicates),
                },
            )

    code = _row_to_code(newest)
    if code.expires_at <= now:
        return None
    return code


def deactivate_codes(preschool_id: str, invitation_type: Optional[InvitationType] = None) -> int:
    stmt = (
        update(school_invitation_codes)
        .where(school_invitation_codes.c.preschool_id == preschool_id)
        .where(school_invitation_codes.c.is_active.is_(True))
        .values(is_active=False)
    )
    if invitation_type is not None:
        stmt = stmt.where(school_invitation_codes.c.invitation_type == InvitationType(invitation_type).value)

    with get_db_session() as session:
        result = session.execute(stmt)
    return result.rowcount or 0


def delete_codes(preschool_id: str) -> int:
    with get_db_session() as session:
        result = session.execute(
            delete(school_invitation_codes).where(school_invitation_codes.c.preschool_id == preschool_id)
        )
    deleted = result.rowcount or 0
    logger.info("[invitations] codes.deleted", extra={"preschool_id": preschool_id, "deleted": deleted})
    return deleted


def _teacher_status(code: SchoolInvitationCode, now: datetime) -> InvitationStatus:
    if code.used_at is not None or code.current_uses > 0:
        return InvitationStatus.ACCEPTED
    if code.revoked_at is not None or not code.is_active:
        return InvitationStatus.CANCELLED
    if code.expires_at <= now:
        return InvitationStatus.EXPIRED
    return InvitationStatus.PENDING


def _to_teacher_invitation(code: SchoolInvitationCode, now: datetime) -> TeacherInvitation:
    return TeacherInvitation(
        id=code.id,
        email=code.invited_email,
        name=code.invited_name,
        invitation_code=code.code,
        preschool_id=code.preschool_id,
        status=_teacher_status(code, now),
        invited_by=code.invited_by,
        created_at=code.created_at,
        expires_at=code.expires_at,
        accepted_at=code.used_at,
        cancelled_at=code.revoked_at,
    )


def invite_teacher(
    preschool_id: str,
    invited_by: str,
    email: str,
    name: str,
    now: Optional[datetime] = None,
) -> TeacherInvitation:
    """
    Create a single-use teacher invitation bound to `email`.

    Raises:
        ConflictError: a user with this email already exists
    """
    now = _normalize_now(now)
    email = email.strip().lower()

    with get_db_session() as session:
        existing = session.execute(
            select(users.c.user_id).where(func.lower(users.c.email) == email)
        ).first()
        if existing is not None:
            raise ConflictError("A user with this email already exists")

        values = _insert_code(session, {
            "id": str(uuid4()),
            "preschool_id": preschool_id,
            "invitation_type": InvitationType.TEACHER.value,
            "invited_email": email,
            "invited_name": name,
            "invited_by": invited_by,
            "description": f"Teacher invitation for {name}",
            "expires_at": now + timedelta(days=settings.TEACHER_INVITE_EXPIRY_DAYS),
            "max_uses": 1,
            "current_uses": 0,
            "is_active": True,
            "created_at": now,
        })

    logger.info(
        "[invitations] teacher.invited",
        extra={"preschool_id": preschool_id, "invited_by": invited_by},
    )
    return _to_teacher_invitation(SchoolInvitationCode(**values), now)


def list_teacher_invitations(preschool_id: str, now: Optional[datetime] = None) -> List[TeacherInvitation]:
    now = _normalize_now(now)
    with get_db_session() as session:
        rows = session.execute(
            select(school_invitation_codes)
            .where(school_invitation_codes.c.preschool_id == preschool_id)
            .where(school_invitation_codes.c.invitation_type == InvitationType.TEACHER.value)
            .order_by(school_invitation_codes.c.created_at.desc())
        ).all()
    return [_to_teacher_invitation(_row_to_code(row), now) for row in rows]


def revoke_invitation(invitation_id: str, preschool_id: str, now: Optional[datetime] = None) -> TeacherInvitation:
    """
    Cancel a pending teacher invitation.

    Raises:
        NotFoundError: no such invitation at this school
        ValidationError: invitation is no longer pending
    """
    now = _normalize_now(now)
    with get_db_session() as session:
        row = session.execute(
            select(school_invitation_codes)
            .where(school_invitation_codes.c.id == invitation_id)
            .where(school_invitation_codes.c.preschool_id == preschool_id)
            .where(school_invitation_codes.c.invitation_type == InvitationType.TEACHER.value)
        ).first()
        if row is None:
            raise NotFoundError("Invitation not found")

        code = _row_to_code(row)
        status = _teacher_status(code, now)
        if status != InvitationStatus.PENDING:
            raise ValidationError(f"Invitation is {status.value} and cannot be revoked")

        session.execute(
            update(school_invitation_codes)
            .where(school_invitation_codes.c.id == invitation_id)
            .values(is_active=False, revoked_at=now)
        )

    logger.info(
        "[invitations] teacher.revoked",
        extra={"preschool_id": preschool_id, "invitation_id": invitation_id},
    )
    return _to_teacher_invitation(code.model_copy(update={"is_active": False, "revoked_at": now}), now)


def delete_teacher_invitation(invitation_id: str, preschool_id: str) -> None:
    """
    Permanently remove one teacher invitation, whatever its status.

    Raises:
        NotFoundError: no such invitation at this school
    """
    with get_db_session() as session:
        result = session.execute(
            delete(school_invitation_codes)
            .where(school_invitation_codes.c.id == invitation_id)
            .where(school_invitation_codes.c.preschool_id == preschool_id)
            .where(school_invitation_codes.c.invitation_type == InvitationType.TEACHER.value)
        )
        if result.rowcount != 1:
            raise NotFoundError("Invitation not found")

    logger.info(
        "[invitations] teacher.deleted",
        extra={"preschool_id": preschool_id, "invitation_id": invitation_id},
    )


def _enforces_email(code: SchoolInvitationCode) -> bool:
    invited = (code.invited_email or "").lower()
    if not invited or invited in PLACEHOLDER_EMAILS:
        return False
    return code.invitation_type != InvitationType.PARENT


def _check_code(code: Optional[SchoolInvitationCode], email: str, now: datetime) -> SchoolInvitationCode:
    if code is None:
        raise InvitationError("Invalid or expired invitation code", reason="not_found")

    if _enforces_email(code) and code.invited_email.lower() != email:
        raise InvitationError(
            "This invitation code is restricted to a different email address",
            reason="email_mismatch",
        )

    if code.expires_at <= now:
        raise InvitationError("This invitation code has expired", reason="expired")

    if not code.is_active:
        raise InvitationError("This invitation code is no longer active", reason="inactive")

    if code.max_uses is not None and code.max_uses > 0 and code.current_uses + 1 > code.max_uses:
        raise InvitationError("This invitation code has reached its usage limit", reason="exhausted")

    return code


def _load_code(session, code: str) -> Optional[SchoolInvitationCode]:
    row = session.execute(
        select(school_invitation_codes).where(school_invitation_codes.c.code == _normalize_code(code))
    ).first()
    return _row_to_code(row) if row is not None else None


def validate_code(code: str, email: str, now: Optional[datetime] = None) -> SchoolInvitationCode:
    """
    Check that `code` may be redeemed by `email` right now.

    Raises:
        InvitationError: with reason not_found, email_mismatch, expired,
            inactive or exhausted
    """
    now = _normalize_now(now)
    with get_db_session() as session:
        found = _load_code(session, code)
    return _check_code(found, email.strip().lower(), now)


def redeem_code(
    code: str,
    email: str,
    user_id: str,
    now: Optional[datetime] = None,
    name: Optional[str] = None,
) -> Redemption:
    """
    Redeem `code` for `user_id`.

    The use counter moves with a compare-and-set update, so two concurrent
    redemptions of the last use cannot both succeed. The code deactivates
    once it reaches max_uses. The user's profile gets the code's role and
    school, and `name` when one is given.
    """
    now = _normalize_now(now)
    email = email.strip().lower()

    with get_db_session() as session:
        found = _check_code(_load_code(session, code), email, now)

        next_uses = found.current_uses + 1
        has_max = found.max_uses is not None and found.max_uses > 0
        still_active = next_uses < found.max_uses if has_max else True

        result = session.execute(
            update(school_invitation_codes)
            .where(school_invitation_codes.c.id == found.id)
            .where(school_invitation_codes.c.current_uses == found.current_uses)
            .where(school_invitation_codes.c.is_active.is_(True))
            .values(
                current_uses=next_uses,
                is_active=still_active,
                used_at=now,
                used_by=user_id,
            )
        )
        if result.rowcount != 1:
            raise InvitationError("This invitation code has reached its usage limit", reason="exhausted")

        profile = session.execute(select(users.c.user_id).where(users.c.user_id == user_id)).first()
        profile_values = {
            "role": found.invitation_type.value,
            "preschool_id": found.preschool_id,
        }
        if name and name.strip():
            profile_values["name"] = name.strip()
        try:
            if profile is None:
                session.execute(insert(users).values(user_id=user_id, email=email, **profile_values))
            else:
                session.execute(update(users).where(users.c.user_id == user_id).values(**profile_values))
        except IntegrityError as e:
            raise ConflictError("A different user already owns this email") from e

    log_event(
        "info",
        "[invitations] code.redeemed",
        user_id=user_id,
        preschool_id=found.preschool_id,
        event_type="invitation_redeemed",
        extra={"role": found.invitation_type.value, "code_hint": found.code[:2] + "***"},
    )
    return Redemption(
        code=found.code,
        role=found.invitation_type,
        preschool_id=found.preschool_id,
        user_id=user_id,
        remaining_uses=found.max_uses - next_uses if has_max else None,
    )


def cleanup_expired_invitations(preschool_id: str, now: Optional[datetime] = None) -> int:
    """Delete teacher invitations that expired without ever being used."""
    now = _normalize_now(now)
    with get_db_session() as session:
        result = session.execute(
            delete(school_invitation_codes)
            .where(school_invitation_codes.c.preschool_id == preschool_id)
            .where(school_invitation_codes.c.invitation_type == InvitationType.TEACHER.value)
            .where(school_invitation_codes.c.used_at.is_(None))
            .where(school_invitation_codes.c.expires_at <= now)
        )
    removed = result.rowcount or 0
    if removed:
        logger.info("[invitations] expired.cleaned", extra={"preschool_id": preschool_id, "removed": removed})
    return removed
