"""
User profile service.
- get_user(user_id)
- upsert_user(user_id, **fields)
- require_school_staff(user_id, preschool_id)
"""

from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import select, insert, update

from edudash.core.database import get_db_session, users, as_utc
from edudash.core.errors import PermissionError
from edudash.features.catalog.service import is_superadmin
from edudash.models.user import UserProfile


STAFF_ROLES = frozenset({"principal", "admin", "principal_admin"})


def get_user(user_id: str) -> Optional[UserProfile]:
    with get_db_session() as session:
        row = session.execute(select(users).where(users.c.user_id == user_id)).first()
        if not row:
            return None
        return UserProfile(
            user_id=row.user_id,
            email=row.email,
            name=row.name,
            role=row.role,
            preschool_id=row.preschool_id,
            subscription_tier=row.subscription_tier,
            subscription_status=row.subscription_status,
            created_at=as_utc(row.created_at),
        )


def upsert_user(user_id: str, **fields) -> UserProfile:
    """Insert the profile or update the given columns of an existing one."""
    with get_db_session() as session:
        exists = session.execute(select(users.c.user_id).where(users.c.user_id == user_id)).first()
        if exists:
            if fields:
                session.execute(update(users).where(users.c.user_id == user_id).values(**fields))
        else:
            session.execute(
                insert(users).values(user_id=user_id, created_at=datetime.now(timezone.utc), **fields)
            )
    return get_user(user_id)


def require_school_staff(user_id: str, preschool_id: str) -> UserProfile:
    """
    Return the caller's profile if they may manage `preschool_id`.

    Superadmins manage every school; principals and admins only their own.
    """
    profile = get_user(user_id)
    if profile is None:
        raise PermissionError("Unknown user")
    if is_superadmin(profile.role):
        return profile
    if profile.role not in STAFF_ROLES or profile.preschool_id != preschool_id:
        raise PermissionError("Only school staff can manage invitations")
    return profile
