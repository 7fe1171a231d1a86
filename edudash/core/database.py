"""
Database configuration and connection management.

This module provides:
- SQLAlchemy engine and session management
- Connection pooling with sane defaults (SQLite gets a shared static pool)
- Test database support
- Table definitions for profiles, AI usage, invitation codes and fees
"""
from typing import Optional
from contextlib import contextmanager
from datetime import datetime, timezone
import logging
import os

from sqlalchemy import (
    create_engine,
    MetaData,
    Table,
    Column,
    Integer,
    Float,
    String,
    Date,
    DateTime,
    Boolean,
    JSON,
    Text,
    Index,
    UniqueConstraint,
    text,
    false,
    true,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import QueuePool, StaticPool
from sqlalchemy.orm import sessionmaker
from sqlalchemy.sql import func

from edudash.core.config import settings


logger = logging.getLogger("edudash")

# SQLAlchemy metadata for table definitions
metadata = MetaData()


class DatabaseNotConfiguredError(ValueError):
    """No DATABASE_URL (or TEST_DATABASE_URL) to build an engine from."""


# Everything a store read or write can fail with once it reaches the database layer.
STORE_ERRORS = (SQLAlchemyError, DatabaseNotConfiguredError)

# Connection pooling configuration
POOL_SIZE = 10
MAX_OVERFLOW = 20
POOL_TIMEOUT = 30
POOL_RECYCLE = 3600  # Recycle connections after 1 hour

# Global engine and session factory
_engine = None
_SessionLocal = None


def get_database_url() -> Optional[str]:
    """
    Get the database URL from settings or environment.

    For testing, use TEST_DATABASE_URL if available.
    """
    test_url = os.getenv("TEST_DATABASE_URL")
    if test_url:
        return test_url

    return settings.DATABASE_URL


def init_engine(database_url: Optional[str] = None):
    """
    Initialize the SQLAlchemy engine.

    Args:
        database_url: Optional override for DATABASE_URL
    """
    global _engine, _SessionLocal

    url = database_url or get_database_url()

    if not url:
        raise DatabaseNotConfiguredError(
            "DATABASE_URL is not configured. "
            "Set DATABASE_URL in environment or .env file."
        )

    if url.startswith("sqlite"):
        # One shared connection so in-memory databases survive across sessions
        _engine = create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            echo=False,
        )
    else:
        _engine = create_engine(
            url,
            poolclass=QueuePool,
            pool_size=POOL_SIZE,
            max_overflow=MAX_OVERFLOW,
            pool_timeout=POOL_TIMEOUT,
            pool_recycle=POOL_RECYCLE,
            echo=False,  # Set to True for SQL query logging
        )

    # Create session factory
    _SessionLocal = sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=_engine
    )
    logger.info("database.engine_ready", extra={"dialect": _engine.dialect.name})

    return _engine


def get_engine():
    """Get the current SQLAlchemy engine."""
    global _engine
    if _engine is None:
        init_engine()
    return _engine


def get_session_factory():
    """Get the session factory."""
    global _SessionLocal
    if _SessionLocal is None:
        init_engine()
    return _SessionLocal


def dispose_engine() -> None:
    """Drop the current engine so the next call re-initializes it."""
    global _engine, _SessionLocal
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionLocal = None


@contextmanager
def get_db_session():
    """
    Context manager for database sessions.

    Usage:
        with get_db_session() as session:
            session.execute(...)
    """
    SessionLocal = get_session_factory()
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def create_all_tables():
    """
    Create all tables defined in metadata.

    This is idempotent - tables that already exist will not be recreated.
    """
    engine = get_engine()
    metadata.create_all(bind=engine)


def drop_all_tables():
    """
    Drop all tables defined in metadata.

    WARNING: This is destructive! Only use in tests or development.
    """
    engine = get_engine()
    metadata.drop_all(bind=engine)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalize a datetime read from or written to the database to aware UTC.

    SQLite hands back naive datetimes; everything is stored as UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# User profiles (auth identity + role + subscription columns)
users = Table(
    'users',
    metadata,
    Column('user_id', String(100), primary_key=True),
    Column('email', String(320), nullable=True, unique=True),
    Column('name', Text, nullable=True),
    Column('role', String(50), nullable=True),  # 'superadmin', 'principal', 'teacher', 'parent'
    Column('preschool_id', String(100), nullable=True, index=True),
    Column('subscription_tier', String(50), nullable=True),
    Column('subscription_status', String(50), nullable=True),
    Column('payment_window_start', Integer, nullable=True),
    Column('payment_window_end', Integer, nullable=True),
    Column('payment_window_locked', Boolean, nullable=False, server_default=false()),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
)

# AI usage log (append-only)
ai_usage_logs = Table(
    'ai_usage_logs',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('user_id', String(100), nullable=False),
    Column('feature', String(100), nullable=False),
    Column('created_at', DateTime(timezone=True), nullable=False),
    Column('tokens_used', Integer, nullable=True),
    Column('cost_usd', Float, nullable=True),
    # Composite index for monthly counts: (user_id, created_at)
    Index('idx_ai_usage_logs_user_created', 'user_id', 'created_at'),
)

# School invitation codes (authoritative store for teacher and parent invites)
school_invitation_codes = Table(
    'school_invitation_codes',
    metadata,
    Column('id', String(100), primary_key=True),
    Column('code', String(32), nullable=False, unique=True),
    Column('preschool_id', String(100), nullable=False),
    Column('invitation_type', String(20), nullable=False),  # 'parent', 'teacher', 'admin'
    Column('invited_email', String(320), nullable=True),
    Column('invited_name', Text, nullable=True),
    Column('invited_by', String(100), nullable=False),
    Column('description', Text, nullable=True),
    Column('expires_at', DateTime(timezone=True), nullable=False),
    Column('max_uses', Integer, nullable=True),
    Column('current_uses', Integer, nullable=False, server_default=text('0')),
    Column('is_active', Boolean, nullable=False, server_default=true()),
    Column('used_at', DateTime(timezone=True), nullable=True),
    Column('used_by', String(100), nullable=True),
    Column('revoked_at', DateTime(timezone=True), nullable=True),
    Column('metadata', JSON, nullable=True),
    Column('created_at', DateTime(timezone=True), nullable=False),
    Index('idx_invitation_codes_school_type_active', 'preschool_id', 'invitation_type', 'is_active'),
)

# Students
students = Table(
    'students',
    metadata,
    Column('id', String(100), primary_key=True),
    Column('preschool_id', String(100), nullable=False, index=True),
    Column('parent_id', String(100), nullable=False, index=True),
    Column('first_name', Text, nullable=False),
    Column('last_name', Text, nullable=False),
    Column('date_of_birth', Date, nullable=False),
    Column('is_active', Boolean, nullable=False, server_default=true()),
)

# Payment fees (one tuition fee per student per billing period)
payment_fees = Table(
    'payment_fees',
    metadata,
    Column('id', String(100), primary_key=True),
    Column('preschool_id', String(100), nullable=False),
    Column('student_id', String(100), nullable=False, index=True),
    Column('fee_type', String(50), nullable=False),
    Column('billing_period', String(7), nullable=False),  # YYYY-MM
    Column('title', Text, nullable=False),
    Column('description', Text, nullable=True),
    Column('amount', Float, nullable=False),
    Column('currency', String(3), nullable=False),
    Column('due_date', Date, nullable=False),
    Column('is_recurring', Boolean, nullable=False, server_default=true()),
    Column('is_overdue', Boolean, nullable=False, server_default=false()),
    Column('is_paid', Boolean, nullable=False, server_default=false()),
    Column('created_at', DateTime(timezone=True), nullable=False),
    Column('updated_at', DateTime(timezone=True), nullable=False),
    UniqueConstraint('student_id', 'fee_type', 'billing_period', name='uq_payment_fees_student_type_period'),
)

# Payments (bookkeeping only)
payments = Table(
    'payments',
    metadata,
    Column('id', String(100), primary_key=True),
    Column('parent_id', String(100), nullable=False, index=True),
    Column('student_id', String(100), nullable=True, index=True),
    Column('fee_ids', JSON, nullable=False),
    Column('amount', Float, nullable=False),
    Column('currency', String(3), nullable=False),
    Column('method', String(50), nullable=False),
    Column('status', String(20), nullable=False),  # 'pending', 'completed', 'failed'
    Column('processed_at', DateTime(timezone=True), nullable=False),
    Index('idx_payments_parent_processed', 'parent_id', 'processed_at'),
)
