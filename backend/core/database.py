"""
Database configuration and connection management.

This module provides:
- SQLAlchemy engine and session management
- Connection pooling with sane defaults (StaticPool for SQLite in tests)
- Table definitions for users, subscriptions, video jobs, voices and billing
"""
from typing import Optional
from contextlib import contextmanager
from datetime import datetime, timezone
from sqlalchemy import create_engine, MetaData, Table, Column, Integer, String, DateTime, Boolean, JSON, Text, Index, UniqueConstraint
from sqlalchemy.pool import QueuePool, StaticPool
from sqlalchemy.orm import sessionmaker
import os

from backend.core.config import settings


# SQLAlchemy metadata for table definitions
metadata = MetaData()

# Connection pooling configuration
POOL_SIZE = 10
MAX_OVERFLOW = 20
POOL_TIMEOUT = 30
POOL_RECYCLE = 3600  # Recycle connections after 1 hour

# Global engine and session factory
_engine = None
_SessionLocal = None


def utc_now() -> datetime:
    """Timezone-aware UTC now."""
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes read back from the database."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


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
        raise ValueError(
            "DATABASE_URL is not configured. "
            "Set DATABASE_URL in environment or .env file."
        )

    if url.startswith("sqlite"):
        # Single shared connection so in-memory databases survive across sessions
        _engine = create_engine(
            url,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
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
            pool_pre_ping=True,
            echo=False,  # Set to True for SQL query logging
        )

    # Create session factory
    _SessionLocal = sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=_engine
    )

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


def reset_database():
    """
    Reset the database by dropping and recreating all tables.

    WARNING: This is destructive! Only use in tests.
    """
    drop_all_tables()
    create_all_tables()


# User projection of the identity provider (Clerk)
users = Table(
    'app_users',
    metadata,
    Column('user_id', String(100), primary_key=True),
    Column('email', String(320), nullable=False, default='', index=True),
    Column('first_name', String(200), nullable=True),
    Column('last_name', String(200), nullable=True),
    Column('profile_image_url', Text, nullable=True),
    Column('user_metadata', JSON, nullable=False, default=dict),
    Column('is_active', Boolean, nullable=False, default=True),
    Column('last_sign_in', DateTime(timezone=True), nullable=True),
    # Timestamp of the newest identity-provider event applied (ordering guard)
    Column('source_updated_at', DateTime(timezone=True), nullable=True),
    Column('created_at', DateTime(timezone=True), nullable=False, default=utc_now),
    Column('updated_at', DateTime(timezone=True), nullable=False, default=utc_now),
    Index('idx_users_created_at', 'created_at'),
)

# Subscriptions: exactly one per user
subscriptions = Table(
    'subscriptions',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('user_id', String(100), nullable=False),
    Column('plan', String(20), nullable=False, default='free'),
    Column('active', Boolean, nullable=False, default=True),
    Column('start_date', DateTime(timezone=True), nullable=False, default=utc_now),
    Column('end_date', DateTime(timezone=True), nullable=True),
    Column('videos_generated', Integer, nullable=False, default=0),
    Column('last_reset_date', DateTime(timezone=True), nullable=False, default=utc_now),
    Column('payment_info', JSON, nullable=True),
    Column('updated_at', DateTime(timezone=True), nullable=False, default=utc_now),
    UniqueConstraint('user_id', name='uq_subscriptions_user_id'),
    Index('idx_subscriptions_plan', 'plan'),
)

# Video generation jobs, keyed by the job id handed to the provider
video_jobs = Table(
    'video_jobs',
    metadata,
    Column('job_id', String(100), primary_key=True),
    Column('user_id', String(100), nullable=False),
    Column('name', Text, nullable=True),
    Column('status', String(20), nullable=False, default='pending'),
    Column('result_url', Text, nullable=True),
    Column('request_metadata', JSON, nullable=False, default=dict),
    Column('created_at', DateTime(timezone=True), nullable=False, default=utc_now),
    Column('updated_at', DateTime(timezone=True), nullable=False, default=utc_now),
    Column('completed_at', DateTime(timezone=True), nullable=True),
    # Composite index for list-by-owner pattern: (user_id, created_at)
    Index('idx_video_jobs_user_created', 'user_id', 'created_at'),
    Index('idx_video_jobs_status', 'status'),
)

# Voice catalog (seeded, read-only at runtime)
voices = Table(
    'voices',
    metadata,
    Column('key', String(100), primary_key=True),
    Column('language', String(100), nullable=False),
    Column('country', String(100), nullable=False),
    Column('gender', String(20), nullable=False),
    Column('locale', String(20), nullable=False, index=True),
    Column('voice_name', String(100), nullable=False),
)

# Billing customers (Stripe)
billing_customers = Table(
    'billing_customers',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('user_id', String(100), nullable=False, unique=True, index=True),
    Column('stripe_customer_id', String(100), nullable=False, unique=True, index=True),
    Column('created_at', DateTime(timezone=True), nullable=False, default=utc_now),
)

# Billing events (Stripe webhook idempotency)
billing_events = Table(
    'billing_events',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('stripe_event_id', String(100), nullable=False),
    Column('event_type', String(100), nullable=False, index=True),
    Column('received_at', DateTime(timezone=True), nullable=False, default=utc_now),
    Column('payload_hash', String(64), nullable=False),  # SHA256 hash for deduplication
    Column('processed', Boolean, nullable=False, default=False, index=True),
    Column('processed_at', DateTime(timezone=True), nullable=True),
    Column('error', Text, nullable=True),
    UniqueConstraint('stripe_event_id', name='uq_billing_events_stripe_id'),
)


@contextmanager
def storage_session(operation: str):
    """get_db_session() that reports SQLAlchemy failures as StorageError."""
    from sqlalchemy.exc import SQLAlchemyError
    from backend.core.errors import StorageError

    try:
        with get_db_session() as session:
            yield session
    except SQLAlchemyError as e:
        raise StorageError(
            "Storage failure",
            details=f"Could not {operation}. Please retry.",
        ) from e
