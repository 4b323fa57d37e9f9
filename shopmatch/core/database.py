"""
Database configuration and connection management.

This module provides:
- SQLAlchemy engine and session factory construction
- Table definitions for the identity (claims) store and the document store
- Session scope helper with commit/rollback semantics
"""
from datetime import timezone
from typing import Optional
from contextlib import contextmanager
from sqlalchemy import create_engine, MetaData, Table, Column, Integer, String, DateTime, Boolean, JSON, Text, Index, ForeignKey, select
from sqlalchemy.engine import Engine
from sqlalchemy.pool import QueuePool, StaticPool
from sqlalchemy.orm import sessionmaker
from sqlalchemy.sql import func
from sqlalchemy.types import TypeDecorator


# SQLAlchemy metadata for table definitions
metadata = MetaData()

# Connection pooling configuration
POOL_SIZE = 10
MAX_OVERFLOW = 20
POOL_TIMEOUT = 30
POOL_RECYCLE = 3600  # Recycle connections after 1 hour


def create_engine_for_url(database_url: str) -> Engine:
    """
    Build an engine for the given URL.

    SQLite (local development and tests) gets a single shared connection when
    in-memory so every session sees the same database; server databases get
    connection pooling.
    """
    if not database_url:
        raise ValueError(
            "DATABASE_URL is not configured. "
            "Set DATABASE_URL in environment or .env file."
        )

    if database_url.startswith("sqlite"):
        in_memory = database_url in ("sqlite://", "sqlite:///:memory:")
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool if in_memory else None,
            echo=False,
        )

    return create_engine(
        database_url,
        poolclass=QueuePool,
        pool_size=POOL_SIZE,
        max_overflow=MAX_OVERFLOW,
        pool_timeout=POOL_TIMEOUT,
        pool_recycle=POOL_RECYCLE,
        echo=False,  # Set to True for SQL query logging
    )


def build_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=engine,
    )


@contextmanager
def get_db_session(session_factory: sessionmaker):
    """
    Context manager for database sessions.

    Usage:
        with get_db_session(factory) as session:
            session.execute(...)

    Commits on clean exit, rolls back and re-raises otherwise.
    """
    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def create_all_tables(engine: Engine) -> None:
    """
    Create all tables defined in metadata.

    This is idempotent - tables that already exist will not be recreated.
    """
    metadata.create_all(bind=engine)


def drop_all_tables(engine: Engine) -> None:
    """
    Drop all tables defined in metadata.

    WARNING: This is destructive! Only use in tests or development.
    """
    metadata.drop_all(bind=engine)


def check_connection(engine: Optional[Engine]) -> bool:
    """
    Check if database connection is available.

    Returns:
        True if connection successful, False otherwise
    """
    if engine is None:
        return False
    try:
        with engine.connect() as conn:
            conn.execute(select(1))
        return True
    except Exception:
        return False




class UTCDateTime(TypeDecorator):
    """Timezone-aware UTC datetimes on every backend.

    SQLite drops tzinfo on the way in and returns naive values; those are
    read back as UTC.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None and value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
# Identity platform user records. custom_claims is the authorization payload
# attached to ID tokens; the platform API only supports replacing it whole.
auth_users = Table(
    'auth_users',
    metadata,
    Column('uid', String(128), primary_key=True),
    Column('email', String(320), nullable=True),
    Column('display_name', Text, nullable=True),
    Column('custom_claims', JSON, nullable=True),
    Column('created_at', UTCDateTime(), server_default=func.now(), nullable=False),
)

# User documents (queryable mirror, looked up by stripe_customer_id)
users = Table(
    'users',
    metadata,
    Column('user_id', String(128), primary_key=True),
    Column('email', String(320), nullable=True),
    Column('role', String(20), nullable=True),  # owner | seeker
    Column('stripe_customer_id', String(100), nullable=True, unique=True),
    Column('sub_active', Boolean, nullable=False, server_default='0'),
    Column('subscription_id', String(100), nullable=True),
    Column('subscription_status', String(50), nullable=True),
    Column('created_at', UTCDateTime(), server_default=func.now(), nullable=False),
    Column('updated_at', UTCDateTime(), nullable=True),
    Index('idx_users_stripe_customer_id', 'stripe_customer_id'),
)

# Job postings
jobs = Table(
    'jobs',
    metadata,
    Column('id', String(36), primary_key=True),
    Column('owner_id', String(128), ForeignKey('users.user_id'), nullable=False),
    Column('title', String(100), nullable=False),
    Column('company', String(100), nullable=False),
    Column('description', Text, nullable=False),
    Column('type', String(20), nullable=False),  # full-time, part-time, contract, freelance
    Column('location', String(120), nullable=False),
    Column('remote', Boolean, nullable=False, server_default='0'),
    Column('experience', String(20), nullable=True),  # entry, mid, senior, lead
    Column('salary', JSON, nullable=True),
    Column('requirements', JSON, nullable=True),
    Column('skills', JSON, nullable=True),
    Column('status', String(20), nullable=False, server_default='draft'),  # draft, published, closed
    Column('view_count', Integer, nullable=False, server_default='0'),
    Column('application_count', Integer, nullable=False, server_default='0'),
    Column('created_at', UTCDateTime(), nullable=False),
    Column('updated_at', UTCDateTime(), nullable=False),
    Column('published_at', UTCDateTime(), nullable=True),
    # Duplicate-submission lookup: owner + title, newest first
    Index('idx_jobs_owner_title_created', 'owner_id', 'title', 'created_at'),
)

# Job applications
applications = Table(
    'applications',
    metadata,
    Column('id', String(36), primary_key=True),
    Column('job_id', String(36), ForeignKey('jobs.id'), nullable=False, index=True),
    Column('seeker_id', String(128), nullable=False, index=True),
    Column('owner_id', String(128), nullable=False, index=True),
    Column('seeker_email', String(320), nullable=True),
    Column('status', String(20), nullable=False, server_default='pending'),  # pending, reviewed, accepted, rejected
    Column('cover_letter', Text, nullable=True),
    Column('created_at', UTCDateTime(), nullable=False),
    Column('updated_at', UTCDateTime(), nullable=False),
)
