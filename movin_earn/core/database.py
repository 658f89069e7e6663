"""
Database configuration and connection management.

This module provides:
- SQLAlchemy engine and session management
- Connection pooling with sane defaults (SQLite gets a single shared connection)
- Test database support
- Table definitions for the persisted engine state

Token amounts are stored as decimal strings: base-unit values exceed the
range of a 64-bit integer column.
"""
from typing import Optional
from contextlib import contextmanager
from sqlalchemy import create_engine, MetaData, Table, Column, Integer, String, Boolean, DateTime, Index, UniqueConstraint
from sqlalchemy.pool import QueuePool, StaticPool
from sqlalchemy.orm import sessionmaker
from sqlalchemy.sql import func
import os

from movin_earn.core.config import settings


# SQLAlchemy metadata for table definitions
metadata = MetaData()

# Connection pooling configuration
POOL_SIZE = 10
MAX_OVERFLOW = 20
POOL_TIMEOUT = 30
POOL_RECYCLE = 3600  # Recycle connections after 1 hour

AMOUNT = String(80)

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
        raise ValueError(
            "DATABASE_URL is not configured. "
            "Set DATABASE_URL in environment or .env file."
        )

    if url.startswith("sqlite"):
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


# Table definitions

# Stakes: one row per open stake; `position` preserves the caller-visible index order
earn_stakes = Table(
    'earn_stakes',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('account', String(100), nullable=False),
    Column('stake_id', Integer, nullable=False),
    Column('position', Integer, nullable=False),
    Column('amount', AMOUNT, nullable=False),
    Column('start_time', Integer, nullable=False),
    Column('lock_duration', Integer, nullable=False),
    Column('last_claimed', Integer, nullable=False),
    Column('lock_months', Integer, nullable=False),
    UniqueConstraint('account', 'stake_id', name='uq_earn_stakes_account_stake'),
    Index('idx_earn_stakes_account_position', 'account', 'position'),
)

# Per-account activity counters plus the next stake id
earn_activity = Table(
    'earn_activity',
    metadata,
    Column('account', String(100), primary_key=True),
    Column('daily_steps', Integer, nullable=False, server_default='0'),
    Column('daily_mets', Integer, nullable=False, server_default='0'),
    Column('last_updated', Integer, nullable=False, server_default='0'),
    Column('last_day_reset', Integer, nullable=False, server_default='0'),
    Column('last_meal_claim', Integer, nullable=False, server_default='0'),
    Column('next_stake_id', Integer, nullable=False, server_default='1'),
    Column('updated_at', DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False),
)

# Referral edges; `referrals` rows are derived from referee rows on load
earn_referrals = Table(
    'earn_referrals',
    metadata,
    Column('account', String(100), primary_key=True),
    Column('referrer', String(100), nullable=True, index=True),
    Column('earned_bonus', AMOUNT, nullable=False, server_default='0'),
    Column('referred_count', Integer, nullable=False, server_default='0'),
    Column('referred_position', Integer, nullable=True),
)

earn_premium = Table(
    'earn_premium',
    metadata,
    Column('account', String(100), primary_key=True),
    Column('is_premium', Boolean, nullable=False, server_default='false'),
    Column('amount_paid', AMOUNT, nullable=False, server_default='0'),
    Column('expires_at', Integer, nullable=False, server_default='0'),
)

# Singletons are keyed by a fixed id of 1
earn_rate_state = Table(
    'earn_rate_state',
    metadata,
    Column('id', Integer, primary_key=True),
    Column('base_steps_rate', AMOUNT, nullable=False),
    Column('base_mets_rate', AMOUNT, nullable=False),
    Column('last_decay_timestamp', Integer, nullable=False),
)

earn_admin_state = Table(
    'earn_admin_state',
    metadata,
    Column('id', Integer, primary_key=True),
    Column('paused', Boolean, nullable=False, server_default='false'),
)

earn_lock_multipliers = Table(
    'earn_lock_multipliers',
    metadata,
    Column('months', Integer, primary_key=True),
    Column('multiplier', Integer, nullable=False),
)

# Per-account submission histories; `kind` is 'steps' or 'mets'
earn_activity_history = Table(
    'earn_activity_history',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('account', String(100), nullable=False),
    Column('kind', String(10), nullable=False),
    Column('position', Integer, nullable=False),
    Column('value', Integer, nullable=False),
    Column('timestamp', Integer, nullable=False),
    Index('idx_earn_activity_history_account', 'account', 'kind', 'position'),
)

# Token collaborator: balances and allowances are current values, the ledger is append-only
earn_token_balances = Table(
    'earn_token_balances',
    metadata,
    Column('account', String(100), primary_key=True),
    Column('balance', AMOUNT, nullable=False),
)

earn_token_allowances = Table(
    'earn_token_allowances',
    metadata,
    Column('owner', String(100), primary_key=True),
    Column('spender', String(100), primary_key=True),
    Column('amount', AMOUNT, nullable=False),
)

earn_token_ledger = Table(
    'earn_token_ledger',
    metadata,
    Column('sequence', Integer, primary_key=True, autoincrement=False),
    Column('event_type', String(20), nullable=False),
    Column('amount', AMOUNT, nullable=False),
    Column('sender', String(100), nullable=True),
    Column('recipient', String(100), nullable=True),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
)

earn_token_state = Table(
    'earn_token_state',
    metadata,
    Column('id', Integer, primary_key=True),
    Column('paused', Boolean, nullable=False, server_default='false'),
)
