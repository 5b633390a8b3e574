"""
Engine, sessions and table definitions.

All persistence goes through SQLAlchemy Core against the tables below.
SQLite is used for local runs and tests; any other URL gets a pooled engine.
Writers on SQLite serialize on the database lock, so every write path keeps
its transaction to a single short statement where it can.
"""
from typing import Optional
from contextlib import contextmanager
from sqlalchemy import create_engine, MetaData, Table, Column, Integer, String, DateTime, Boolean, JSON, Text, Index
from sqlalchemy.engine import Engine
from sqlalchemy.pool import QueuePool
from sqlalchemy.orm import sessionmaker
from sqlalchemy.sql import func
import os

from backend.core.config import settings


metadata = MetaData()

POOL_SIZE = 10
MAX_OVERFLOW = 20
POOL_TIMEOUT = 30
POOL_RECYCLE = 3600

# Seconds a SQLite writer waits on a locked database
SQLITE_BUSY_TIMEOUT = 30

_engine: Optional[Engine] = None
_SessionLocal = None


def get_database_url() -> Optional[str]:
    """TEST_DATABASE_URL wins over DATABASE_URL when set."""
    return os.getenv("TEST_DATABASE_URL") or settings.TEST_DATABASE_URL or settings.DATABASE_URL


def _build_engine(url: str) -> Engine:
    if url.startswith("sqlite"):
        return create_engine(
            url,
            connect_args={"check_same_thread": False, "timeout": SQLITE_BUSY_TIMEOUT},
        )
    return create_engine(
        url,
        poolclass=QueuePool,
        pool_size=POOL_SIZE,
        max_overflow=MAX_OVERFLOW,
        pool_timeout=POOL_TIMEOUT,
        pool_recycle=POOL_RECYCLE,
        pool_pre_ping=True,
    )


def init_engine(database_url: Optional[str] = None) -> Engine:
    """(Re)bind the module to a database. Any previous engine is disposed."""
    global _engine, _SessionLocal

    url = database_url or get_database_url()
    if not url:
        raise ValueError("DATABASE_URL is not configured. Set it in the environment or backend/.env.")

    if _engine is not None:
        _engine.dispose()
    _engine = _build_engine(url)
    _SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=_engine)
    return _engine


def dispose_engine() -> None:
    global _engine, _SessionLocal
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionLocal = None


def get_engine() -> Engine:
    if _engine is None:
        init_engine()
    return _engine


@contextmanager
def get_db_session():
    """
    One unit of work:

        with get_db_session() as session:
            session.execute(...)

    Commits when the block exits cleanly, rolls back and re-raises otherwise.
    """
    if _SessionLocal is None:
        init_engine()
    session = _SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def create_all_tables() -> None:
    """Idempotent: existing tables are left alone."""
    metadata.create_all(bind=get_engine())


def reset_database() -> None:
    """Drop and recreate every table. Tests and local development only."""
    engine = get_engine()
    metadata.drop_all(bind=engine)
    metadata.create_all(bind=engine)


# Users with their entitlement row and personalization profile.
# One row per user; usage counters are only written by the persistence gateway.
users = Table(
    'app_users',
    metadata,
    Column('user_id', String(100), primary_key=True),
    Column('tier', String(50), nullable=False, server_default='free'),
    Column('subscription_status', String(50), nullable=True),  # active, trialing, canceled, past_due
    Column('is_premium', Boolean, nullable=False, server_default='0'),
    Column('free_credits', Integer, nullable=False, server_default='5'),
    Column('used_credits', Integer, nullable=False, server_default='0'),
    Column('draft_generations_used', Integer, nullable=False, server_default='0'),
    Column('pro_generations_used', Integer, nullable=False, server_default='0'),
    Column('period_reset_at', DateTime(timezone=True), nullable=True),
    Column('current_period_end', DateTime(timezone=True), nullable=True),
    # Personalization
    Column('company', Text, nullable=True),
    Column('industry', String(100), nullable=True),
    Column('voice', String(100), nullable=True),
    Column('audience', Text, nullable=True),
    Column('banned_terms', JSON, nullable=True),  # list, or legacy serialized string
    Column('safety', String(50), nullable=True),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Column('updated_at', DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False),
    Index('idx_app_users_tier', 'tier'),
)

# Hook generations (history)
hook_generations = Table(
    'hook_generations',
    metadata,
    Column('id', String(100), primary_key=True),
    Column('user_id', String(100), nullable=False, index=True),
    Column('platform', String(50), nullable=False),
    Column('objective', String(50), nullable=False),
    Column('topic', Text, nullable=False),
    Column('model_class', String(50), nullable=False),
    Column('model_name', String(100), nullable=True),
    Column('hooks', JSON, nullable=False),
    Column('top_variants', JSON, nullable=False),
    Column('strategy_summary', JSON, nullable=True),
    Column('created_at', DateTime(timezone=True), nullable=False),
    # Composite index for history pagination: (user_id, created_at)
    Index('idx_hook_generations_user_created', 'user_id', 'created_at'),
)

# Favorite hooks. generation_id has no foreign key; the snapshot
# outlives the generation it was copied from.
favorite_hooks = Table(
    'favorite_hooks',
    metadata,
    Column('id', String(100), primary_key=True),
    Column('user_id', String(100), nullable=False, index=True),
    Column('generation_id', String(100), nullable=True),
    # sha256 of generation_id + verbal hook
    Column('dedupe_key', String(64), nullable=False),
    Column('hook_snapshot', JSON, nullable=False),
    Column('framework', String(200), nullable=False),
    Column('platform_notes', Text, nullable=False),
    Column('topic', Text, nullable=True),
    Column('platform', String(50), nullable=True),
    Column('created_at', DateTime(timezone=True), nullable=False),
    Index('idx_favorite_hooks_user_created', 'user_id', 'created_at'),
    Index('idx_favorite_hooks_user_generation', 'user_id', 'generation_id'),
    Index('uq_favorite_hooks_user_dedupe', 'user_id', 'dedupe_key', unique=True),
)

# Generations whose usage counter update failed after the record was stored
usage_reconciliation = Table(
    'usage_reconciliation',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('user_id', String(100), nullable=False, index=True),
    Column('generation_id', String(100), nullable=False),
    Column('model_class', String(50), nullable=False),
    Column('error', Text, nullable=True),
    Column('resolved', Boolean, nullable=False, server_default='0'),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Index('idx_usage_reconciliation_resolved', 'resolved'),
)
