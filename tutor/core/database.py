"""
Primary document store backing: engine, sessions and tables.

Lesson artifacts live in `content_documents`, user-keyed collections
(user records, directory, test history) in `user_documents`, sign-in
secrets in `user_credentials` and committed charges in `credit_ledger`.
Documents are JSON blobs that are merged on write, so partial updates
never drop sibling fields.
"""
from typing import Optional
from contextlib import contextmanager
from sqlalchemy import create_engine, MetaData, Table, Column, Integer, String, DateTime, Boolean, JSON, Text, Index, UniqueConstraint, PrimaryKeyConstraint
from sqlalchemy.pool import QueuePool, StaticPool
from sqlalchemy.orm import sessionmaker
from sqlalchemy.sql import func
from sqlalchemy.exc import SQLAlchemyError
import logging
import os

from tutor.core.config import settings

logger = logging.getLogger(__name__)

metadata = MetaData()

POOL_SIZE = 5
MAX_OVERFLOW = 10
POOL_TIMEOUT = 30
POOL_RECYCLE = 1800

_engine = None
_SessionLocal = None


def get_database_url() -> Optional[str]:
    """TEST_DATABASE_URL wins over DATABASE_URL so pytest never touches a real store."""
    return os.getenv("TEST_DATABASE_URL") or settings.DATABASE_URL


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
        # One shared connection so in-memory databases survive across sessions
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


def dispose_engine() -> None:
    """Drop the current engine so the next call re-initializes it."""
    global _engine, _SessionLocal
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionLocal = None


@contextmanager
def get_db_session():
    """One unit of work: commits on exit, rolls back and re-raises on error."""
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
    metadata.create_all(bind=get_engine())


def check_connection() -> bool:
    """Readiness probe for the primary store."""
    try:
        with get_engine().connect() as conn:
            conn.exec_driver_sql("SELECT 1")
        return True
    except (SQLAlchemyError, ValueError) as e:
        logger.warning(f"[database] connection check failed: {e}")
        return False


# Primary document store: lesson content keyed by sanitised composite key
content_documents = Table(
    'content_documents',
    metadata,
    Column('doc_id', String(255), primary_key=True),
    Column('data', JSON, nullable=False),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Column('updated_at', DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False),
)

# Primary document store: user-keyed documents (authoritative record, user list, history)
user_documents = Table(
    'user_documents',
    metadata,
    Column('collection', String(50), nullable=False),
    Column('doc_id', String(255), nullable=False),
    Column('data', JSON, nullable=False),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Column('updated_at', DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False),
    PrimaryKeyConstraint('collection', 'doc_id', name='pk_user_documents'),
    # Index for listing a collection by recency
    Index('idx_user_documents_collection_updated', 'collection', 'updated_at'),
)

# Credentials for the credential service
user_credentials = Table(
    'user_credentials',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('identity', String(255), nullable=False),
    Column('user_id', String(100), nullable=False),
    Column('password_hash', Text, nullable=False),
    Column('is_locked', Boolean, nullable=False, default=False),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    UniqueConstraint('identity', name='uq_user_credentials_identity'),
    UniqueConstraint('user_id', name='uq_user_credentials_user_id'),
)

# Append-only record of committed credit charges
credit_ledger = Table(
    'credit_ledger',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('user_id', String(100), nullable=False),
    Column('amount', Integer, nullable=False),
    Column('reason_code', String(50), nullable=False),
    Column('balance_after', Integer, nullable=False),
    Column('content_key', String(255), nullable=True),
    Column('request_id', String(64), nullable=True),
    Column('created_at', DateTime(timezone=True), nullable=False),
    Index('idx_credit_ledger_user_created', 'user_id', 'created_at'),
)
