"""
Storage - Database.

============================================================
RESPONSIBILITY
============================================================
Manages database connections, sessions and transactions for
the ledger.

- Connection pooling (QueuePool, StaticPool for in-memory SQLite)
- Session factory
- One transaction per ledger operation
- Lock wait limit on PostgreSQL

============================================================
DESIGN PRINCIPLES
============================================================
- Explicit transaction management
- Commit only if the whole operation succeeded
- Hard failures on persistence errors
- No module-level engine; callers own their engine

============================================================
"""

import logging
from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import create_engine, event, inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError
from sqlalchemy.pool import QueuePool, StaticPool

from storage.models import Base
from storage.repositories.base import is_deadlock, is_lock_timeout
from storage.repositories.exceptions import (
    ConcurrentModificationError,
    LockTimeoutError,
)

logger = logging.getLogger(__name__)

# Execution option selecting the SQLite BEGIN flavour (DEFERRED, IMMEDIATE, EXCLUSIVE)
SQLITE_BEGIN_MODE = "ledger_sqlite_begin"


# =============================================================
# DATABASE ENGINE
# =============================================================

def _is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def _is_in_memory_sqlite(url: str) -> bool:
    return _is_sqlite(url) and (":memory:" in url or url.rstrip("/") in ("sqlite:", "sqlite+pysqlite:"))


def create_database_engine(
    url: str,
    pool_size: int = 10,
    max_overflow: int = 20,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
    echo: bool = False,
    busy_timeout: float = 30.0,
) -> Engine:
    """
    Create SQLAlchemy engine with connection pooling.

    Args:
        url: SQLAlchemy database URL
        pool_size: Number of connections to keep in pool
        max_overflow: Max connections beyond pool_size
        pool_timeout: Seconds to wait for available connection
        pool_recycle: Recycle connections after N seconds
        echo: Log SQL statements
        busy_timeout: Seconds a SQLite writer waits for the database lock

    Returns:
        SQLAlchemy Engine
    """
    logger.info(f"Creating database engine for: {url.split('@')[-1]}")

    if _is_in_memory_sqlite(url):
        # One shared connection, otherwise every checkout sees an empty database.
        engine = create_engine(
            url,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
            echo=echo,
        )
    elif _is_sqlite(url):
        engine = create_engine(
            url,
            connect_args={"check_same_thread": False, "timeout": busy_timeout},
            echo=echo,
        )
    else:
        engine = create_engine(
            url,
            poolclass=QueuePool,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_timeout=pool_timeout,
            pool_recycle=pool_recycle,
            pool_pre_ping=True,
            echo=echo,
        )

    if _is_sqlite(url):
        @event.listens_for(engine, "connect")
        def on_connect(dbapi_conn, connection_record):
            # pysqlite's implicit transactions break SAVEPOINT; SQLAlchemy emits BEGIN instead.
            dbapi_conn.isolation_level = None
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()
            logger.debug("SQLite connection established")

        @event.listens_for(engine, "begin")
        def on_begin(conn):
            mode = conn.get_execution_options().get(SQLITE_BEGIN_MODE)
            conn.exec_driver_sql(f"BEGIN {mode}" if mode else "BEGIN")

    @event.listens_for(engine, "checkout")
    def on_checkout(dbapi_conn, connection_record, connection_proxy):
        logger.debug("Database connection checked out from pool")

    return engine


def create_session_factory(engine: Engine) -> sessionmaker:
    """Session factory used for every ledger transaction."""
    return sessionmaker(
        bind=engine,
        autoflush=False,
        expire_on_commit=False,
    )


# =============================================================
# TRANSACTION MANAGEMENT
# =============================================================

@contextmanager
def transaction_scope(
    session_factory: sessionmaker,
    lock_timeout_ms: Optional[int] = None,
) -> Generator[Session, None, None]:
    """
    Context manager for one ledger transaction.

    Commits only if no exception occurs.
    Rolls back on ANY exception and re-raises it.

    Usage:
        with transaction_scope(factory, lock_timeout_ms=5000) as session:
            balances = BalanceRepository(session)
            ...
            # Commits automatically at end

    On SQLite the transaction starts with BEGIN IMMEDIATE, so
    concurrent writers run one after another.

    Raises:
        ConcurrentModificationError: version check or deadlock at commit
        LockTimeoutError: lock wait gave up at commit
        DatabasePersistenceError: any other commit failure
    """
    session = session_factory()
    try:
        dialect = session.get_bind().dialect.name
        if dialect == "sqlite":
            # Writers take the database lock up front and queue on the busy timeout.
            try:
                session.connection(execution_options={SQLITE_BEGIN_MODE: "IMMEDIATE"})
            except OperationalError as e:
                if is_lock_timeout(e):
                    raise LockTimeoutError(
                        repository_name="transaction_scope",
                        operation="begin",
                        original_error=str(e),
                    ) from e
                raise
        elif lock_timeout_ms and dialect == "postgresql":
            session.execute(text(f"SET LOCAL lock_timeout = '{int(lock_timeout_ms)}ms'"))
        yield session
        try:
            session.commit()
        except StaleDataError as e:
            raise ConcurrentModificationError(
                repository_name="transaction_scope",
                operation="commit",
                original_error=str(e),
            ) from e
        except OperationalError as e:
            if is_deadlock(e):
                raise ConcurrentModificationError(
                    repository_name="transaction_scope",
                    operation="commit",
                    original_error=str(e),
                ) from e
            if is_lock_timeout(e):
                raise LockTimeoutError(
                    repository_name="transaction_scope",
                    operation="commit",
                    original_error=str(e),
                ) from e
            raise DatabasePersistenceError(f"Commit failed: {e}") from e
        except SQLAlchemyError as e:
            raise DatabasePersistenceError(f"Commit failed: {e}") from e
        logger.debug("Database transaction committed successfully")
    except Exception:
        session.rollback()
        logger.debug("Database transaction rolled back")
        raise
    finally:
        session.close()


@contextmanager
def read_scope(session_factory: sessionmaker) -> Generator[Session, None, None]:
    """
    Context manager for read-only work; always rolls back.

    Rows loaded here are expired on exit; copy what you need
    before leaving the block.
    """
    session = session_factory()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


# =============================================================
# DATABASE INITIALIZATION
# =============================================================

REQUIRED_TABLES = [
    "account_balances",
    "trade_records",
    "portfolios",
    "iso_currencies",
    "bank_accounts",
    "account_transactions",
    "bank_account_transactions",
    "watch_list",
]


def verify_database_connection(engine: Engine) -> bool:
    """
    Verify database connection is working.

    Raises:
        DatabaseConnectionError if connection fails
    """
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1")).fetchone()
            logger.info("Database connection verified successfully")
            return True
    except OperationalError as e:
        logger.error(f"Database connection failed: {e}")
        raise DatabaseConnectionError(f"Cannot connect to database: {e}") from e


def create_all_tables(engine: Engine) -> None:
    """
    Create all ledger tables that do not exist yet.

    Raises:
        DatabaseInitializationError if table creation fails
    """
    try:
        logger.info("Creating database tables...")
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables created successfully")
    except SQLAlchemyError as e:
        logger.error(f"Failed to create database tables: {e}")
        raise DatabaseInitializationError(f"Table creation failed: {e}") from e


def drop_all_tables(engine: Engine) -> None:
    """Drop every ledger table. Test and bootstrap use only."""
    Base.metadata.drop_all(bind=engine)
    logger.warning("Database tables dropped")


def verify_required_tables(engine: Engine) -> bool:
    """
    Verify all required tables exist.

    Returns:
        True if every table is present
    """
    existing = set(inspect(engine).get_table_names())
    all_present = True
    for table in REQUIRED_TABLES:
        if table in existing:
            logger.info(f"  [OK] Table verified: {table}")
        else:
            logger.warning(f"  [!!] Table missing: {table}")
            all_present = False
    return all_present


def initialize_database(engine: Engine) -> None:
    """
    Full database initialization sequence.

    1. Verify connection
    2. Create tables if not exist
    3. Verify tables exist
    """
    logger.info("=" * 60)
    logger.info("INITIALIZING LEDGER DATABASE")
    logger.info("=" * 60)

    try:
        verify_database_connection(engine)
        create_all_tables(engine)
        if not verify_required_tables(engine):
            raise DatabaseInitializationError("Required ledger tables are missing")

        logger.info("=" * 60)
        logger.info("DATABASE INITIALIZATION COMPLETE")
        logger.info("=" * 60)

    except Exception as e:
        logger.critical(f"DATABASE INITIALIZATION FAILED: {e}")
        raise


# =============================================================
# CUSTOM EXCEPTIONS
# =============================================================


class DatabasePersistenceError(Exception):
    """Raised when database persistence fails."""
    pass


class DatabaseConnectionError(DatabasePersistenceError):
    """Raised when database connection fails."""
    pass


class DatabaseInitializationError(DatabasePersistenceError):
    """Raised when database initialization fails."""
    pass


# =============================================================
# EXPORTS
# =============================================================

__all__ = [
    # Engine & Session
    "create_database_engine",
    "create_session_factory",
    "transaction_scope",
    "read_scope",
    # Initialization
    "initialize_database",
    "verify_database_connection",
    "verify_required_tables",
    "create_all_tables",
    "drop_all_tables",
    "REQUIRED_TABLES",
    # Exceptions
    "DatabasePersistenceError",
    "DatabaseConnectionError",
    "DatabaseInitializationError",
]
