"""
Module: inventory_kernel.db.engine
Responsibility: SQLAlchemy engine initialization, session factory management,
    and transactional scope utilities.  This is the single point of database
    connection configuration for the kernel.
Architecture position: Kernel > DB.  May import from db/base.py and
    db/immutability.py.  MUST NOT import from services/ or domain/
    (except create_tables, which imports the models so Base.metadata is
    complete).

Invariants enforced:
    - PostgreSQL sessions run at READ COMMITTED with explicit row-level
      locking (FOR UPDATE) on batch and sales-order rows where stronger
      isolation is needed.
    - File-backed SQLite ignores FOR UPDATE, so every transaction opens
      with BEGIN IMMEDIATE: the database write lock is taken before the
      first read, and a second writer waits instead of reading stale stock.
    - SQLite enforces foreign keys via PRAGMA.

Failure modes:
    - RuntimeError if get_engine/get_session/get_session_factory called before
      init_engine_from_url().
    - Connection pool exhaustion if pool_size + max_overflow is exceeded.
    - sqlite3.OperationalError ("database is locked") if a SQLite writer
      waits longer than SQLITE_BUSY_TIMEOUT seconds.

Audit relevance:
    session_scope() is the atomic unit for every kernel operation: a sale's
    order row, line items and stock decrements, or a settlement row and its
    order locks, commit together or not at all.
"""

import atexit
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from inventory_kernel.logging_config import get_logger

logger = get_logger("db.engine")

# Seconds a SQLite connection waits for the write lock.
SQLITE_BUSY_TIMEOUT = 30

# Module-level engine and session factory
_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None


def _is_sqlite_memory(database_url: str) -> bool:
    return ":memory:" in database_url or database_url in ("sqlite://", "sqlite+pysqlite://")


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _disable_pysqlite_begin(dbapi_connection, connection_record):
    # pysqlite defers BEGIN until the first write; the engine emits it instead.
    dbapi_connection.isolation_level = None


def _begin_immediate(conn):
    conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
) -> Engine:
    """
    Create an engine configured for the kernel's isolation requirements.

    Unlike init_engine_from_url(), this does not touch module state, so
    tests and multiple replicas can each own an independent engine.
    """
    if database_url.startswith("sqlite"):
        if _is_sqlite_memory(database_url):
            # One shared connection, or every session sees an empty database.
            engine = create_engine(
                database_url,
                echo=echo,
                poolclass=StaticPool,
                connect_args={"check_same_thread": False},
            )
        else:
            engine = create_engine(
                database_url,
                echo=echo,
                connect_args={
                    "check_same_thread": False,
                    "timeout": SQLITE_BUSY_TIMEOUT,
                },
            )
            event.listen(engine, "connect", _disable_pysqlite_begin)
            event.listen(engine, "begin", _begin_immediate)
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
        return engine

    return create_engine(
        database_url,
        echo=echo,
        poolclass=QueuePool,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=pool_pre_ping,
        pool_timeout=pool_timeout,
        pool_recycle=pool_recycle,
        isolation_level="READ COMMITTED",
    )


def init_engine_from_url(database_url: str, echo: bool = False, **pool_options) -> Engine:
    """
    Initialize the module-level engine and session factory.

    Idempotent: a second call replaces the first.

    Args:
        database_url: SQLAlchemy URL (PostgreSQL in production).
        echo: If True, log all SQL statements.
        **pool_options: Forwarded to build_engine() for non-SQLite URLs.

    Returns:
        SQLAlchemy Engine instance.
    """
    global _engine, _SessionFactory

    _engine = build_engine(database_url, echo=echo, **pool_options)
    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)

    logger.info(
        "engine_initialized",
        extra={"dialect": _engine.dialect.name, "echo": echo},
    )

    return _engine


def get_engine() -> Engine:
    """
    Get the current engine instance.

    Raises:
        RuntimeError: If engine has not been initialized.
    """
    if _engine is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _engine


def get_session() -> Session:
    """
    Get a new session instance.

    Raises:
        RuntimeError: If engine has not been initialized.
    """
    if _SessionFactory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _SessionFactory()


def get_session_factory() -> sessionmaker[Session]:
    """
    Get the session factory for creating sessions.

    Useful for multi-threaded callers (the scheduler, concurrent requests)
    where each thread needs its own session.

    Raises:
        RuntimeError: If engine has not been initialized.
    """
    if _SessionFactory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _SessionFactory


@contextmanager
def session_scope(
    session_factory: sessionmaker[Session] | None = None,
) -> Generator[Session, None, None]:
    """
    Provide a transactional scope around a series of operations.

    Postconditions: On normal exit, session is committed and closed.
        On exception, session is rolled back and closed.  The exception
        is re-raised to the caller.

    Usage:
        with session_scope() as session:
            SalesOrderEngine(session).create(...)
            # Commits on successful exit, rolls back on exception
    """
    session = session_factory() if session_factory is not None else get_session()
    logger.debug("transaction_started")
    try:
        yield session
        session.commit()
        logger.debug("transaction_committed")
    except Exception:
        session.rollback()
        logger.warning("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def create_tables(engine: Engine | None = None) -> None:
    """
    Create all tables and register the ORM immutability listeners.

    All models are imported here so Base.metadata contains every table.
    """
    from inventory_kernel.db.base import Base
    from inventory_kernel.db.immutability import register_immutability_listeners
    import inventory_kernel.models  # noqa: F401

    Base.metadata.create_all(engine or get_engine())
    register_immutability_listeners()


def drop_tables(engine: Engine | None = None) -> None:
    """
    Drop all tables. Use with caution - primarily for testing.
    """
    from inventory_kernel.db.base import Base

    Base.metadata.drop_all(engine or get_engine())


def _atexit_dispose():
    """Dispose the engine on process exit to release all pooled connections."""
    if _engine is not None:
        _engine.dispose()


atexit.register(_atexit_dispose)

