"""
Module: fieldwork_kernel.db.engine
Responsibility: SQLAlchemy engine initialization, session factory management,
    and transactional scope utilities.  This is the single point of database
    connection configuration for the engine.
Architecture position: Kernel > DB.  May import from db/base.py and
    db/immutability.py.  create_tables() imports models so that
    Base.metadata sees every table.

Invariants enforced:
    - Session isolation level is READ COMMITTED on PostgreSQL, with explicit
      row-level locking (FOR UPDATE) on the document row for every write.
    - session_scope() is the transaction boundary: commit on success,
      rollback on any exception.  Services only flush.
    - ORM immutability listeners are registered whenever an engine is
      initialized or tables are created.

Failure modes:
    - RuntimeError if get_engine/get_session/get_session_factory called before
      init_engine_from_url().
"""

import atexit
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from fieldwork_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
) -> Engine:
    """
    Initialize the SQLAlchemy engine from a database URL.

    PostgreSQL gets a sized QueuePool and READ COMMITTED isolation.  SQLite
    (tests, local tooling) uses the dialect's default pool.

    Args:
        database_url: SQLAlchemy connection URL.
        echo: If True, log all SQL statements.
        pool_size: Number of connections to keep in the pool.
        max_overflow: Max connections beyond pool_size.
        pool_pre_ping: If True, test connections before use.
        pool_timeout: Seconds to wait for a pooled connection.
        pool_recycle: Seconds after which a connection is recycled.

    Returns:
        SQLAlchemy Engine instance.
    """
    global _engine, _SessionFactory

    if database_url.startswith("sqlite"):
        _engine = create_engine(database_url, echo=echo)
        _enable_sqlite_transactions(_engine)
    else:
        _engine = create_engine(
            database_url,
            echo=echo,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=pool_pre_ping,
            pool_timeout=pool_timeout,
            pool_recycle=pool_recycle,
            isolation_level="READ COMMITTED",
        )

    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)

    from fieldwork_kernel.db.immutability import register_immutability_listeners

    register_immutability_listeners()

    configure_logging()
    logger.info(
        "engine_initialized",
        extra={
            "dialect": _engine.dialect.name,
            "echo": echo,
        },
    )

    return _engine


def _enable_sqlite_transactions(engine: Engine) -> None:
    """
    Have SQLAlchemy emit BEGIN itself on SQLite.

    pysqlite defers BEGIN until the first DML statement, which breaks
    SAVEPOINT (SequenceService counter creation) and lets a read and the
    write that depends on it land in different transactions.
    """

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")


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
    Get the session factory, one session per thread or request.

    Raises:
        RuntimeError: If engine has not been initialized.
    """
    if _SessionFactory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _SessionFactory


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """
    Provide a transactional scope around a series of operations.

    On normal exit the session is committed and closed.  On exception the
    session is rolled back and closed, and the exception is re-raised.

    Usage:
        with session_scope() as session:
            recorder = PaymentRecorder(session, clock, config)
            recorder.record_payment(ctx, invoice_id, amount=Decimal("100.00"))
    """
    session = get_session()
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


def create_tables() -> None:
    """
    Create all engine tables and register immutability listeners.

    Raises:
        RuntimeError: If engine is not initialized.
    """
    from fieldwork_kernel.db.base import Base
    from fieldwork_kernel.db.immutability import register_immutability_listeners
    import fieldwork_kernel.models  # noqa: F401
    import fieldwork_kernel.services.sequence_service  # noqa: F401

    engine = get_engine()
    Base.metadata.create_all(engine)
    register_immutability_listeners()


def reset_engine() -> None:
    """Reset the engine and session factory.  Useful for test cleanup."""
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()
        _engine = None

    _SessionFactory = None


def _atexit_dispose():
    """Dispose the engine on process exit to release all pooled connections."""
    if _engine is not None:
        _engine.dispose()


atexit.register(_atexit_dispose)
