"""
Module: pricing_kernel.db.engine
Responsibility: The process-wide SQLAlchemy engine and session factory, and
    session_scope(), the unit of work every writer uses.
Architecture position: Kernel > DB.  create_tables() imports the models
    package; nothing here imports from outer layers.

Invariants enforced:
    - PostgreSQL (psycopg2) runs at READ COMMITTED with a pre-pinged pool.
    - SQLite opens every transaction with BEGIN IMMEDIATE, so per-record
      transactions on worker threads wait on the busy timeout rather than
      failing a read-to-write lock upgrade.
    - session_scope() commits on success and rolls back on any exception.
      This is the one-transaction-per-record boundary of reconciliation.

Failure modes:
    - RuntimeError from get_engine()/get_session_factory() before
      init_engine_from_url().
"""

import atexit
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from pricing_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

# Seconds a SQLite connection waits for the write lock
SQLITE_BUSY_TIMEOUT = 30

_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 10,
    max_overflow: int = 10,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
) -> Engine:
    """
    Create the engine and session factory for ``database_url``.

    Calling it again replaces (and disposes) the previous engine.  Sessions
    are created with ``expire_on_commit=False`` so results returned from a
    session_scope() stay readable after it closes.
    """
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()

    if database_url.startswith("sqlite"):
        engine = create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False, "timeout": SQLITE_BUSY_TIMEOUT},
        )
        _use_immediate_transactions(engine)
    else:
        engine = create_engine(
            database_url,
            echo=echo,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=True,
            pool_timeout=pool_timeout,
            pool_recycle=pool_recycle,
            isolation_level="READ COMMITTED",
        )

    _engine = engine
    _SessionFactory = sessionmaker(bind=engine, expire_on_commit=False)

    from pricing_kernel.db.immutability import register_immutability_listeners

    register_immutability_listeners()

    configure_logging()
    logger.info("engine_initialized", extra={"dialect": engine.dialect.name, "echo": echo})
    return engine


def _use_immediate_transactions(engine: Engine) -> None:
    # pysqlite's own BEGIN handling is disabled so SQLAlchemy emits ours
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    """
    The session factory bound to the current engine.

    The reconciliation runner calls it once per record, on whichever worker
    thread handles that record.
    """
    if _SessionFactory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _SessionFactory


@contextmanager
def session_scope(
    factory: sessionmaker[Session] | None = None,
) -> Generator[Session, None, None]:
    """
    Commit on success, roll back and re-raise on error, always close.

    Usage:
        with session_scope() as session:
            session.add(entity)
    """
    session = (factory or get_session_factory())()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.warning("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def create_tables() -> None:
    from pricing_kernel.db.base import Base
    import pricing_kernel.models  # noqa: F401  (registers tables on Base.metadata)

    Base.metadata.create_all(get_engine())


def drop_tables() -> None:
    """Drop every pricing table.  Tests only."""
    from pricing_kernel.db.base import Base
    import pricing_kernel.models  # noqa: F401

    Base.metadata.drop_all(get_engine())


def reset_engine() -> None:
    """Dispose the engine and forget the session factory."""
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionFactory = None


@atexit.register
def _dispose_on_exit() -> None:
    if _engine is not None:
        _engine.dispose()
