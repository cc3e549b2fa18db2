"""
Module: ledger_kernel.db.engine
Responsibility: SQLAlchemy engine construction, session factory construction,
    and transactional scope utilities.
Architecture position: Kernel > DB.  May import from db/base.py and
    db/immutability.py.  MUST NOT import from services/, selectors/, or outer
    layers (create_tables imports models to populate the metadata).

Invariants enforced:
    - No module-level engine or session singletons: the engine and session
      factory are created by the caller and injected into services and the
      TransactionCoordinator.
    - PostgreSQL runs at READ COMMITTED with explicit row-level locking
      (SELECT ... FOR UPDATE) on inventory layers and sequence counters.
    - SQLite (local runs, test suite) uses a single shared connection for
      in-memory databases so all sessions see the same schema.

Failure modes:
    - OperationalError on connection failure or lock timeout.
    - Connection pool exhaustion if pool_size + max_overflow is exceeded.

Audit relevance:
    All database transactions flow through sessions created from the
    factory built here.  session_scope() ensures atomic commit-or-rollback.
"""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from ledger_kernel.db.immutability import register_immutability_listeners
from ledger_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")


def _configure_sqlite(engine: Engine) -> None:
    """
    Make pysqlite transactional enough for savepoints and enforce foreign keys.

    pysqlite defers BEGIN on its own; the driver's implicit handling is
    disabled and SQLAlchemy emits BEGIN itself.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def create_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
) -> Engine:
    """
    Create a SQLAlchemy engine for the given database URL.

    PostgreSQL URLs get a QueuePool at READ COMMITTED.  SQLite URLs get a
    StaticPool for in-memory databases (one shared connection) and default
    pooling otherwise.  ORM immutability listeners are registered once per
    process.

    Args:
        database_url: SQLAlchemy URL (postgresql+psycopg2://..., sqlite://...).
        echo: If True, log all SQL statements.
        pool_size: Number of connections to keep in the pool (PostgreSQL).
        max_overflow: Max connections beyond pool_size (PostgreSQL).
        pool_pre_ping: Test connections before use.
        pool_timeout: Seconds to wait for a pooled connection.
        pool_recycle: Seconds after which a connection is recycled.

    Returns:
        SQLAlchemy Engine instance.
    """
    if database_url.startswith("sqlite"):
        kwargs: dict = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in database_url or database_url.rstrip("/") == "sqlite:":
            kwargs["poolclass"] = StaticPool
        engine = create_engine(database_url, echo=echo, **kwargs)
        _configure_sqlite(engine)
    else:
        engine = create_engine(
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

    register_immutability_listeners()
    configure_logging()
    logger.info(
        "engine_initialized",
        extra={
            "dialect": engine.dialect.name,
            "echo": echo,
        },
    )
    return engine


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Build the session factory injected into the coordinator and services."""
    return sessionmaker(bind=engine, expire_on_commit=False)


@contextmanager
def session_scope(
    session_factory: sessionmaker[Session],
) -> Generator[Session, None, None]:
    """
    Provide a transactional scope around a series of operations.

    Postconditions: On normal exit, session is committed and closed.
        On exception, session is rolled back and closed.  The exception
        is re-raised to the caller.

    Usage:
        with session_scope(factory) as session:
            session.add(entity)
    """
    session = session_factory()
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


def create_tables(engine: Engine) -> None:
    """Create every table registered on the declarative metadata."""
    from ledger_kernel.db.base import Base
    import ledger_kernel.models  # noqa: F401

    Base.metadata.create_all(engine)


def drop_tables(engine: Engine) -> None:
    """Drop all tables. Use with caution - primarily for testing."""
    from ledger_kernel.db.base import Base
    import ledger_kernel.models  # noqa: F401

    Base.metadata.drop_all(engine)


def is_postgres(bind: Engine | Session) -> bool:
    """Check whether an engine (or a session's bind) is PostgreSQL."""
    if isinstance(bind, Session):
        bind = bind.get_bind()
    return bind.dialect.name == "postgresql"
