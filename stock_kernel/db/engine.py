"""
Engine, session factory and transaction scope for the stock kernel.

Backends:
    PostgreSQL  Production.  READ COMMITTED plus SELECT ... FOR UPDATE on
                inventory, order and sequence rows.  Lock waits are bounded
                per transaction with ``SET LOCAL lock_timeout``.
    SQLite      Local runs and the test suite.  There are no row locks, so
                every transaction opens with BEGIN IMMEDIATE and writers
                queue on the database lock for at most the busy timeout.

A lock wait that runs out surfaces as OperationalError ("database is
locked", SQLSTATE 55P03) and FulfillmentService turns it into a retry.

Only ``create_tables``/``drop_tables`` reach into the models package, to
populate the metadata.
"""

import atexit
import time
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool

from stock_kernel.config import KernelSettings
from stock_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None

TRIGGER_INSTALL_ATTEMPTS = 3


def _use_immediate_transactions(engine: Engine) -> None:
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # pysqlite must not issue its own deferred BEGIN.
        dbapi_connection.isolation_level = None
        dbapi_connection.execute("PRAGMA foreign_keys=ON")

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
    lock_timeout_ms: int = 5000,
) -> Engine:
    """
    Create an engine for ``database_url`` without touching module state.

    ``lock_timeout_ms`` becomes the SQLite busy timeout; PostgreSQL applies
    it per transaction (see ``apply_lock_timeout``).
    """
    url = make_url(database_url)
    pool_args = dict(
        poolclass=QueuePool,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_timeout=pool_timeout,
    )

    if url.get_backend_name() != "sqlite":
        return create_engine(
            url,
            echo=echo,
            pool_pre_ping=pool_pre_ping,
            pool_recycle=pool_recycle,
            isolation_level="READ COMMITTED",
            **pool_args,
        )

    engine = create_engine(
        url,
        echo=echo,
        connect_args={"timeout": lock_timeout_ms / 1000, "check_same_thread": False},
        **pool_args,
    )
    _use_immediate_transactions(engine)
    return engine


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_timeout: int = 30,
    lock_timeout_ms: int = 5000,
) -> Engine:
    """
    Build the process-wide engine and session factory.

    A second call replaces the first.  Sessions keep their attributes after
    commit so views can be built from them once the transaction is over.
    """
    global _engine, _SessionFactory

    _engine = build_engine(
        database_url,
        echo=echo,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_timeout=pool_timeout,
        lock_timeout_ms=lock_timeout_ms,
    )
    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)

    configure_logging()
    logger.info(
        "engine_initialized",
        extra={
            "dialect": _engine.dialect.name,
            "pool_size": pool_size,
            "max_overflow": max_overflow,
            "lock_timeout_ms": lock_timeout_ms,
        },
    )
    return _engine


def init_engine(settings: KernelSettings) -> Engine:
    return init_engine_from_url(
        settings.database_url,
        echo=settings.echo_sql,
        pool_size=settings.pool_size,
        max_overflow=settings.max_overflow,
        pool_timeout=settings.pool_timeout,
        lock_timeout_ms=settings.lock_timeout_ms,
    )


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError("Engine not initialized. Call init_engine() first.")
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    """The shared factory.  Each thread must open its own session from it."""
    if _SessionFactory is None:
        raise RuntimeError("Engine not initialized. Call init_engine() first.")
    return _SessionFactory


def get_session() -> Session:
    return get_session_factory()()


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """
    Commit on normal exit, roll back and re-raise on error, always close.

        with session_scope() as session:
            session.add(branch)
    """
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.warning("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def apply_lock_timeout(session: Session, lock_timeout_ms: int) -> None:
    """
    Bound lock waits for the current PostgreSQL transaction.

    No-op on SQLite, whose busy timeout is fixed per connection.  Zero keeps
    the server default (wait forever).
    """
    if session.get_bind().dialect.name != "postgresql" or lock_timeout_ms <= 0:
        return
    # SET takes no bind parameters.
    session.execute(text(f"SET LOCAL lock_timeout = '{int(lock_timeout_ms)}ms'"))


def create_tables(install_triggers: bool = True) -> None:
    """
    Create the schema and, on PostgreSQL, the append-only triggers.

    Trigger DDL can deadlock with a concurrent test worker doing the same;
    it is retried a few times before the error propagates.
    """
    from stock_kernel.db.base import Base
    import stock_kernel.models  # noqa: F401

    engine = get_engine()
    Base.metadata.create_all(engine)

    if not install_triggers or engine.dialect.name != "postgresql":
        return

    from stock_kernel.db.triggers import install_immutability_triggers

    for attempt in range(1, TRIGGER_INSTALL_ATTEMPTS + 1):
        try:
            install_immutability_triggers(engine)
            return
        except OperationalError as exc:
            if "deadlock" not in str(exc).lower() or attempt == TRIGGER_INSTALL_ATTEMPTS:
                raise
            logger.warning("trigger_install_deadlock_retry", extra={"attempt": attempt})
            engine.dispose()
            time.sleep(0.5 * attempt)


def drop_tables() -> None:
    """Drop the schema (and triggers). Tests and seed resets only."""
    from stock_kernel.db.base import Base
    import stock_kernel.models  # noqa: F401

    engine = get_engine()
    if engine.dialect.name == "postgresql":
        from stock_kernel.db.triggers import uninstall_immutability_triggers

        uninstall_immutability_triggers(engine)
    Base.metadata.drop_all(engine)


def reset_engine() -> None:
    """Dispose the engine and forget the factory."""
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionFactory = None


@atexit.register
def _dispose_on_exit():
    if _engine is not None:
        _engine.dispose()
