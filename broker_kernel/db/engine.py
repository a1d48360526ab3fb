"""
Module: broker_kernel.db.engine
Responsibility: Process-wide engine and session factory for the broker
    kernel, plus schema setup/teardown and a commit-or-rollback scope.
Architecture position: Kernel > DB.  create_tables/drop_tables reach into
    models/ and triggers.py lazily; everything else depends on SQLAlchemy
    alone.

Invariants enforced:
    - PostgreSQL sessions run at READ COMMITTED.  Lifecycle edits rely on
      an explicit ``SELECT ... FOR UPDATE`` for their check-and-apply
      sequence, not on a stricter isolation level.
    - SQLite serializes writers on the whole database.  ``lock_timeout``
      bounds how long a writer waits; past it the driver raises
      OperationalError("database is locked"), reported upstream as a
      transient failure.

Failure modes:
    - RuntimeError from get_engine/get_session/get_session_factory before
      init_engine_from_url().
"""

import atexit
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool

from broker_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None

_NOT_INITIALIZED = "Engine not initialized. Call init_engine_from_url() first."


def _sqlite_engine(url: str, echo: bool, lock_timeout: float) -> Engine:
    # Sessions are handed to worker threads in the concurrency tests.
    return create_engine(
        url,
        echo=echo,
        pool_pre_ping=True,
        connect_args={"timeout": lock_timeout, "check_same_thread": False},
    )


def _postgres_engine(
    url: str,
    echo: bool,
    pool_size: int,
    max_overflow: int,
    pool_timeout: int,
    pool_recycle: int,
) -> Engine:
    return create_engine(
        url,
        echo=echo,
        poolclass=QueuePool,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=True,
        pool_timeout=pool_timeout,
        pool_recycle=pool_recycle,
        isolation_level="READ COMMITTED",
    )


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
    lock_timeout: float = 5.0,
) -> Engine:
    """
    Create the engine and session factory for ``database_url``.

    A second call replaces the first.  Pool settings apply to PostgreSQL;
    ``lock_timeout`` (seconds) applies to SQLite.
    """
    global _engine, _SessionFactory

    dialect = make_url(database_url).get_backend_name()
    if dialect == "sqlite":
        _engine = _sqlite_engine(database_url, echo, lock_timeout)
    else:
        _engine = _postgres_engine(
            database_url, echo, pool_size, max_overflow, pool_timeout, pool_recycle
        )
    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)

    configure_logging()
    logger.info(
        "engine_initialized",
        extra={
            "dialect": dialect,
            "pool_size": None if dialect == "sqlite" else pool_size,
            "lock_timeout": lock_timeout if dialect == "sqlite" else None,
        },
    )
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError(_NOT_INITIALIZED)
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    """Session factory; each thread should open its own session."""
    if _SessionFactory is None:
        raise RuntimeError(_NOT_INITIALIZED)
    return _SessionFactory


def get_session() -> Session:
    return get_session_factory()()


def is_postgres() -> bool:
    return _engine is not None and _engine.dialect.name == "postgresql"


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """
    Commit on normal exit, roll back and re-raise on error, always close.

    Usage::

        with session_scope() as session:
            executor = LifecycleExecutor(session, registry, auto_commit=False)
            executor.apply_edit(...)
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


def create_tables(install_triggers: bool = True) -> None:
    """Create every broker table; on PostgreSQL also install audit triggers."""
    from broker_kernel.db.base import Base
    import broker_kernel.models  # noqa: F401  (registers all tables)

    engine = get_engine()
    Base.metadata.create_all(engine)
    if install_triggers and is_postgres():
        from broker_kernel.db.triggers import install_immutability_triggers

        install_immutability_triggers(engine)


def drop_tables() -> None:
    """Drop every broker table (tests and local resets only)."""
    from broker_kernel.db.base import Base
    import broker_kernel.models  # noqa: F401

    engine = get_engine()
    if is_postgres():
        from broker_kernel.db.triggers import uninstall_immutability_triggers

        uninstall_immutability_triggers(engine)
    Base.metadata.drop_all(engine)


def reset_engine() -> None:
    """Dispose the engine and forget the session factory."""
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionFactory = None


atexit.register(lambda: _engine.dispose() if _engine is not None else None)
