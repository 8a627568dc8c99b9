"""
Module: rental_kernel.db.engine
Responsibility: Process-wide engine and session factory for the rental
    kernel, plus schema creation and a commit-or-rollback session scope.
Architecture position: Kernel > DB.  Imports models only inside
    create_tables() so the metadata is complete.

Invariants enforced:
    - PostgreSQL (psycopg2) runs at READ COMMITTED; the lifecycle service
      serializes writers with SELECT ... FOR UPDATE on rentals, tools and
      memberships.
    - SQLite ignores FOR UPDATE, so every transaction opens with
      BEGIN IMMEDIATE and writers queue on the database file lock.  The
      version_id columns on rentals and tools still catch a lost race.
    - Sessions do not expire on commit: services hand back DTOs built from
      the rows they just committed.

Failure modes:
    - RuntimeError when the engine is used before init_engine_from_url().
"""

import atexit
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool

from rental_kernel.logging_config import get_logger

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
    sqlite_busy_timeout: float = 15.0,
) -> Engine:
    """
    Create the engine for ``database_url`` and install it process-wide.

    Pool settings apply to PostgreSQL; ``sqlite_busy_timeout`` is how long a
    SQLite writer waits for the file lock before failing.
    """
    global _engine, _SessionFactory

    url = make_url(database_url)
    if url.get_backend_name() == "sqlite":
        engine = create_engine(
            url,
            echo=echo,
            connect_args={"check_same_thread": False, "timeout": sqlite_busy_timeout},
        )
        _begin_immediately(engine)
    else:
        engine = create_engine(
            url,
            echo=echo,
            poolclass=QueuePool,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=pool_pre_ping,
            pool_timeout=pool_timeout,
            pool_recycle=pool_recycle,
            isolation_level="READ COMMITTED",
        )

    _engine = engine
    _SessionFactory = sessionmaker(bind=engine, expire_on_commit=False)
    logger.info(
        "engine_initialized",
        extra={
            "dialect": engine.dialect.name,
            "database": url.database,
            "pool_size": pool_size if engine.dialect.name != "sqlite" else None,
        },
    )
    return engine


def _begin_immediately(engine: Engine) -> None:
    """Make every SQLite transaction take the write lock up front.

    pysqlite would otherwise defer BEGIN until the first write, letting two
    units of work read the same row before either writes.
    """

    @event.listens_for(engine, "connect")
    def _no_implicit_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    """Factory for callers that need one session per thread (scheduler, race tests)."""
    if _SessionFactory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _SessionFactory


def get_session() -> Session:
    return get_session_factory()()


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """
    Commit on normal exit, roll back and re-raise on error, always close.

    Usage:
        with session_scope() as session:
            LedgerService(session).reconcile_balance(org_id, user_id)
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


def create_tables() -> None:
    """Create every rental-kernel table that does not exist yet."""
    from rental_kernel.db.base import Base
    from rental_kernel.models import import_all_models

    import_all_models()
    Base.metadata.create_all(get_engine())
    logger.info("tables_created", extra={"tables": sorted(Base.metadata.tables)})


def drop_tables() -> None:
    """Drop every table (tests against PostgreSQL)."""
    from rental_kernel.db.base import Base
    from rental_kernel.models import import_all_models

    import_all_models()
    Base.metadata.drop_all(get_engine())


def reset_engine() -> None:
    """Dispose the engine and forget the session factory."""
    global _engine, _SessionFactory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionFactory = None


def is_postgres() -> bool:
    return _engine is not None and _engine.dialect.name == "postgresql"


@atexit.register
def _dispose_on_exit() -> None:
    if _engine is not None:
        _engine.dispose()
