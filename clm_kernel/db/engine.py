"""
Process-wide database engine and session factory.

``init_engine_from_url`` is called once at start-up; everything else in the
kernel gets sessions through ``get_session`` / ``get_session_factory`` and
never builds an engine of its own.

Backends:
    - PostgreSQL is the production target.  Sessions run at READ COMMITTED
      and the workflow relies on ``SELECT ... FOR UPDATE`` on the contract
      row and on the version-sequence counter.
    - SQLite is used by the test suite.  pysqlite's implicit transaction
      handling is turned off so that SQLAlchemy emits BEGIN itself and
      ``Session.begin_nested`` savepoints behave.

Calling any accessor before ``init_engine_from_url`` raises RuntimeError.
"""

import atexit
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker

from clm_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None

_NOT_INITIALIZED = "Database engine not initialized; call init_engine_from_url() first"


def _sqlite_engine(url: str, echo: bool, busy_timeout: int) -> Engine:
    engine = create_engine(
        url,
        echo=echo,
        connect_args={"check_same_thread": False, "timeout": busy_timeout},
    )

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return engine


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
    Create the engine and session factory, replacing any previous pair.

    Pool arguments apply to PostgreSQL only; for SQLite ``pool_timeout`` is
    used as the busy timeout on a locked database file.
    """
    global _engine, _SessionFactory

    backend = make_url(database_url).get_backend_name()
    if backend == "sqlite":
        _engine = _sqlite_engine(database_url, echo, pool_timeout)
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
    # DTOs are built after commit, so loaded attributes must survive it
    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)

    configure_logging()
    logger.info(
        "engine_initialized",
        extra={
            "backend": backend,
            "pool_size": None if backend == "sqlite" else pool_size,
            "echo": echo,
        },
    )
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError(_NOT_INITIALIZED)
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    """Factory for callers that need one session per worker or request."""
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
    Unit of work: commit on success, roll back and re-raise on error.

    Services only flush, so this (or an equivalent caller-owned block) is
    where a workflow step becomes durable::

        with session_scope() as session:
            ApprovalWorkflowService(session, clock).approve(...)
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


def _metadata():
    from clm_kernel.db.base import Base
    import clm_kernel.models  # noqa: F401  registers every table

    return Base.metadata


def create_tables() -> None:
    metadata = _metadata()
    metadata.create_all(get_engine())
    logger.info("tables_created", extra={"tables": sorted(metadata.tables)})


def drop_tables() -> None:
    """Drop every kernel table.  Test and demo databases only."""
    _metadata().drop_all(get_engine())


def reset_engine() -> None:
    """Dispose the engine and forget the session factory."""
    global _engine, _SessionFactory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionFactory = None


atexit.register(lambda: _engine.dispose() if _engine is not None else None)
