"""
Engine and session factory for the billtrack store.

One process-wide engine, initialized from a URL.  PostgreSQL is the
production backend (pooled, READ COMMITTED, row locks through
``SELECT ... FOR UPDATE``).  SQLite is accepted for tests and local runs;
it serializes writers itself and ignores FOR UPDATE.

Batch settlement isolates each item in a SAVEPOINT
(``Session.begin_nested``).  pysqlite issues its own BEGIN and breaks
savepoints, so on SQLite the driver's transaction handling is switched off
and SQLAlchemy emits BEGIN itself.

Services never commit here; the orchestrator owns the transaction boundary.
"""

import atexit

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker

from billtrack_kernel.logging_config import get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None

_POSTGRES_POOL = {
    "pool_size": 10,
    "max_overflow": 5,
    "pool_pre_ping": True,
    "pool_recycle": 1800,
}


def _sqlite_engine(database_url: str, echo: bool) -> Engine:
    engine = create_engine(
        database_url,
        echo=echo,
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(engine, "connect")
    def _driver_autocommit(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return engine


def init_engine_from_url(database_url: str, echo: bool = False, **pool_options) -> Engine:
    """Create the process-wide engine; a second call replaces the first.

    ``pool_options`` override the PostgreSQL pool settings and are ignored
    for SQLite.
    """
    global _engine, _session_factory

    if _engine is not None:
        _engine.dispose()

    backend = make_url(database_url).get_backend_name()
    if backend == "sqlite":
        _engine = _sqlite_engine(database_url, echo)
    else:
        _engine = create_engine(
            database_url,
            echo=echo,
            isolation_level="READ COMMITTED",
            **{**_POSTGRES_POOL, **pool_options},
        )

    # DTOs are built after commit, so loaded rows must stay readable.
    _session_factory = sessionmaker(bind=_engine, expire_on_commit=False)
    logger.info("engine_initialized", extra={"backend": backend, "echo": echo})
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError("billtrack engine not initialized; call init_engine_from_url()")
    return _engine


def get_session() -> Session:
    """A new session on the current engine."""
    if _session_factory is None:
        raise RuntimeError("billtrack engine not initialized; call init_engine_from_url()")
    return _session_factory()


def create_tables() -> None:
    """Create the transaction, payment, settlement-history and roster tables."""
    from billtrack_kernel.db.base import Base
    from billtrack_modules._orm_registry import import_all_orm_models

    import_all_orm_models()
    Base.metadata.create_all(get_engine())
    logger.info("tables_created", extra={
        "tables": sorted(Base.metadata.tables),
    })


def reset_engine() -> None:
    """Dispose the engine and forget the session factory.  Used by tests."""
    global _engine, _session_factory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None


atexit.register(reset_engine)
