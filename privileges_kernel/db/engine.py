"""
Engine and session management.

One process-wide engine is installed by ``init_engine_from_url``; sessions
come from the matching factory.  PostgreSQL is the production backend and
runs at READ COMMITTED, relying on ``SELECT ... FOR UPDATE`` on the request
row to serialize decisions.  SQLite is supported for local tooling and the
test suite: it has no row locks, so the optimistic ``version`` column on
privilege requests is what catches a lost update there.
"""

import atexit
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from privileges_kernel.db.base import Base
from privileges_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

_POSTGRES_POOL_DEFAULTS = {
    "pool_size": 20,
    "max_overflow": 10,
    "pool_pre_ping": True,
    "pool_timeout": 30,
    "pool_recycle": 1800,
}

_engine: Engine | None = None
_factory: sessionmaker[Session] | None = None


def build_engine(database_url: str, echo: bool = False, **pool_options) -> Engine:
    """
    Create an engine for ``database_url`` without installing it globally.

    ``pool_options`` override the PostgreSQL pool defaults and are ignored
    for SQLite, which instead gets foreign keys switched on and explicit
    BEGIN so SAVEPOINTs nest the way they do on PostgreSQL.
    """
    url = make_url(database_url)
    if url.get_backend_name() != "sqlite":
        return create_engine(
            url,
            echo=echo,
            poolclass=QueuePool,
            isolation_level="READ COMMITTED",
            **{**_POSTGRES_POOL_DEFAULTS, **pool_options},
        )

    in_memory = url.database in (None, "", ":memory:")
    engine = create_engine(
        url,
        echo=echo,
        connect_args={"check_same_thread": False},
        **({"poolclass": StaticPool} if in_memory else {}),
    )

    @event.listens_for(engine, "connect")
    def _sqlite_connect(dbapi_connection, _record):
        # Take BEGIN away from pysqlite; the "begin" listener issues it.
        dbapi_connection.isolation_level = None
        dbapi_connection.execute("PRAGMA foreign_keys=ON")

    @event.listens_for(engine, "begin")
    def _sqlite_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return engine


def init_engine_from_url(database_url: str, echo: bool = False, **pool_options) -> Engine:
    """Install the process-wide engine and session factory, replacing any previous one."""
    global _engine, _factory

    reset_engine()
    _engine = build_engine(database_url, echo=echo, **pool_options)
    _factory = sessionmaker(bind=_engine, expire_on_commit=False)

    configure_logging()
    logger.info(
        "engine_initialized",
        extra={"dialect": _engine.dialect.name, "echo": echo},
    )
    return _engine


def _require_factory() -> sessionmaker[Session]:
    if _factory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _factory


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _engine


def get_session() -> Session:
    return _require_factory()()


def get_session_factory() -> sessionmaker[Session]:
    """Factory for callers that need one session per thread."""
    return _require_factory()


@contextmanager
def session_scope() -> Iterator[Session]:
    """
    Run a block in one transaction.

    Commits when the block exits normally.  Any exception rolls the
    transaction back and is re-raised.  The session is always closed.
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
    import privileges_kernel.models  # noqa: F401  registers tables on Base.metadata

    Base.metadata.create_all(get_engine())
    logger.info("tables_created", extra={"table_count": len(Base.metadata.sorted_tables)})


def drop_tables() -> None:
    """Drop every table. Test and tooling use only."""
    import privileges_kernel.models  # noqa: F401

    Base.metadata.drop_all(get_engine())


def reset_engine() -> None:
    global _engine, _factory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _factory = None


def is_postgres() -> bool:
    return _engine is not None and _engine.dialect.name == "postgresql"


atexit.register(reset_engine)
