"""
Module: consolidation_kernel.db.engine
Responsibility: SQLAlchemy engine initialization, session factory
    management, and the transactional scope helper.
Architecture position: Kernel > DB.  May import from db/base.py only,
    except create_tables() which imports the module ORM registry.
Invariants enforced:
    - session_scope() commits on normal exit and rolls back on exception.
    - In-memory SQLite URLs share a single connection (StaticPool) so every
      session sees the same database.
Failure modes:
    - RuntimeError if get_engine/get_session/get_session_factory is called
      before init_engine_from_url().
"""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from consolidation_kernel.logging_config import get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None


def init_engine_from_url(database_url: str, echo: bool = False) -> Engine:
    """
    Initialize the module-level engine and session factory.

    Calling it again replaces the previous engine.
    """
    global _engine, _SessionFactory

    url = make_url(database_url)
    kwargs: dict = {"echo": echo}
    if url.get_backend_name() == "sqlite":
        kwargs["connect_args"] = {"check_same_thread": False}
        if url.database in (None, "", ":memory:"):
            kwargs["poolclass"] = StaticPool
    else:
        kwargs["pool_pre_ping"] = True

    _engine = create_engine(url, **kwargs)
    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)

    logger.info(
        "engine_initialized",
        extra={"dialect": url.get_backend_name(), "echo": echo},
    )
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _engine


def get_session() -> Session:
    if _SessionFactory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _SessionFactory()


def get_session_factory() -> sessionmaker[Session]:
    """Session factory, for callers that need one session per thread."""
    if _SessionFactory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _SessionFactory


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """
    Provide a transactional scope around a series of operations.

    Usage:
        with session_scope() as session:
            session.add(entity)
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
    """Create every table registered by the module ORM packages."""
    from consolidation_kernel.db.base import Base
    from consolidation_modules._orm_registry import import_all_orm_models

    import_all_orm_models()
    Base.metadata.create_all(get_engine())


def drop_tables() -> None:
    """Drop all tables. Primarily for testing."""
    from consolidation_kernel.db.base import Base

    Base.metadata.drop_all(get_engine())


def reset_engine() -> None:
    """Dispose the engine and clear module state."""
    global _engine, _SessionFactory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionFactory = None
