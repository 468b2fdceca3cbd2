from __future__ import annotations

import logging
from collections.abc import Generator
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool

from campus_api.settings import Settings, get_settings

logger = logging.getLogger("campus.db")


class Base(DeclarativeBase):
    pass


def build_engine(settings: Settings) -> Engine:
    """Create the process-wide engine.

    The demo store is a private in-memory SQLite database shared by every
    session of the process; it disappears when the process exits.
    """
    if settings.use_demo_store:
        return create_engine(
            "sqlite+pysqlite:///:memory:",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(
        settings.database_url,
        pool_size=5,
        max_overflow=10,
        pool_timeout=30,
        pool_recycle=1800,
        pool_pre_ping=True,
    )


engine = build_engine(get_settings())
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


def init_demo_store(bind: Engine | None = None) -> None:
    # Registers every mapped table on Base.metadata.
    import campus_api.models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
    logger.info("demo_store_initialized", extra={"tables": len(Base.metadata.tables)})


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def get_session_factory() -> sessionmaker:
    """Session factory for work that outlives the request session."""
    return SessionLocal


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """Provide a transactional scope around a series of operations."""
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
