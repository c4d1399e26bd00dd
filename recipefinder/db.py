from __future__ import annotations

from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.exc import InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker, DeclarativeBase

from .errors import NetworkUnavailable, StorageUnavailable
from .settings import settings


class Base(DeclarativeBase):
    pass


_engine = None
_SessionLocal = None


def init_engine(database_url: str | None = None):
    global _engine, _SessionLocal
    url = database_url or settings.database_url
    _engine = create_engine(url, pool_pre_ping=True)
    _SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=_engine)
    return _engine


def get_engine():
    global _engine
    if _engine is None:
        init_engine()
    return _engine


def SessionLocal():
    global _SessionLocal
    if _SessionLocal is None:
        init_engine()
    return _SessionLocal


def get_db():
    db = SessionLocal()()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    """Create tables directly (dev / single-node setups)."""
    from . import models  # noqa: F401  registers the tables

    Base.metadata.create_all(bind=get_engine())


@contextmanager
def db_errors(what: str):
    """Map SQLAlchemy failures onto the resolver error taxonomy."""
    try:
        yield
    except (OperationalError, InterfaceError) as e:
        raise NetworkUnavailable(f"{what}: {e}") from e
    except SQLAlchemyError as e:
        raise StorageUnavailable(f"{what}: {e}") from e
