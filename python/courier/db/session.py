"""Database sessions and the transaction helper.

get_db() gives each request its own session. Services wrap their writes
in transaction() so a message and its thread update land together or
not at all.
"""

from collections.abc import Generator, Iterator
from contextlib import contextmanager
from functools import lru_cache

from sqlalchemy import Engine
from sqlalchemy.orm import Session, sessionmaker

from courier.db.engine import get_engine


def create_session_factory(engine: Engine | None = None) -> sessionmaker[Session]:
    """Build a session factory bound to `engine` (the shared engine by default).

    Attributes stay loaded after commit, so a service can serialize the
    rows it just wrote without reading them back.
    """
    return sessionmaker(
        bind=engine if engine is not None else get_engine(),
        autoflush=False,
        expire_on_commit=False,
    )


@lru_cache
def get_session_factory() -> sessionmaker[Session]:
    return create_session_factory()


@contextmanager
def session_scope(factory: sessionmaker[Session] | None = None) -> Iterator[Session]:
    """Open a session for work outside a route handler and always close it."""
    db = (factory or get_session_factory())()
    try:
        yield db
    finally:
        db.close()


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency: one session per request, closed afterwards."""
    with session_scope() as db:
        yield db


@contextmanager
def transaction(db: Session) -> Iterator[Session]:
    """Commit when the block succeeds; roll back and re-raise otherwise.

    Usage:
        with transaction(db):
            db.add(message)
    """
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
