"""
dealflow.db

Engine, session and error mapping for the pipeline store.

- get_engine()      lazily built, shared SQLAlchemy Engine
- get_session()     context-managed Session (commit / rollback / close)
- translate_db_error()  maps SQLAlchemy failures onto the pipeline taxonomy

DATABASE_URL is read on first use, not at import, so pure modules and tests
can import this package without a database.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.exc import InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from dealflow import config
from dealflow.errors import FatalPersistenceError, PersistenceError

_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker] = None


def _normalize_database_url(raw: str) -> str:
    """
    Hosted Postgres providers hand out URLs SQLAlchemy 2 rejects; rewrite them.

    postgres:// becomes postgresql://, and the psycopg3 scheme is pinned
    to psycopg2, the driver this project installs.
    """
    url = (raw or "").strip()

    if url.startswith("postgres://"):
        url = "postgresql://" + url[len("postgres://") :]

    if url.startswith("postgresql+psycopg://"):
        url = "postgresql+psycopg2://" + url[len("postgresql+psycopg://") :]

    return url


def get_engine() -> Engine:
    global _engine
    if _engine is None:
        _engine = create_engine(
            _normalize_database_url(config.database_url()),
            future=True,
            pool_pre_ping=True,
        )
    return _engine


def _get_session_factory() -> sessionmaker:
    global _session_factory
    if _session_factory is None:
        _session_factory = sessionmaker(bind=get_engine(), autoflush=False, autocommit=False, future=True)
    return _session_factory


@contextmanager
def get_session() -> Iterator[Session]:
    """
    Context-managed DB session.

        with get_session() as s:
            ...
    """
    session: Session = _get_session_factory()()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def translate_db_error(exc: SQLAlchemyError, *, what: str) -> Exception:
    """
    Connection-level failures mean the store is gone: FatalPersistenceError.
    Everything else is a row-level PersistenceError the caller may count.
    """
    msg = f"{what}: {type(exc).__name__}: {str(exc)[:300]}"
    if isinstance(exc, (OperationalError, InterfaceError)):
        return FatalPersistenceError(msg)
    return PersistenceError(msg)
