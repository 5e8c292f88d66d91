"""
Database bootstrap for the Search API.

The same database holds the configuration records (servers, indexes), the
pending task queue and the storage of the built-in "database" backend.

- `init_db()` builds the engine from `settings.DATABASE_URL`, brings the
  schema to the Alembic head (or `create_all()` when no alembic.ini is found)
  and probes connectivity
- `get_db()` is the FastAPI session dependency, `session_scope()` the
  equivalent for scripts and background jobs
- `get_sessionmaker()` hands out the bound factory, e.g. to backends that
  open their own short sessions
"""

from __future__ import annotations

import logging
import os
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Optional

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from .config import settings

log = logging.getLogger("db")

_engine: Optional[Engine] = None
_factory: Optional[sessionmaker[Session]] = None
_migrated = False

# Applied to every new SQLite connection.
_SQLITE_PRAGMAS = (
    "PRAGMA journal_mode=WAL;",
    "PRAGMA synchronous=NORMAL;",
    "PRAGMA busy_timeout=30000;",
)


def _is_sqlite(url: str) -> bool:
    return make_url(url).get_backend_name() == "sqlite"


def _build_engine(url: str) -> Engine:
    if not _is_sqlite(url):
        return create_engine(
            url,
            echo=settings.SQL_ECHO,
            pool_pre_ping=settings.DB_POOL_PRE_PING,
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
            future=True,
        )

    database = make_url(url).database
    if database and database != ":memory:":
        Path(database).parent.mkdir(parents=True, exist_ok=True)

    engine = create_engine(
        url,
        echo=settings.SQL_ECHO,
        pool_pre_ping=settings.DB_POOL_PRE_PING,
        connect_args={"check_same_thread": False},
        future=True,
    )

    @event.listens_for(engine, "connect")
    def _apply_pragmas(dbapi_con, _record):  # pragma: no cover
        if not isinstance(dbapi_con, sqlite3.Connection):
            return
        cur = dbapi_con.cursor()
        try:
            for pragma in _SQLITE_PRAGMAS:
                cur.execute(pragma)
        finally:
            cur.close()

    return engine


def _migrate(engine: Engine) -> None:
    """Upgrade to the Alembic head; fall back to create_all() without alembic.ini."""
    global _migrated
    if _migrated:
        return

    ini_path = os.environ.get("ALEMBIC_INI", "alembic.ini")
    if os.path.exists(ini_path):
        from alembic import command
        from alembic.config import Config

        cfg = Config(ini_path)
        cfg.attributes["configure_logger"] = False
        cfg.set_main_option("sqlalchemy.url", engine.url.render_as_string(hide_password=False))
        try:
            command.upgrade(cfg, "head")
        except Exception:
            log.exception("Alembic upgrade failed; creating tables from metadata instead.")
        else:
            log.info("Schema at Alembic head.")
            _migrated = True
            return

    from .models import Base

    try:
        Base.metadata.create_all(bind=engine)
    except SQLAlchemyError:
        log.exception("create_all() failed.")
        raise
    log.info("Schema created from model metadata.")
    _migrated = True


def init_db(url: Optional[str] = None) -> Engine:
    """Create the engine and session factory once, migrate and probe the database."""
    global _engine, _factory

    if _engine is None:
        _engine = _build_engine(url or settings.DATABASE_URL)
        _factory = sessionmaker(
            bind=_engine,
            class_=Session,
            autoflush=False,
            expire_on_commit=False,
            future=True,
        )
        log.info("Engine created for %s.", _engine.url.render_as_string(hide_password=True))

    _migrate(_engine)

    try:
        with _engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError:
        log.exception("Database connectivity check failed.")
        raise
    return _engine


def close_db() -> None:
    """Dispose the engine; the next `init_db()` starts from scratch."""
    global _engine, _factory, _migrated
    engine, _engine, _factory, _migrated = _engine, None, None, False
    if engine is not None:
        engine.dispose()


def get_sessionmaker() -> sessionmaker[Session]:
    if _factory is None:
        init_db()
    return _factory  # type: ignore[return-value]


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency yielding one session per request."""
    session = get_sessionmaker()()
    try:
        yield session
    finally:
        session.close()


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """Session for scripts and jobs: commits on success, rolls back on error."""
    session = get_sessionmaker()()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
