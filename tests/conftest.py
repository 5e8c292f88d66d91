"""
Global pytest configuration for Search API tests.

Goals
-----
- Keep tests fully local (one SQLite file per test under tmp_path).
- Never start the reconciliation scheduler.
- Give every test a fresh plugin registry whose "database" backend writes
  through the test engine instead of the process-wide one.
- Reset the process-local memory backend between tests.
"""

from __future__ import annotations

import logging
import os
from functools import partial
from typing import Generator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session as OrmSession
from sqlalchemy.orm import sessionmaker

# ---------------------------------------------------------------------
# Environment defaults (must be set BEFORE importing application code)
# ---------------------------------------------------------------------
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///./ci.sqlite")
os.environ.setdefault("RECONCILE_SCHED_ENABLED", "false")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("LOG_JSON", "false")
os.environ.setdefault("API_TOKEN", "")

from search_api.backends import PluginRegistry, register_builtin_backends  # noqa: E402
from search_api.backends.database import DatabaseBackend  # noqa: E402
from search_api.backends.memory import reset_memory_store  # noqa: E402
from search_api.models import Base  # noqa: E402
from search_api.services.indexes import IndexManager  # noqa: E402
from search_api.services.server import ServerManager  # noqa: E402

logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


@pytest.fixture
def engine(tmp_path):
    eng = create_engine(
        f"sqlite+pysqlite:///{tmp_path / 'search_api.sqlite'}",
        future=True,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def Session(engine):
    return sessionmaker(bind=engine, autoflush=False, future=True, class_=OrmSession, expire_on_commit=False)


@pytest.fixture
def db(Session) -> Generator[OrmSession, None, None]:
    session = Session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def plugins(Session) -> PluginRegistry:
    registry = register_builtin_backends(PluginRegistry())
    registry.register(
        "database",
        partial(DatabaseBackend, session_factory=Session),
        label=DatabaseBackend.label,
        features=DatabaseBackend.features,
    )
    return registry


@pytest.fixture
def servers(db, plugins) -> ServerManager:
    return ServerManager(db, plugins=plugins)


@pytest.fixture
def indexes(servers) -> IndexManager:
    return IndexManager(servers)


@pytest.fixture(autouse=True)
def _reset_memory_store():
    reset_memory_store()
    yield
    reset_memory_store()


@pytest.fixture
def client(Session, plugins):
    """
    TestClient with the DB session and plugin registry overridden. The app's
    lifespan is not entered, so no database bootstrap or scheduler runs.
    """
    from fastapi.testclient import TestClient

    from search_api.app import app
    from search_api.db import get_db
    from search_api.routes.deps import get_plugins

    def _get_db():
        session = Session()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_plugins] = lambda: plugins
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
