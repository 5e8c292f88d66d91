"""
SQLAlchemy models for the Search API.

- Minimal, portable schema that works on SQLite and Postgres
- Servers and indexes are configuration records keyed by machine name
- Pending backend tasks live in `search_api_task` with a uniqueness constraint
  over (type, server_id, index_id, data)
- `search_api_db_index` / `search_api_db_item` are the storage of the built-in
  "database" backend
"""

from __future__ import annotations

import enum
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Declarative base for the Search API models."""

    repr_cols_num = 4  # pragma: no cover (used in __repr__)

    def __repr__(self) -> str:  # compact, noise-free repr for logs/tests
        values = []
        for col in list(self.__table__.columns)[: self.repr_cols_num]:
            values.append(f"{col.name}={getattr(self, col.name)!r}")
        return f"<{self.__class__.__name__} {' '.join(values)}>"


class TaskType(str, enum.Enum):
    """Operations that can be deferred when a backend call fails."""

    add_index = "add_index"
    update_index = "update_index"
    remove_index = "remove_index"
    delete_items = "delete_items"
    delete_all_items = "delete_all_items"


class SearchServer(Base):
    """
    Configured search server.

    `backend_config` is opaque to everything but the backend plugin named by
    `backend_id`.
    """

    __tablename__ = "search_server"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    backend_id: Mapped[str] = mapped_column(String(64), nullable=False)
    backend_config: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    status: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )


class SearchIndex(Base):
    """
    Search index configuration.

    Notes:
    - `server_id` is a weak reference (no foreign key): an index may be detached
      and a server row may be deleted while stale ids still exist elsewhere.
    - `fields` maps field name -> data type ("text", "string", "integer", ...).
    """

    __tablename__ = "search_index"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    status: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    server_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    fields: Mapped[Dict[str, str]] = mapped_column(JSON, nullable=False, default=dict)
    options: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    read_only: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    needs_reindex: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    reindexed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    __table_args__ = (
        Index("ix_search_index_server_id", "server_id"),
    )

    def reindex(self) -> None:
        """Mark all items of this index for reindexing (caller persists)."""
        if self.read_only:
            return
        self.needs_reindex = True
        self.reindexed_at = _utcnow()

    def snapshot(self) -> Dict[str, Any]:
        """Plain dict of the settings a backend cares about (used as task payload)."""
        return {
            "id": self.id,
            "server_id": self.server_id,
            "status": bool(self.status),
            "fields": dict(self.fields or {}),
            "options": dict(self.options or {}),
        }

    @property
    def label(self) -> str:
        return self.name or self.id


class SearchTask(Base):
    """
    A deferred backend operation awaiting reconciliation.

    `data` holds canonical JSON (sorted keys) so equal payloads compare equal
    under the unique key.
    """

    __tablename__ = "search_api_task"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    server_id: Mapped[str] = mapped_column(String(64), nullable=False)
    index_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    data: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False
    )

    __table_args__ = (
        CheckConstraint(
            "type in ('add_index','update_index','remove_index','delete_items','delete_all_items')",
            name="ck_search_api_task_type",
        ),
        Index("ix_search_api_task_server_index", "server_id", "index_id"),
    )


# NULLs never collide under a plain UNIQUE constraint, so the key coalesces them.
Index(
    "uq_search_api_task",
    SearchTask.type,
    SearchTask.server_id,
    func.coalesce(SearchTask.index_id, ""),
    func.coalesce(SearchTask.data, ""),
    unique=True,
)


class BackendItem(Base):
    """Item storage for the built-in "database" backend."""

    __tablename__ = "search_api_db_item"

    server_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    index_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    item_id: Mapped[str] = mapped_column(String(255), primary_key=True)

    fields: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    text: Mapped[str] = mapped_column(Text, nullable=False, default="")
    indexed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False
    )

    __table_args__ = (
        Index("ix_search_api_db_item_index", "server_id", "index_id"),
    )


class BackendIndex(Base):
    """Index registrations (and their field mapping) of the built-in "database" backend."""

    __tablename__ = "search_api_db_index"

    server_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    index_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    fields: Mapped[Dict[str, str]] = mapped_column(JSON, nullable=False, default=dict)
