"""
Database backend: stores items in the service's own SQL database.

- Items live in `search_api_db_item`, one row per (server, index, item)
- Fulltext text is normalized with the Unicode tokenizer at index time
- Keyword matching uses portable LIKE prefiltering, then exact token counts
  in Python (same trade-off as a LIKE fallback for engines without trigram
  support). Conditions are applied in Python to keep SQL portable.

Any SQLAlchemy failure surfaces as BackendError so the server dispatcher can
queue a retry.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Callable, Dict, Generator, Iterable, List, Mapping, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..errors import BackendError
from ..models import BackendIndex, BackendItem
from ..processors.unicode import tokenize
from .base import BackendPlugin
from .interfaces import ResultItem, ResultSet
from .memory import item_text, matches_conditions

log = logging.getLogger(__name__)


def _escape_like(s: str) -> str:
    """
    Escape SQL LIKE wildcards so they are treated literally.
    Order matters: escape backslash first, then % and _.
    """
    return s.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _default_session_factory() -> Session:
    from ..db import get_sessionmaker  # local import: db pulls settings at import time

    return get_sessionmaker()()


class DatabaseBackend(BackendPlugin):
    plugin_id = "database"
    label = "Database"
    config_schema: Dict[str, Any] = {
        "type": "object",
        "properties": {
            "min_chars": {"type": "integer", "minimum": 1, "default": 1},
            "max_candidates": {"type": "integer", "minimum": 1, "default": 5000},
        },
        "additionalProperties": False,
    }
    features = frozenset({"search_api_conditions"})

    def __init__(
        self,
        config: Optional[Mapping[str, Any]] = None,
        *,
        server_id: Optional[str] = None,
        session_factory: Optional[Callable[[], Session]] = None,
    ) -> None:
        super().__init__(config, server_id=server_id)
        self._session_factory = session_factory or _default_session_factory

    @contextmanager
    def _session(self, operation: str) -> Generator[Session, None, None]:
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            raise BackendError(f"{operation} failed: {exc}", backend_id=self.plugin_id) from exc
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def _registration(self, session: Session, index_id: str) -> Optional[BackendIndex]:
        return session.get(BackendIndex, (self.server_id, index_id))

    def _require_registration(self, session: Session, index_id: str) -> BackendIndex:
        reg = self._registration(session, index_id)
        if reg is None:
            raise BackendError(f"Index '{index_id}' is not present on this server.", backend_id=self.plugin_id)
        return reg

    def _delete_rows(self, session: Session, index_id: Optional[str]) -> int:
        stmt = delete(BackendItem).where(BackendItem.server_id == self.server_id)
        if index_id is not None:
            stmt = stmt.where(BackendItem.index_id == index_id)
        return session.execute(stmt).rowcount or 0

    def view_settings(self) -> List[Dict[str, str]]:
        with self._session("view_settings") as session:
            count = session.scalar(
                select(func.count()).select_from(BackendItem).where(BackendItem.server_id == self.server_id)
            )
        return [
            {"label": "Minimum token length", "info": str(self.configuration["min_chars"])},
            {"label": "Stored items", "info": str(count or 0)},
        ]

    def add_index(self, index) -> None:
        with self._session("add_index") as session:
            if self._registration(session, index.id) is None:
                session.add(BackendIndex(server_id=self.server_id, index_id=index.id, fields=dict(index.fields or {})))

    def update_index(self, index) -> bool:
        with self._session("update_index") as session:
            reg = self._registration(session, index.id)
            new_fields = dict(index.fields or {})
            if reg is None:
                session.add(BackendIndex(server_id=self.server_id, index_id=index.id, fields=new_fields))
                return True
            if dict(reg.fields or {}) == new_fields:
                return False
            reg.fields = new_fields
            self._delete_rows(session, index.id)
            return True

    def remove_index(self, index) -> None:
        index_id = getattr(index, "id", index)
        with self._session("remove_index") as session:
            self._delete_rows(session, index_id)
            reg = self._registration(session, index_id)
            if reg is not None:
                session.delete(reg)

    def index_items(self, index, items: Mapping[str, Mapping[str, Any]]) -> List[str]:
        indexed: List[str] = []
        with self._session("index_items") as session:
            known = dict(self._require_registration(session, index.id).fields or {})
            text_fields = [n for n, t in known.items() if t == "text"]
            for item_id, values in items.items():
                if known:
                    values = {k: v for k, v in values.items() if k in known}
                text = " ".join(tokenize(item_text(values, text_fields or list(values))))
                session.merge(
                    BackendItem(
                        server_id=self.server_id,
                        index_id=index.id,
                        item_id=str(item_id),
                        fields=dict(values),
                        text=text,
                    )
                )
                indexed.append(str(item_id))
        log.debug("Indexed %d item(s) into %s/%s", len(indexed), self.server_id, index.id)
        return indexed

    def delete_items(self, index, ids: Iterable[str]) -> None:
        ids = [str(i) for i in ids]
        if not ids:
            return
        with self._session("delete_items") as session:
            session.execute(
                delete(BackendItem).where(
                    BackendItem.server_id == self.server_id,
                    BackendItem.index_id == index.id,
                    BackendItem.item_id.in_(ids),
                )
            )

    def delete_all_items(self, index=None) -> None:
        with self._session("delete_all_items") as session:
            self._delete_rows(session, None if index is None else index.id)

    def search(self, index, query) -> ResultSet:
        min_chars = self.configuration["min_chars"]
        keys = tokenize(query.keys or "", min_length=min_chars)
        ignored = [t for t in tokenize(query.keys or "") if len(t) < min_chars]

        with self._session("search") as session:
            known = dict(self._require_registration(session, index.id).fields or {})
            stmt = select(BackendItem).where(
                BackendItem.server_id == self.server_id,
                BackendItem.index_id == index.id,
            )
            for key in keys:
                stmt = stmt.where(BackendItem.text.like(f"%{_escape_like(key)}%", escape="\\"))
            rows = session.scalars(stmt.limit(self.configuration["max_candidates"])).all()
            candidates = [(r.item_id, dict(r.fields or {}), r.text) for r in rows]

        hits: List[ResultItem] = []
        for item_id, values, text in candidates:
            if not matches_conditions(values, query.conditions):
                continue
            score = 0.0
            if keys:
                if query.fields:
                    tokens = tokenize(item_text(values, query.fields))
                else:
                    tokens = text.split()
                counts = [tokens.count(k) for k in keys]
                if not all(counts):
                    continue
                score = float(sum(counts))
            hits.append({"id": item_id, "score": score, "fields": values})

        hits.sort(key=lambda h: (-h["score"], h["id"]))
        warnings: List[str] = []
        unknown = [f for f in query.fields if known and f not in known]
        if unknown:
            warnings.append(f"Unknown fulltext field(s): {', '.join(unknown)}")
        page = hits[query.offset: query.offset + query.limit]
        return {"result_count": len(hits), "items": page, "warnings": warnings, "ignored": ignored}

    def pre_delete(self) -> None:
        with self._session("pre_delete") as session:
            self._delete_rows(session, None)
            session.execute(delete(BackendIndex).where(BackendIndex.server_id == self.server_id))
