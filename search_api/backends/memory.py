"""
In-process memory backend.

Stores items per (server, index) in a module-level dict so that a freshly
resolved backend instance of the same server sees the same data, the way a
remote engine would. Meant for development and tests.
"""

from __future__ import annotations

import threading
from typing import Any, Dict, Iterable, List, Mapping

from ..errors import BackendError
from ..processors.unicode import tokenize
from .base import BackendPlugin
from .interfaces import ResultItem, ResultSet

# server_id -> index_id -> {"fields": {...}, "items": {item_id: {field: value}}}
_STORE: Dict[str, Dict[str, Dict[str, Any]]] = {}
_LOCK = threading.RLock()


def reset_memory_store() -> None:
    """Drop everything held by memory backends (tests)."""
    with _LOCK:
        _STORE.clear()


def item_text(values: Mapping[str, Any], fields: Iterable[str]) -> str:
    parts: List[str] = []
    for name in fields:
        value = values.get(name)
        if value is None:
            continue
        if isinstance(value, (list, tuple)):
            parts.extend(str(v) for v in value)
        else:
            parts.append(str(value))
    return " ".join(parts)


def matches_conditions(values: Mapping[str, Any], conditions: Mapping[str, Any]) -> bool:
    """Exact-match filters; list-valued fields match when any element equals."""
    for name, expected in conditions.items():
        actual = values.get(name)
        if isinstance(actual, (list, tuple)):
            if expected not in actual:
                return False
        elif actual != expected:
            return False
    return True


class MemoryBackend(BackendPlugin):
    plugin_id = "memory"
    label = "Memory"
    config_schema: Dict[str, Any] = {
        "type": "object",
        "properties": {
            "min_chars": {"type": "integer", "minimum": 1, "default": 1},
        },
        "additionalProperties": False,
    }
    features = frozenset({"search_api_conditions"})

    def _server_store(self) -> Dict[str, Dict[str, Any]]:
        return _STORE.setdefault(self.server_id or "", {})

    def _index_store(self, index) -> Dict[str, Any]:
        store = self._server_store().get(index.id)
        if store is None:
            raise BackendError(f"Index '{index.id}' is not present on this server.", backend_id=self.plugin_id)
        return store

    def view_settings(self) -> List[Dict[str, str]]:
        with _LOCK:
            count = sum(len(s["items"]) for s in self._server_store().values())
        return [
            {"label": "Minimum token length", "info": str(self.configuration["min_chars"])},
            {"label": "Stored items", "info": str(count)},
        ]

    def add_index(self, index) -> None:
        with _LOCK:
            self._server_store().setdefault(index.id, {"fields": dict(index.fields or {}), "items": {}})

    def update_index(self, index) -> bool:
        with _LOCK:
            store = self._server_store().get(index.id)
            if store is None:
                self.add_index(index)
                return True
            new_fields = dict(index.fields or {})
            if store["fields"] == new_fields:
                return False
            store["fields"] = new_fields
            store["items"].clear()
            return True

    def remove_index(self, index) -> None:
        index_id = getattr(index, "id", index)
        with _LOCK:
            self._server_store().pop(index_id, None)

    def index_items(self, index, items: Mapping[str, Mapping[str, Any]]) -> List[str]:
        with _LOCK:
            store = self._index_store(index)
            known = store["fields"]
            indexed: List[str] = []
            for item_id, values in items.items():
                if known:
                    values = {k: v for k, v in values.items() if k in known}
                store["items"][str(item_id)] = dict(values)
                indexed.append(str(item_id))
            return indexed

    def delete_items(self, index, ids: Iterable[str]) -> None:
        with _LOCK:
            items = self._index_store(index)["items"]
            for item_id in ids:
                items.pop(str(item_id), None)

    def delete_all_items(self, index=None) -> None:
        with _LOCK:
            if index is None:
                for store in self._server_store().values():
                    store["items"].clear()
            else:
                self._index_store(index)["items"].clear()

    def search(self, index, query) -> ResultSet:
        min_chars = self.configuration["min_chars"]
        keys = tokenize(query.keys or "", min_length=min_chars)
        ignored = [t for t in tokenize(query.keys or "") if len(t) < min_chars]

        with _LOCK:
            store = self._index_store(index)
            text_fields = query.fields or [n for n, t in store["fields"].items() if t == "text"]
            rows = list(store["items"].items())

        hits: List[ResultItem] = []
        for item_id, values in rows:
            if not matches_conditions(values, query.conditions):
                continue
            fields = text_fields or list(values)
            tokens = tokenize(item_text(values, fields))
            score = 0.0
            if keys:
                counts = [tokens.count(k) for k in keys]
                if not all(counts):
                    continue
                score = float(sum(counts))
            hits.append({"id": item_id, "score": score, "fields": dict(values)})

        hits.sort(key=lambda h: (-h["score"], h["id"]))
        page = hits[query.offset: query.offset + query.limit]
        return {"result_count": len(hits), "items": page, "warnings": [], "ignored": ignored}

    def pre_delete(self) -> None:
        with _LOCK:
            _STORE.pop(self.server_id or "", None)
