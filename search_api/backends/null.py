"""
Null backend: accepts every operation and stores nothing.

With `{"fail": true}` every index/item operation raises BackendError, which
makes it handy for exercising the pending-task path without a real engine.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping

from ..errors import BackendError
from .base import BackendPlugin


class NullBackend(BackendPlugin):
    plugin_id = "null_backend"
    label = "Null backend"
    config_schema: Dict[str, Any] = {
        "type": "object",
        "properties": {
            "fail": {"type": "boolean", "default": False},
            "message": {"type": "string", "default": "Null backend configured to fail."},
        },
        "additionalProperties": False,
    }

    def _check(self, operation: str) -> None:
        if self.configuration.get("fail"):
            raise BackendError(f"{operation}: {self.configuration['message']}", backend_id=self.plugin_id)

    def view_settings(self) -> List[Dict[str, str]]:
        return [{"label": "Failure injection", "info": "on" if self.configuration.get("fail") else "off"}]

    def add_index(self, index) -> None:
        self._check("add_index")

    def update_index(self, index) -> bool:
        self._check("update_index")
        return False

    def remove_index(self, index) -> None:
        self._check("remove_index")

    def index_items(self, index, items: Mapping[str, Mapping[str, Any]]) -> List[str]:
        self._check("index_items")
        return list(items)

    def delete_items(self, index, ids: Iterable[str]) -> None:
        self._check("delete_items")

    def delete_all_items(self, index=None) -> None:
        self._check("delete_all_items")

    def search(self, index, query):
        self._check("search")
        return {"result_count": 0, "items": [], "warnings": [], "ignored": []}
