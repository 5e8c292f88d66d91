"""
Index lookup and lifecycle.

- IndexRegistry: read-only lookup of index records, most importantly "which
  indexes belong to server X" (used for status cascades and server deletion)
- IndexManager: create / move / re-field / delete indexes, telling the
  owning servers about each change
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from ..errors import NotFoundError
from ..models import SearchIndex
from .store import ConfigStore

if TYPE_CHECKING:  # pragma: no cover
    from .server import ServerManager

log = logging.getLogger(__name__)


class IndexRegistry:
    """Read-only view over stored indexes."""

    def __init__(self, store: ConfigStore[SearchIndex]) -> None:
        self.store = store

    def load(self, index_id: str) -> Optional[SearchIndex]:
        return self.store.load(index_id)

    def require(self, index_id: str) -> SearchIndex:
        index = self.load(index_id)
        if index is None:
            raise NotFoundError("index", index_id)
        return index

    def load_multiple(self, ids: List[str]) -> List[SearchIndex]:
        return self.store.load_multiple(ids)

    def load_all(self) -> List[SearchIndex]:
        return self.store.load_all()

    def ids_for_server(self, server_id: Optional[str]) -> List[str]:
        if server_id is None:
            return []
        return self.store.query_by_field("server_id", server_id)

    def for_server(self, server_id: Optional[str]) -> List[SearchIndex]:
        return self.load_multiple(self.ids_for_server(server_id))


class IndexManager:
    """Index lifecycle operations that involve the owning server."""

    def __init__(self, servers: "ServerManager") -> None:
        self.servers = servers
        self.registry = servers.indexes
        self.store = servers.indexes.store
        self.tasks = servers.tasks

    def create(
        self,
        *,
        id: str,
        name: str,
        server_id: Optional[str] = None,
        fields: Optional[Dict[str, str]] = None,
        options: Optional[Dict[str, Any]] = None,
        description: str = "",
        read_only: bool = False,
        status: bool = True,
    ) -> SearchIndex:
        if self.registry.load(id) is not None:
            raise ValueError(f"Index '{id}' already exists")
        server = self.servers.require(server_id) if server_id else None

        index = SearchIndex(
            id=id,
            name=name,
            description=description,
            server_id=server_id,
            fields=dict(fields or {}),
            options=dict(options or {}),
            read_only=read_only,
            # An index can only be enabled on an enabled server.
            status=bool(status and server is not None and server.status),
        )
        self.store.save(index)
        if server is not None:
            server.add_index(index)
        return index

    def set_server(self, index: SearchIndex, server_id: Optional[str]) -> SearchIndex:
        """Move an index to another server (or detach it with None)."""
        if index.server_id == server_id:
            return index
        new_server = self.servers.require(server_id) if server_id else None

        if index.server_id:
            old_server = self.servers.load(index.server_id)
            if old_server is not None:
                old_server.remove_index(index)

        index.server_id = server_id
        if new_server is None or not new_server.status:
            index.status = False
        self.store.save(index)

        if new_server is not None:
            new_server.add_index(index)
        return index

    def update_fields(self, index: SearchIndex, fields: Dict[str, str]) -> bool:
        """Change the field mapping; returns False when the server update was deferred."""
        original = index.snapshot()
        index.fields = dict(fields)
        self.store.save(index)
        if not index.server_id:
            return True
        server = self.servers.require(index.server_id)
        return server.update_index(index, original=original)

    def set_status(self, index: SearchIndex, enabled: bool) -> SearchIndex:
        if enabled:
            server = self.servers.load(index.server_id) if index.server_id else None
            if server is None or not server.status:
                raise ValueError(f"Index '{index.id}' cannot be enabled without an enabled server")
        index.status = enabled
        self.store.save(index)
        return index

    def disable(self, index: SearchIndex) -> SearchIndex:
        return self.set_status(index, False)

    def delete(self, index: SearchIndex) -> None:
        """
        Delete an index: drop every pending task that targets it, remove it
        from its server, then delete the record. A failed removal leaves a
        single remove_index task so the backend still gets cleaned up.
        """
        self.tasks.delete_for_index(index.id)
        if index.server_id:
            server = self.servers.load(index.server_id)
            if server is not None:
                server.remove_index(index)
        self.store.delete(index.id)
        log.info("Deleted index %s.", index.id, extra={"index": index.id})
