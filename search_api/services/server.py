"""
Server dispatcher.

A `Server` wraps a stored `SearchServer` record and forwards index/item
operations to the backend plugin named by the record.

Failure handling for structural operations (add/update/remove index, delete
items): if the backend raises `BackendError`, the error is logged, a task is
queued for later replay and the call returns False. Nothing is raised, so
the caller's configuration change still goes through. Read-path operations
(search, index_items, capability checks) propagate backend errors.

The backend instance is resolved lazily, cached per Server, and dropped
whenever the backend id or configuration changes.
"""

from __future__ import annotations

import copy
import logging
import threading
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Union

from sqlalchemy import inspect as sa_inspect
from sqlalchemy.orm import Session

from ..backends import PluginRegistry, get_plugin_registry
from ..backends.interfaces import ResultSet, SearchBackend
from ..errors import BackendError, InvalidBackendError, NotFoundError
from ..models import SearchIndex, SearchServer, TaskType
from .indexes import IndexRegistry
from .store import ConfigStore, index_store, server_store
from .tasks import TaskQueue

log = logging.getLogger(__name__)

IndexRef = Union[SearchIndex, str]


def _index_id(index: Optional[IndexRef]) -> Optional[str]:
    if index is None:
        return None
    return index if isinstance(index, str) else index.id


class Server:
    """Dispatcher facade over one server record and its backend plugin."""

    def __init__(
        self,
        record: SearchServer,
        *,
        plugins: PluginRegistry,
        store: ConfigStore[SearchServer],
        tasks: TaskQueue,
        indexes: IndexRegistry,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.record = record
        self._plugins = plugins
        self._store = store
        self._tasks = tasks
        self._indexes = indexes
        self._log = logger or log
        self._backend: Optional[SearchBackend] = None
        self._lock = threading.Lock()

    # ---- record attributes ----

    @property
    def id(self) -> str:
        return self.record.id

    @property
    def name(self) -> str:
        return self.record.name

    @property
    def label(self) -> str:
        return self.record.name or self.record.id

    @property
    def status(self) -> bool:
        return bool(self.record.status)

    @property
    def backend_id(self) -> str:
        return self.record.backend_id

    @property
    def backend_config(self) -> Dict[str, Any]:
        return copy.deepcopy(self.record.backend_config or {})

    def set_status(self, enabled: bool) -> "Server":
        self.record.status = bool(enabled)
        return self

    # ---- backend resolution ----

    def has_valid_backend(self) -> bool:
        return self._plugins.get_definition(self.record.backend_id) is not None

    def get_backend(self) -> SearchBackend:
        """
        Return the backend instance, creating it on first use.

        Raises:
            InvalidBackendError: the plugin id is not registered or the
                plugin could not be built from the stored configuration.
        """
        with self._lock:
            if self._backend is None:
                self._backend = self._plugins.create_instance(
                    self.record.backend_id,
                    self.record.backend_config or {},
                    server_id=self.record.id,
                )
            return self._backend

    def invalidate(self) -> None:
        with self._lock:
            self._backend = None

    def set_backend(self, backend_id: str, config: Optional[Mapping[str, Any]] = None) -> "Server":
        self.record.backend_id = backend_id
        self.record.backend_config = dict(config or {})
        self.invalidate()
        return self

    def set_backend_config(self, config: Mapping[str, Any]) -> "Server":
        self.record.backend_config = dict(config)
        self.invalidate()
        return self

    def clone(self, new_id: str, *, name: Optional[str] = None) -> "Server":
        """A new, unsaved server with this server's settings and its own backend instance."""
        return self._rewrap(self._detached_record(new_id, name or self.record.name))

    def __copy__(self) -> "Server":
        # Same id, but its own record: changes to the copy never reach this server.
        return self._rewrap(self._detached_record(self.record.id, self.record.name))

    def _detached_record(self, ident: str, name: str) -> SearchServer:
        return SearchServer(
            id=ident,
            name=name,
            description=self.record.description or "",
            backend_id=self.record.backend_id,
            backend_config=self.backend_config,
            status=self.status,
        )

    def _rewrap(self, record: SearchServer) -> "Server":
        return Server(
            record,
            plugins=self._plugins,
            store=self._store,
            tasks=self._tasks,
            indexes=self._indexes,
            logger=self._log,
        )

    # ---- configuration form passthrough ----

    def configuration_schema(self) -> Dict[str, Any]:
        return self.get_backend().configuration_schema()

    def validate_configuration(self, values: Mapping[str, Any]) -> Dict[str, Any]:
        return self.get_backend().validate_configuration(values)

    def submit_configuration(self, values: Mapping[str, Any]) -> "Server":
        backend = self.get_backend()
        backend.submit_configuration(values)
        self.record.backend_config = backend.get_configuration()
        return self

    # ---- capabilities ----

    def view_settings(self) -> List[Dict[str, str]]:
        return self.get_backend().view_settings()

    def supports_feature(self, feature: str) -> bool:
        return self.get_backend().supports_feature(feature)

    def supports_datatype(self, datatype: str) -> bool:
        return self.get_backend().supports_datatype(datatype)

    def get_indexes(self) -> List[SearchIndex]:
        return self._indexes.for_server(self.record.id)

    # ---- dispatch with task fallback ----

    def _guarded(
        self,
        operation: TaskType,
        index: Optional[IndexRef],
        call: Callable[[SearchBackend], Any],
        payload: Any = None,
    ) -> bool:
        backend = self.get_backend()
        try:
            call(backend)
        except BackendError as exc:
            index_id = _index_id(index)
            self._log.error(
                "%s while running %s for index %s on server %s: %s",
                type(exc).__name__,
                operation.value,
                index_id,
                self.label,
                exc,
                extra={"server": self.record.id, "index": index_id, "operation": operation.value},
            )
            self._tasks.enqueue(operation, self.record.id, index_id, payload)
            return False
        return True

    def add_index(self, index: SearchIndex) -> bool:
        return self._guarded(TaskType.add_index, index, lambda b: b.add_index(index))

    def update_index(self, index: SearchIndex, original: Optional[Union[SearchIndex, Dict[str, Any]]] = None) -> bool:
        """
        Tell the backend about changed index settings. When the backend
        reports that stored data no longer matches, the index is marked for
        reindexing (once).
        """
        outcome: Dict[str, bool] = {}

        def call(backend: SearchBackend) -> None:
            outcome["reindex"] = bool(backend.update_index(index))

        if isinstance(original, SearchIndex):
            original = original.snapshot()
        ok = self._guarded(TaskType.update_index, index, call, payload=original)
        if ok and outcome.get("reindex"):
            index.reindex()
            self._indexes.store.save(index)
            self._log.info(
                "Index %s marked for reindexing.",
                index.id,
                extra={"server": self.record.id, "index": index.id, "operation": TaskType.update_index.value},
            )
        return ok

    def remove_index(self, index: IndexRef) -> bool:
        # Whatever is still queued for this index is moot once it is removed.
        self._tasks.delete_for_index(_index_id(index), self.record.id)
        return self._guarded(TaskType.remove_index, index, lambda b: b.remove_index(index))

    def delete_items(self, index: SearchIndex, ids: Iterable[str]) -> bool:
        ids = [str(i) for i in ids]
        return self._guarded(TaskType.delete_items, index, lambda b: b.delete_items(index, ids), payload=ids)

    def delete_all_items(self, index: Optional[SearchIndex] = None) -> bool:
        return self._guarded(TaskType.delete_all_items, index, lambda b: b.delete_all_items(index))

    # ---- read path (errors propagate) ----

    def index_items(self, index: SearchIndex, items: Mapping[str, Mapping[str, Any]]) -> List[str]:
        if index.read_only:
            return []
        return list(self.get_backend().index_items(index, items))

    def search(self, index: SearchIndex, query) -> ResultSet:
        return self.get_backend().search(index, query)

    # ---- persistence ----

    def save(self) -> "Server":
        """
        Persist the server.

        - disabling a server disables all of its indexes
        - the backend configuration is taken from the live backend instance
          when the plugin is valid, otherwise cleared
        - backend post_insert / post_update hooks run after the commit; a
          post_update that asks for it marks every index for reindexing
        """
        is_new = sa_inspect(self.record).transient
        if not self.status:
            for index in self.get_indexes():
                if index.status:
                    index.status = False
                    self._indexes.store.save(index, commit=False)

        valid = self.has_valid_backend()
        if valid:
            self.record.backend_config = self.get_backend().get_configuration()
        else:
            self._log.warning(
                "Server %s uses unknown backend %s; configuration cleared.",
                self.record.id,
                self.record.backend_id,
                extra={"server": self.record.id, "backend": self.record.backend_id},
            )
            self.record.backend_config = {}
        self._store.save(self.record)

        if not valid:
            return self
        backend = self.get_backend()
        if is_new:
            backend.post_insert()
        elif backend.post_update():
            for index in self.get_indexes():
                index.reindex()
                self._indexes.store.save(index, commit=False)
            self._store.session.commit()
        return self

    def delete(self) -> None:
        """
        Delete the server: detach and disable its indexes, let the backend
        release its resources, drop all of its pending tasks and remove the
        record.
        """
        for index in self.get_indexes():
            index.server_id = None
            index.status = False
            self._indexes.store.save(index, commit=False)
        # Commit before the backend runs: it may write through its own connection.
        self._store.session.commit()

        if self.has_valid_backend():
            try:
                self.get_backend().pre_delete()
            except BackendError as exc:
                self._log.error(
                    "Backend of server %s failed to release its data: %s",
                    self.record.id,
                    exc,
                    extra={"server": self.record.id, "operation": "pre_delete"},
                )

        self._tasks.delete_for_server(self.record.id, commit=False)
        self._store.delete(self.record.id)
        self.invalidate()
        self._log.info("Deleted server %s.", self.record.id, extra={"server": self.record.id})

    def __repr__(self) -> str:
        return f"<Server id={self.record.id!r} backend_id={self.record.backend_id!r} status={self.status!r}>"


class ServerManager:
    """Builds `Server` dispatchers bound to one database session."""

    def __init__(
        self,
        session: Session,
        *,
        plugins: Optional[PluginRegistry] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.session = session
        self.plugins = plugins or get_plugin_registry()
        self.store = server_store(session)
        self.tasks = TaskQueue(session)
        self.indexes = IndexRegistry(index_store(session))
        self._log = logger

    def wrap(self, record: SearchServer) -> Server:
        return Server(
            record,
            plugins=self.plugins,
            store=self.store,
            tasks=self.tasks,
            indexes=self.indexes,
            logger=self._log,
        )

    def load(self, server_id: str) -> Optional[Server]:
        record = self.store.load(server_id)
        return self.wrap(record) if record is not None else None

    def require(self, server_id: str) -> Server:
        server = self.load(server_id)
        if server is None:
            raise NotFoundError("server", server_id)
        return server

    def load_all(self) -> List[Server]:
        return [self.wrap(r) for r in self.store.load_all()]

    def create(
        self,
        *,
        id: str,
        name: str,
        backend_id: str,
        backend_config: Optional[Mapping[str, Any]] = None,
        description: str = "",
        status: bool = True,
    ) -> Server:
        """
        Create and save a server.

        Raises:
            ValueError: a server with this id exists.
            InvalidBackendError: unknown backend or invalid configuration.
        """
        if self.store.load(id) is not None:
            raise ValueError(f"Server '{id}' already exists")
        if backend_id not in self.plugins:
            raise InvalidBackendError(f"No backend registered with id '{backend_id}'.", backend_id=backend_id)
        record = SearchServer(
            id=id,
            name=name,
            description=description,
            backend_id=backend_id,
            backend_config=dict(backend_config or {}),
            status=status,
        )
        server = self.wrap(record)
        server.get_backend()
        return server.save()

    def delete(self, server_id: str) -> bool:
        server = self.load(server_id)
        if server is None:
            return False
        server.delete()
        return True
