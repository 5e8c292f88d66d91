"""
Replay of pending backend tasks.

`Reconciler.execute_pending()` walks the queue server by server, oldest task
first, and re-issues each operation against the server's backend:

- success: the task is deleted
- BackendError: the task stays and the rest of that server's queue is
  skipped (order matters, e.g. add_index before delete_items)
- the index (or server) no longer exists: the task is stale and deleted
- InvalidBackendError: the server's queue is skipped until its backend is fixed

remove_index tasks are replayed with just the index id, since the index
record is normally gone by then.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from ..errors import BackendError, InvalidBackendError, NotFoundError
from ..models import SearchTask, TaskType
from .server import Server, ServerManager

log = logging.getLogger(__name__)


@dataclass
class ReconcileReport:
    executed: int = 0
    stale: int = 0
    failed: int = 0
    remaining: int = 0

    @property
    def complete(self) -> bool:
        return self.remaining == 0

    def as_dict(self) -> dict:
        return {
            "complete": self.complete,
            "executed": self.executed,
            "stale": self.stale,
            "failed": self.failed,
            "remaining": self.remaining,
        }


class Reconciler:
    def __init__(self, servers: ServerManager) -> None:
        self.servers = servers
        self.tasks = servers.tasks
        self.indexes = servers.indexes

    def execute_pending(self, server_id: Optional[str] = None, index_id: Optional[str] = None) -> ReconcileReport:
        """Replay pending tasks, optionally limited to one server and/or index."""
        report = ReconcileReport()
        server_ids = [server_id] if server_id is not None else self.tasks.server_ids()

        for sid in server_ids:
            pending = self.tasks.dequeue_all(sid, index_id)
            if not pending:
                continue

            server = self.servers.load(sid)
            if server is None:
                for task in pending:
                    self.tasks.delete(task.id)
                    report.stale += 1
                log.warning("Dropped %d task(s) of deleted server.", len(pending), extra={"server": sid})
                continue
            if not server.status:
                log.debug("Server disabled; leaving its tasks queued.", extra={"server": sid})
                continue

            for task in pending:
                extra = {"server": sid, "index": task.index_id, "operation": task.type, "task_id": task.id}
                try:
                    self._replay(server, task)
                except NotFoundError as exc:
                    self.tasks.delete(task.id)
                    report.stale += 1
                    log.warning("Dropped stale task: %s", exc, extra=extra)
                    continue
                except InvalidBackendError as exc:
                    report.failed += 1
                    log.error("Cannot replay tasks, backend unavailable: %s", exc, extra=extra)
                    break
                except BackendError as exc:
                    report.failed += 1
                    log.warning("Task replay failed, will retry later: %s", exc, extra=extra)
                    break
                self.tasks.delete(task.id)
                report.executed += 1
                log.info("Replayed %s task %s.", task.type, task.id, extra=extra)

        report.remaining = self.tasks.count(server_id, index_id)
        return report

    def _replay(self, server: Server, task: SearchTask) -> None:
        backend = server.get_backend()
        kind = TaskType(task.type)

        if kind is TaskType.remove_index:
            backend.remove_index(task.index_id)
            return

        index = None
        if task.index_id is not None:
            index = self.indexes.load(task.index_id)
            if index is None or index.server_id != server.id:
                raise NotFoundError("index", task.index_id)

        if kind is TaskType.add_index:
            backend.add_index(index)
        elif kind is TaskType.update_index:
            # Replays against the index as it is now; the stored snapshot is informational.
            if backend.update_index(index):
                index.reindex()
                self.indexes.store.save(index)
        elif kind is TaskType.delete_items:
            if index is None:
                raise NotFoundError("index", task.index_id)
            backend.delete_items(index, self.tasks.payload(task) or [])
        elif kind is TaskType.delete_all_items:
            backend.delete_all_items(index)
