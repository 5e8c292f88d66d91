"""
Durable queue of pending backend operations.

Each task records an operation that failed against a server's backend so the
reconciliation pass can replay it later.

Key behaviors:
  * Idempotency: (type, server_id, index_id, data) is unique; enqueueing an
    identical task returns the existing row (insert-or-ignore).
  * Ordering: tasks come back in insertion order, oldest first.
  * Cleanup: deleting a task that is already gone is a no-op, so concurrent
    reconciliation passes don't trip over each other.
"""

from __future__ import annotations

import json
import logging
from typing import Any, List, Optional, Union

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..errors import TaskConflictError
from ..models import SearchTask, TaskType

log = logging.getLogger(__name__)


def encode_payload(payload: Any) -> Optional[str]:
    """Canonical JSON so equal payloads compare equal under the unique key."""
    if payload is None:
        return None
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


def decode_payload(data: Optional[str]) -> Any:
    if data is None:
        return None
    return json.loads(data)


def _eq_or_null(column, value):
    return column.is_(None) if value is None else column == value


class TaskQueue:
    """Task queue bound to a database session. Writes commit unless `commit=False`."""

    def __init__(self, session: Session) -> None:
        self.session = session

    # ---- writes ----

    def enqueue(
        self,
        task_type: Union[TaskType, str],
        server_id: str,
        index_id: Optional[str] = None,
        payload: Any = None,
        *,
        commit: bool = True,
    ) -> Optional[SearchTask]:
        """
        Queue a task unless an identical one exists; return the stored task.

        Returns None only when a concurrent insert of the same task won and the
        task was consumed before it could be read back.
        """
        kind = TaskType(task_type).value
        data = encode_payload(payload)

        existing = self._find(kind, server_id, index_id, data)
        if existing is not None:
            log.debug(
                "Task already queued (id=%s); skipping.",
                existing.id,
                extra={"server": server_id, "index": index_id, "operation": kind},
            )
            return existing

        try:
            task = self._insert(kind, server_id, index_id, data)
        except TaskConflictError:
            return self._find(kind, server_id, index_id, data)

        if commit:
            self.session.commit()
        log.info(
            "Queued %s task %s.",
            kind,
            task.id,
            extra={"server": server_id, "index": index_id, "operation": kind, "task_id": task.id},
        )
        return task

    def _insert(self, kind: str, server_id: str, index_id: Optional[str], data: Optional[str]) -> SearchTask:
        task = SearchTask(type=kind, server_id=server_id, index_id=index_id, data=data)
        try:
            with self.session.begin_nested():
                self.session.add(task)
        except IntegrityError as exc:
            raise TaskConflictError(f"{kind} task for {server_id}/{index_id} already queued") from exc
        return task

    def delete(self, task_id: int, *, commit: bool = True) -> bool:
        removed = self.session.execute(delete(SearchTask).where(SearchTask.id == task_id)).rowcount or 0
        if commit:
            self.session.commit()
        return removed > 0

    def delete_for_index(self, index_id: str, server_id: Optional[str] = None, *, commit: bool = True) -> int:
        stmt = delete(SearchTask).where(SearchTask.index_id == index_id)
        if server_id is not None:
            stmt = stmt.where(SearchTask.server_id == server_id)
        removed = self.session.execute(stmt).rowcount or 0
        if commit:
            self.session.commit()
        if removed:
            log.info("Removed %d pending task(s).", removed, extra={"server": server_id, "index": index_id})
        return removed

    def delete_for_server(self, server_id: str, *, commit: bool = True) -> int:
        removed = self.session.execute(delete(SearchTask).where(SearchTask.server_id == server_id)).rowcount or 0
        if commit:
            self.session.commit()
        if removed:
            log.info("Removed %d pending task(s).", removed, extra={"server": server_id})
        return removed

    # ---- reads ----

    def dequeue_all(self, server_id: Optional[str] = None, index_id: Optional[str] = None) -> List[SearchTask]:
        """Matching tasks, oldest first. Nothing is removed."""
        stmt = select(SearchTask)
        if server_id is not None:
            stmt = stmt.where(SearchTask.server_id == server_id)
        if index_id is not None:
            stmt = stmt.where(SearchTask.index_id == index_id)
        return list(self.session.scalars(stmt.order_by(SearchTask.id)).all())

    def get(self, task_id: int) -> Optional[SearchTask]:
        return self.session.get(SearchTask, task_id)

    def count(self, server_id: Optional[str] = None, index_id: Optional[str] = None) -> int:
        stmt = select(func.count()).select_from(SearchTask)
        if server_id is not None:
            stmt = stmt.where(SearchTask.server_id == server_id)
        if index_id is not None:
            stmt = stmt.where(SearchTask.index_id == index_id)
        return int(self.session.scalar(stmt) or 0)

    def server_ids(self) -> List[str]:
        """Servers with pending tasks, in order of their oldest task."""
        stmt = (
            select(SearchTask.server_id, func.min(SearchTask.id).label("first"))
            .group_by(SearchTask.server_id)
            .order_by("first")
        )
        return [row.server_id for row in self.session.execute(stmt)]

    @staticmethod
    def payload(task: SearchTask) -> Any:
        return decode_payload(task.data)

    def _find(self, kind: str, server_id: str, index_id: Optional[str], data: Optional[str]) -> Optional[SearchTask]:
        stmt = select(SearchTask).where(
            SearchTask.type == kind,
            SearchTask.server_id == server_id,
            _eq_or_null(SearchTask.index_id, index_id),
            _eq_or_null(SearchTask.data, data),
        )
        return self.session.scalars(stmt.limit(1)).first()
