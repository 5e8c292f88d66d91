"""
Pending task routes:

- GET  /tasks           list queued tasks (?server_id=&index_id=)
- POST /tasks/execute   replay pending tasks now
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from .. import schemas
from ..services.reconcile import Reconciler
from ..services.server import ServerManager
from ..utils.security import require_api_token
from .deps import get_servers

router = APIRouter(prefix="/tasks", tags=["tasks"])
log = logging.getLogger(__name__)


@router.get("", response_model=schemas.TaskListResponse)
def list_tasks(
    server_id: Optional[str] = Query(None),
    index_id: Optional[str] = Query(None),
    servers: ServerManager = Depends(get_servers),
):
    items = servers.tasks.dequeue_all(server_id, index_id)
    return schemas.TaskListResponse(
        items=[schemas.TaskRead.model_validate(t) for t in items],
        count=len(items),
    )


@router.post(
    "/execute",
    response_model=schemas.TaskExecuteResponse,
    dependencies=[Depends(require_api_token)],
)
def execute_tasks(
    body: Optional[schemas.TaskExecuteRequest] = None,
    servers: ServerManager = Depends(get_servers),
):
    body = body or schemas.TaskExecuteRequest()
    report = Reconciler(servers).execute_pending(body.server_id, body.index_id)
    log.info(
        "Manual reconciliation: executed=%d stale=%d failed=%d remaining=%d.",
        report.executed,
        report.stale,
        report.failed,
        report.remaining,
        extra={"server": body.server_id, "index": body.index_id},
    )
    return schemas.TaskExecuteResponse(**report.as_dict())
