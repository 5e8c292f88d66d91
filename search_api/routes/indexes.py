"""
Index routes:

- GET    /indexes                     list indexes (optional ?server_id=)
- POST   /indexes                     create (and add to its server)
- GET    /indexes/{id}
- DELETE /indexes/{id}                purge tasks, remove from server, delete
- PUT    /indexes/{id}/server         move to another server / detach
- PUT    /indexes/{id}/fields         change the field mapping
- POST   /indexes/{id}/enable|disable  toggle status (enable needs an enabled server)
- POST   /indexes/{id}/items          index items
- POST   /indexes/{id}/items/delete   delete some (or all) items
- POST   /indexes/{id}/search         keyword search

Structural operations answer with {"ok": bool, "pending_tasks": n}; ok=false
means the backend call failed and was queued for reconciliation.
"""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from .. import schemas
from ..models import SearchIndex
from ..services.indexes import IndexManager
from ..services.server import Server
from ..utils.security import require_api_token
from .deps import get_index_manager

router = APIRouter(prefix="/indexes", tags=["indexes"])


def _server_of(manager: IndexManager, index: SearchIndex) -> Server:
    if not index.server_id:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Index '{index.id}' is not attached to a server.",
        )
    return manager.servers.require(index.server_id)


def _outcome(manager: IndexManager, index: SearchIndex, ok: bool) -> schemas.OperationResponse:
    pending = manager.tasks.count(index.server_id, index.id) if index.server_id else 0
    return schemas.OperationResponse(ok=ok, pending_tasks=pending)


@router.get("", response_model=List[schemas.IndexRead])
def list_indexes(
    server_id: Optional[str] = Query(None),
    manager: IndexManager = Depends(get_index_manager),
):
    if server_id is not None:
        return manager.registry.for_server(server_id)
    return manager.registry.load_all()


@router.post(
    "",
    response_model=schemas.IndexRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_api_token)],
)
def create_index(body: schemas.IndexCreate, manager: IndexManager = Depends(get_index_manager)):
    try:
        return manager.create(
            id=body.id,
            name=body.name,
            description=body.description,
            server_id=body.server_id,
            fields=body.fields,
            options=body.options,
            read_only=body.read_only,
            status=body.status,
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc


@router.get("/{index_id}", response_model=schemas.IndexRead)
def get_index(index_id: str, manager: IndexManager = Depends(get_index_manager)):
    return manager.registry.require(index_id)


@router.delete(
    "/{index_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_api_token)],
)
def delete_index(index_id: str, manager: IndexManager = Depends(get_index_manager)):
    manager.delete(manager.registry.require(index_id))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.put(
    "/{index_id}/server",
    response_model=schemas.IndexRead,
    dependencies=[Depends(require_api_token)],
)
def set_index_server(
    index_id: str,
    body: schemas.IndexServerUpdate,
    manager: IndexManager = Depends(get_index_manager),
):
    return manager.set_server(manager.registry.require(index_id), body.server_id)


@router.put(
    "/{index_id}/fields",
    response_model=schemas.OperationResponse,
    dependencies=[Depends(require_api_token)],
)
def update_index_fields(
    index_id: str,
    body: schemas.IndexFieldsUpdate,
    manager: IndexManager = Depends(get_index_manager),
):
    index = manager.registry.require(index_id)
    ok = manager.update_fields(index, body.fields)
    return _outcome(manager, index, ok)


@router.post(
    "/{index_id}/enable",
    response_model=schemas.IndexRead,
    dependencies=[Depends(require_api_token)],
)
def enable_index(index_id: str, manager: IndexManager = Depends(get_index_manager)):
    try:
        return manager.set_status(manager.registry.require(index_id), True)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc


@router.post(
    "/{index_id}/disable",
    response_model=schemas.IndexRead,
    dependencies=[Depends(require_api_token)],
)
def disable_index(index_id: str, manager: IndexManager = Depends(get_index_manager)):
    return manager.disable(manager.registry.require(index_id))


@router.post(
    "/{index_id}/items",
    response_model=schemas.IndexItemsResponse,
    dependencies=[Depends(require_api_token)],
)
def index_items(
    index_id: str,
    body: schemas.IndexItemsRequest,
    manager: IndexManager = Depends(get_index_manager),
):
    index = manager.registry.require(index_id)
    server = _server_of(manager, index)
    if not index.status:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=f"Index '{index.id}' is disabled.")
    return schemas.IndexItemsResponse(indexed=server.index_items(index, body.items))


@router.post(
    "/{index_id}/items/delete",
    response_model=schemas.OperationResponse,
    dependencies=[Depends(require_api_token)],
)
def delete_index_items(
    index_id: str,
    body: schemas.DeleteItemsRequest,
    manager: IndexManager = Depends(get_index_manager),
):
    index = manager.registry.require(index_id)
    server = _server_of(manager, index)
    if body.ids is None:
        ok = server.delete_all_items(index)
    else:
        ok = server.delete_items(index, body.ids)
    return _outcome(manager, index, ok)


@router.post("/{index_id}/search", response_model=schemas.ResultSetRead)
def search_index(
    index_id: str,
    query: schemas.SearchQuery,
    manager: IndexManager = Depends(get_index_manager),
):
    index = manager.registry.require(index_id)
    server = _server_of(manager, index)
    return server.search(index, query)
