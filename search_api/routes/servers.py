"""
Server routes:

- GET    /backends                   registered backend plugins
- GET    /servers                    list servers
- POST   /servers                    create a server
- GET    /servers/{id}               read one server
- PATCH  /servers/{id}               update name/description/status/backend
- DELETE /servers/{id}               delete (detaches indexes, drops tasks)
- POST   /servers/{id}/enable|disable
- GET    /servers/{id}/indexes       indexes attached to the server
- GET    /servers/{id}/settings      backend-provided summary
"""

from __future__ import annotations

from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException, Response, status

from .. import schemas
from ..backends import PluginRegistry
from ..services.server import Server, ServerManager
from ..utils.security import require_api_token
from .deps import get_plugins, get_servers

router = APIRouter(tags=["servers"])


def _read(server: Server) -> schemas.ServerRead:
    record = server.record
    return schemas.ServerRead(
        id=record.id,
        name=record.name,
        description=record.description or "",
        backend_id=record.backend_id,
        backend_config=record.backend_config or {},
        status=bool(record.status),
        valid_backend=server.has_valid_backend(),
    )


@router.get("/backends")
def list_backends(plugins: PluginRegistry = Depends(get_plugins)) -> List[Dict[str, Any]]:
    return [
        {
            "id": d.id,
            "label": d.label,
            "description": d.description,
            "features": sorted(d.features),
        }
        for d in plugins.definitions()
    ]


@router.get("/servers", response_model=List[schemas.ServerRead])
def list_servers(servers: ServerManager = Depends(get_servers)):
    return [_read(s) for s in servers.load_all()]


@router.post(
    "/servers",
    response_model=schemas.ServerRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_api_token)],
)
def create_server(body: schemas.ServerCreate, servers: ServerManager = Depends(get_servers)):
    try:
        server = servers.create(
            id=body.id,
            name=body.name,
            description=body.description,
            backend_id=body.backend_id,
            backend_config=body.backend_config,
            status=body.status,
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    return _read(server)


@router.get("/servers/{server_id}", response_model=schemas.ServerRead)
def get_server(server_id: str, servers: ServerManager = Depends(get_servers)):
    return _read(servers.require(server_id))


@router.patch(
    "/servers/{server_id}",
    response_model=schemas.ServerRead,
    dependencies=[Depends(require_api_token)],
)
def update_server(server_id: str, body: schemas.ServerUpdate, servers: ServerManager = Depends(get_servers)):
    server = servers.require(server_id)
    if body.name is not None:
        server.record.name = body.name
    if body.description is not None:
        server.record.description = body.description
    if body.status is not None:
        server.set_status(body.status)

    if body.backend_id is not None and body.backend_id != server.backend_id:
        server.set_backend(body.backend_id, body.backend_config)
        server.get_backend()
    elif body.backend_config is not None:
        server.submit_configuration(body.backend_config)

    return _read(server.save())


@router.delete(
    "/servers/{server_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_api_token)],
)
def delete_server(server_id: str, servers: ServerManager = Depends(get_servers)):
    servers.require(server_id).delete()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/servers/{server_id}/enable",
    response_model=schemas.ServerRead,
    dependencies=[Depends(require_api_token)],
)
def enable_server(server_id: str, servers: ServerManager = Depends(get_servers)):
    return _read(servers.require(server_id).set_status(True).save())


@router.post(
    "/servers/{server_id}/disable",
    response_model=schemas.ServerRead,
    dependencies=[Depends(require_api_token)],
)
def disable_server(server_id: str, servers: ServerManager = Depends(get_servers)):
    return _read(servers.require(server_id).set_status(False).save())


@router.get("/servers/{server_id}/indexes", response_model=List[schemas.IndexRead])
def server_indexes(server_id: str, servers: ServerManager = Depends(get_servers)):
    return servers.require(server_id).get_indexes()


@router.get("/servers/{server_id}/settings")
def server_settings(server_id: str, servers: ServerManager = Depends(get_servers)) -> List[Dict[str, str]]:
    return servers.require(server_id).view_settings()
