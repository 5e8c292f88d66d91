"""
Shared FastAPI dependencies.
"""

from __future__ import annotations

from fastapi import Depends
from sqlalchemy.orm import Session

from ..backends import PluginRegistry, get_plugin_registry
from ..db import get_db
from ..services.indexes import IndexManager
from ..services.server import ServerManager


def get_plugins() -> PluginRegistry:
    return get_plugin_registry()


def get_servers(
    db: Session = Depends(get_db),
    plugins: PluginRegistry = Depends(get_plugins),
) -> ServerManager:
    return ServerManager(db, plugins=plugins)


def get_index_manager(servers: ServerManager = Depends(get_servers)) -> IndexManager:
    return IndexManager(servers)
