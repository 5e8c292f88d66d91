"""
Service layer: configuration storage, the task queue, index lookup and the
server dispatcher.
"""

from .indexes import IndexManager, IndexRegistry
from .reconcile import Reconciler, ReconcileReport
from .server import Server, ServerManager
from .store import ConfigStore
from .tasks import TaskQueue

__all__ = [
    "ConfigStore",
    "IndexManager",
    "IndexRegistry",
    "ReconcileReport",
    "Reconciler",
    "Server",
    "ServerManager",
    "TaskQueue",
]
