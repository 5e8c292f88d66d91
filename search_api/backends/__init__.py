"""
Backend plugin registry.

A registration table mapping backend ids to factories. Built-in backends are
registered when the default registry is first requested; third-party code can
register more at process start:

    from search_api.backends import get_plugin_registry
    get_plugin_registry().register("solr", SolrBackend, label="Apache Solr")

Servers resolve their backend through `create_instance(backend_id, config)`.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any, Dict, Iterable, List, Mapping, Optional

from ..errors import InvalidBackendError
from .interfaces import BackendDefinition, BackendFactory, SearchBackend

log = logging.getLogger(__name__)

__all__ = [
    "BackendDefinition",
    "PluginRegistry",
    "SearchBackend",
    "get_plugin_registry",
]


class PluginRegistry:
    """Registry of backend plugin definitions."""

    def __init__(self) -> None:
        self._definitions: Dict[str, BackendDefinition] = {}

    def register(
        self,
        plugin_id: str,
        factory: BackendFactory,
        *,
        label: Optional[str] = None,
        description: str = "",
        features: Iterable[str] = (),
    ) -> BackendDefinition:
        if plugin_id in self._definitions:
            log.warning("Overwriting existing backend registration: %s", plugin_id)
        definition = BackendDefinition(
            id=plugin_id,
            factory=factory,
            label=label or getattr(factory, "label", "") or plugin_id,
            description=description,
            features=frozenset(features or getattr(factory, "features", ())),
        )
        self._definitions[plugin_id] = definition
        log.debug("Registered backend plugin: %s", plugin_id)
        return definition

    def unregister(self, plugin_id: str) -> None:
        self._definitions.pop(plugin_id, None)

    def get_definition(self, plugin_id: Optional[str]) -> Optional[BackendDefinition]:
        if not plugin_id:
            return None
        return self._definitions.get(plugin_id)

    def definitions(self) -> List[BackendDefinition]:
        return [self._definitions[k] for k in sorted(self._definitions)]

    def create_instance(
        self,
        plugin_id: str,
        config: Optional[Mapping[str, Any]] = None,
        *,
        server_id: Optional[str] = None,
    ) -> SearchBackend:
        """
        Instantiate a backend.

        Raises:
            InvalidBackendError: unknown plugin id, invalid configuration
                (ConfigurationError) or a failing constructor.
        """
        definition = self.get_definition(plugin_id)
        if definition is None:
            raise InvalidBackendError(
                f"No backend registered with id '{plugin_id}'. "
                f"Available backends: {sorted(self._definitions)}",
                backend_id=plugin_id,
            )
        try:
            return definition.factory(dict(config or {}), server_id=server_id)
        except InvalidBackendError:
            raise
        except Exception as exc:
            raise InvalidBackendError(
                f"Backend '{plugin_id}' could not be instantiated: {exc}",
                backend_id=plugin_id,
            ) from exc

    def __contains__(self, plugin_id: object) -> bool:
        return plugin_id in self._definitions


def register_builtin_backends(registry: PluginRegistry) -> PluginRegistry:
    from .database import DatabaseBackend
    from .memory import MemoryBackend
    from .null import NullBackend

    registry.register(NullBackend.plugin_id, NullBackend, description="Stores nothing; optional failure injection.")
    registry.register(MemoryBackend.plugin_id, MemoryBackend, description="Process-local storage for development.")
    registry.register(DatabaseBackend.plugin_id, DatabaseBackend, description="Items stored in the service database.")
    return registry


@lru_cache(maxsize=1)
def get_plugin_registry() -> PluginRegistry:
    return register_builtin_backends(PluginRegistry())
