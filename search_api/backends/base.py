"""
Base class for backend plugins.

Supplies the parts every backend shares:
- configuration handling driven by a JSON schema (defaults applied, validated
  with jsonschema), so the schema is defined entirely by the plugin
- capability lookups (features / data types)
- no-op server lifecycle hooks

Subclasses implement the index and item operations.
"""

from __future__ import annotations

import copy
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional

from jsonschema import Draft202012Validator
from jsonschema import ValidationError as JSONSchemaValidationError
from jsonschema.validators import extend

from ..errors import ConfigurationError

# Data types every backend must handle.
DEFAULT_DATATYPES: FrozenSet[str] = frozenset({"text", "string", "integer", "decimal", "date", "boolean"})


def _extend_with_default(validator_class):
    """
    Extend a jsonschema validator to apply default values to the instance.
    This mutates the instance dict *during* validation for keys with "default".
    """
    validate_properties = validator_class.VALIDATORS.get("properties")

    def set_defaults(validator, properties, instance, schema):
        if isinstance(instance, dict):
            for prop, subschema in (properties or {}).items():
                if "default" in subschema and prop not in instance:
                    instance[prop] = copy.deepcopy(subschema["default"])
        if validate_properties is not None:
            yield from validate_properties(validator, properties, instance, schema)

    return extend(validator_class, {"properties": set_defaults})


DefaultingValidator = _extend_with_default(Draft202012Validator)


def _format_error(exc: JSONSchemaValidationError) -> tuple[Optional[str], str]:
    path = ".".join(str(p) for p in exc.absolute_path) or None
    return path, exc.message


class BackendPlugin:
    """
    Convenience base for `SearchBackend` implementations.

    Attributes:
        plugin_id: registry id, set on the class by subclasses
        config_schema: JSON schema of the configuration (object)
        features: optional features this backend supports
        datatypes: non-default data types this backend supports
    """

    plugin_id: str = ""
    label: str = ""
    config_schema: Dict[str, Any] = {"type": "object", "properties": {}}
    features: FrozenSet[str] = frozenset()
    datatypes: FrozenSet[str] = frozenset()

    def __init__(self, config: Optional[Mapping[str, Any]] = None, *, server_id: Optional[str] = None) -> None:
        self.server_id = server_id
        self.configuration: Dict[str, Any] = self.validate_configuration(config or {})

    # ---- configuration ----

    def configuration_schema(self) -> Dict[str, Any]:
        return copy.deepcopy(self.config_schema)

    def default_configuration(self) -> Dict[str, Any]:
        return self.validate_configuration({})

    def validate_configuration(self, values: Mapping[str, Any]) -> Dict[str, Any]:
        if not isinstance(values, Mapping):
            raise ConfigurationError("Backend configuration must be a mapping.", backend_id=self.plugin_id)
        instance: Dict[str, Any] = copy.deepcopy(dict(values))
        try:
            DefaultingValidator(self.config_schema).validate(instance)
        except JSONSchemaValidationError as exc:
            field, message = _format_error(exc)
            raise ConfigurationError(
                f"Invalid configuration for backend '{self.plugin_id}': {message}",
                backend_id=self.plugin_id,
                field=field,
            ) from exc
        return instance

    def submit_configuration(self, values: Mapping[str, Any]) -> None:
        self.configuration = self.validate_configuration(values)

    def get_configuration(self) -> Dict[str, Any]:
        return copy.deepcopy(self.configuration)

    def view_settings(self) -> List[Dict[str, str]]:
        return []

    # ---- capabilities ----

    def supports_feature(self, feature: str) -> bool:
        return feature in self.features

    def supports_datatype(self, datatype: str) -> bool:
        return datatype in DEFAULT_DATATYPES or datatype in self.datatypes

    # ---- server lifecycle hooks ----

    def pre_delete(self) -> None:
        """Release external resources before the owning server is deleted."""

    def post_insert(self) -> None:
        """Called after a new server using this backend was saved."""

    def post_update(self) -> bool:
        """Called after the server was updated; return True if reindexing is needed."""
        return False

    # ---- operations (subclasses) ----

    def add_index(self, index) -> None:
        raise NotImplementedError

    def update_index(self, index) -> bool:
        raise NotImplementedError

    def remove_index(self, index) -> None:
        raise NotImplementedError

    def index_items(self, index, items: Mapping[str, Mapping[str, Any]]) -> List[str]:
        raise NotImplementedError

    def delete_items(self, index, ids: Iterable[str]) -> None:
        raise NotImplementedError

    def delete_all_items(self, index=None) -> None:
        raise NotImplementedError

    def search(self, index, query):
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} plugin_id={self.plugin_id!r} server_id={self.server_id!r}>"
