"""
Backend interfaces (protocols) for pluggable search engines.

These define the minimal contract the server dispatcher relies on. Concrete
implementations live next to this module (null, memory, database) or in
third-party packages that register themselves with the plugin registry.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    Dict,
    FrozenSet,
    Iterable,
    List,
    Mapping,
    Optional,
    Protocol,
    TypedDict,
)

if TYPE_CHECKING:  # pragma: no cover
    from ..models import SearchIndex
    from ..schemas import SearchQuery


class ResultItem(TypedDict, total=False):
    """
    Generic result row produced by backends.

    Required:
      - id: item id as passed to `index_items()`
      - score: backend-specific relevance (higher is better)

    Optional:
      - fields: stored field values
    """
    id: str
    score: float
    fields: Dict[str, Any]


class ResultSet(TypedDict, total=False):
    result_count: int
    items: List[ResultItem]
    warnings: List[str]
    ignored: List[str]


class SearchBackend(Protocol):
    """Everything a server needs from its backend."""

    plugin_id: str

    # ---- configuration ----
    def configuration_schema(self) -> Dict[str, Any]:
        """JSON schema describing the backend configuration."""
        ...

    def default_configuration(self) -> Dict[str, Any]:
        ...

    def validate_configuration(self, values: Mapping[str, Any]) -> Dict[str, Any]:
        """Return normalized configuration or raise ConfigurationError."""
        ...

    def submit_configuration(self, values: Mapping[str, Any]) -> None:
        ...

    def get_configuration(self) -> Dict[str, Any]:
        ...

    def view_settings(self) -> List[Dict[str, str]]:
        """Label/value pairs describing the active configuration."""
        ...

    # ---- capabilities ----
    def supports_feature(self, feature: str) -> bool:
        ...

    def supports_datatype(self, datatype: str) -> bool:
        ...

    # ---- index lifecycle ----
    def add_index(self, index: "SearchIndex") -> None:
        ...

    def update_index(self, index: "SearchIndex") -> bool:
        """Apply index changes; return True when the index must be reindexed."""
        ...

    def remove_index(self, index: "SearchIndex") -> None:
        ...

    # ---- items ----
    def index_items(self, index: "SearchIndex", items: Mapping[str, Mapping[str, Any]]) -> List[str]:
        """Index items keyed by id; return the ids indexed successfully."""
        ...

    def delete_items(self, index: "SearchIndex", ids: Iterable[str]) -> None:
        ...

    def delete_all_items(self, index: Optional["SearchIndex"] = None) -> None:
        """Delete every item of `index`, or of all indexes when None."""
        ...

    def search(self, index: "SearchIndex", query: "SearchQuery") -> ResultSet:
        ...

    # ---- server lifecycle hooks ----
    def pre_delete(self) -> None:
        ...

    def post_insert(self) -> None:
        ...

    def post_update(self) -> bool:
        ...


BackendFactory = Callable[..., SearchBackend]


@dataclass(frozen=True)
class BackendDefinition:
    """Registration metadata for a backend plugin."""

    id: str
    factory: BackendFactory
    label: str = ""
    description: str = ""
    features: FrozenSet[str] = field(default_factory=frozenset)
