"""
Exception taxonomy for the Search API.

- BackendError: a backend operation failed (network, remote engine, bad data).
  The server dispatcher converts it into a pending task plus a log entry.
- InvalidBackendError: the configured backend plugin is unknown or cannot be
  instantiated. Propagated to the caller; retrying won't help.
- TaskConflictError: a duplicate task insert. Treated as success.
- NotFoundError: a server/index/task that an operation targets is missing.
"""

from __future__ import annotations

from typing import Optional


class SearchApiError(Exception):
    """Base class for all Search API errors."""


class BackendError(SearchApiError):
    """Raised by backends when an operation against the search engine fails."""

    def __init__(self, message: str, *, backend_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.backend_id = backend_id

    def __repr__(self) -> str:
        return f"<BackendError backend_id={self.backend_id!r} message={self.args[0]!r}>"


class InvalidBackendError(SearchApiError):
    """Raised when a server's backend plugin is not registered or fails to instantiate."""

    def __init__(self, message: str, *, backend_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.backend_id = backend_id


class ConfigurationError(InvalidBackendError):
    """Raised when a backend configuration does not match the plugin's schema."""

    def __init__(
        self,
        message: str,
        *,
        backend_id: Optional[str] = None,
        field: Optional[str] = None,
    ) -> None:
        super().__init__(message, backend_id=backend_id)
        self.field = field


class TaskConflictError(SearchApiError):
    """Raised internally when an identical task is already queued."""


class NotFoundError(SearchApiError):
    """Raised when a server, index or task does not exist."""

    def __init__(self, kind: str, ident: Optional[str]) -> None:
        super().__init__(f"{kind} '{ident}' not found")
        self.kind = kind
        self.ident = ident
