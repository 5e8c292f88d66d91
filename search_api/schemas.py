"""
Pydantic DTOs used by the Search API.

- Search queries and result sets
- Server / index create, update and read views
- Pending task views and reconciliation summaries
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .config import settings

_MACHINE_NAME = re.compile(r"^[a-z0-9_]+$")


def _check_machine_name(value: str) -> str:
    if not _MACHINE_NAME.match(value or ""):
        raise ValueError("machine name may contain only lowercase letters, digits and underscores")
    return value


# ---------------- Search ----------------

class SearchQuery(BaseModel):
    """Keyword query against one index."""

    keys: Optional[str] = None
    fields: List[str] = Field(default_factory=list, description="Fulltext fields to match; empty = all")
    conditions: Dict[str, Any] = Field(default_factory=dict, description="Exact-match field filters")
    offset: int = Field(default=0, ge=0)
    limit: int = Field(default=10, ge=1, le=1000)


class ResultItemRead(BaseModel):
    id: str
    score: float = 0.0
    fields: Dict[str, Any] = Field(default_factory=dict)


class ResultSetRead(BaseModel):
    result_count: int = 0
    items: List[ResultItemRead] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    ignored: List[str] = Field(default_factory=list)


# ---------------- Servers ----------------

class ServerCreate(BaseModel):
    id: str
    name: str
    description: str = ""
    backend_id: str = Field(default_factory=lambda: settings.DEFAULT_BACKEND)
    backend_config: Dict[str, Any] = Field(default_factory=dict)
    status: bool = True

    @field_validator("id")
    @classmethod
    def _machine_name(cls, v: str) -> str:
        return _check_machine_name(v)


class ServerUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    backend_id: Optional[str] = None
    backend_config: Optional[Dict[str, Any]] = None
    status: Optional[bool] = None


class ServerRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: str = ""
    backend_id: str
    backend_config: Dict[str, Any] = Field(default_factory=dict)
    status: bool
    valid_backend: bool = True


# ---------------- Indexes ----------------

class IndexCreate(BaseModel):
    id: str
    name: str
    description: str = ""
    server_id: Optional[str] = None
    fields: Dict[str, str] = Field(default_factory=dict)
    options: Dict[str, Any] = Field(default_factory=dict)
    read_only: bool = False
    status: bool = True

    @field_validator("id")
    @classmethod
    def _machine_name(cls, v: str) -> str:
        return _check_machine_name(v)


class IndexServerUpdate(BaseModel):
    server_id: Optional[str] = None


class IndexFieldsUpdate(BaseModel):
    fields: Dict[str, str]


class IndexRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: str = ""
    server_id: Optional[str] = None
    status: bool
    fields: Dict[str, str] = Field(default_factory=dict)
    options: Dict[str, Any] = Field(default_factory=dict)
    read_only: bool = False
    needs_reindex: bool = False


class IndexItemsRequest(BaseModel):
    items: Dict[str, Dict[str, Any]]


class IndexItemsResponse(BaseModel):
    indexed: List[str]


class DeleteItemsRequest(BaseModel):
    ids: Optional[List[str]] = None  # None = delete all items of the index


class OperationResponse(BaseModel):
    ok: bool
    pending_tasks: int = 0


# ---------------- Tasks ----------------

class TaskRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    type: str
    server_id: str
    index_id: Optional[str] = None
    data: Optional[str] = None
    created: datetime


class TaskListResponse(BaseModel):
    items: List[TaskRead]
    count: int


class TaskExecuteRequest(BaseModel):
    server_id: Optional[str] = None
    index_id: Optional[str] = None


class TaskExecuteResponse(BaseModel):
    complete: bool
    executed: int = 0
    stale: int = 0
    failed: int = 0
    remaining: int = 0
