"""
Environment-driven settings for the Search API (pydantic-settings).

Values come from the process environment or a local `.env` file; every field
has a default suitable for a single-node SQLite deployment. Import the
`settings` singleton rather than instantiating `Settings` again.
"""
from __future__ import annotations

import json
from typing import List, Optional, Union

from pydantic import AliasChoices, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _split_origins(raw: str) -> List[str]:
    raw = raw.strip()
    if not raw:
        return ["*"]
    if raw.startswith("["):
        try:
            parsed = json.loads(raw)
        except ValueError:
            raw = raw.strip("[]")
        else:
            return [str(o).strip() for o in parsed if str(o).strip()]
    return [o.strip().strip("\"'") for o in raw.split(",") if o.strip()]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ---- Service ----
    APP_NAME: str = "Search API"
    APP_VERSION: str = "0.1.0"
    HOST: str = "0.0.0.0"
    PORT: int = 7400
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True
    API_TOKEN: Optional[str] = Field(default=None, description="Bearer token for mutating routes; unset = open")

    # ---- Storage (configuration records, task queue, database backend) ----
    DATABASE_URL: str = Field(
        default="sqlite+pysqlite:///./data/search_api.sqlite",
        validation_alias=AliasChoices("DATABASE_URL", "SEARCH_API_DATABASE_URL"),
    )
    SQL_ECHO: bool = False
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20
    DB_POOL_PRE_PING: bool = True

    CORS_ALLOW_ORIGINS: Union[List[str], str] = Field(default_factory=lambda: ["*"])

    # ---- Backends ----
    DEFAULT_BACKEND: str = Field(
        default="database",
        description="Backend id suggested for new servers",
        validation_alias=AliasChoices("DEFAULT_BACKEND", "SEARCH_DEFAULT_BACKEND"),
    )

    # ---- Pending task reconciliation ----
    RECONCILE_SCHED_ENABLED: bool = False
    RECONCILE_INTERVAL_MIN: int = Field(default=5, description="Minutes between reconciliation passes")

    @field_validator("CORS_ALLOW_ORIGINS", mode="before")
    @classmethod
    def _parse_cors(cls, v: Union[str, List[str]]) -> List[str]:
        return _split_origins(v) if isinstance(v, str) else list(v)

    @field_validator("RECONCILE_INTERVAL_MIN")
    @classmethod
    def _non_negative_interval(cls, v: int) -> int:
        if v < 0:
            raise ValueError("RECONCILE_INTERVAL_MIN must be >= 0")
        return v

    @property
    def reconcile_enabled(self) -> bool:
        return self.RECONCILE_SCHED_ENABLED and self.RECONCILE_INTERVAL_MIN > 0


try:
    settings = Settings()  # type: ignore[call-arg]
except ValidationError as ve:
    raise RuntimeError(f"Invalid configuration: {ve}") from ve
