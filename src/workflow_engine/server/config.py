"""Configuration for the REST server.

Engine behaviour (store backend, validator limits, retry budget) comes from
:class:`workflow_engine.engine.config.EngineSettings`; only HTTP concerns live here.
"""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ServerSettings(BaseSettings):
    """Settings for the REST API."""

    host: str = Field(default="127.0.0.1", validation_alias="WORKFLOW_SERVER_HOST")
    port: int = Field(default=8000, ge=1, le=65535, validation_alias="WORKFLOW_SERVER_PORT")

    cors_origins: str = Field(
        default="http://localhost:5173,http://127.0.0.1:5173",
        validation_alias="WORKFLOW_CORS_ORIGINS",
        description="Comma-separated list of allowed CORS origins.",
    )

    slow_request_ms: float = Field(
        default=1000.0,
        gt=0,
        validation_alias="WORKFLOW_SLOW_REQUEST_MS",
        description="Requests slower than this are logged at WARNING.",
    )

    model_config = SettingsConfigDict(env_prefix="", env_file=".env", extra="ignore")

    def parsed_cors_origins(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]
