"""Configuration for the workflow engine.

Configuration is loaded from:
- environment variables
- and a local `.env` file (if present)

The validator limits exist only to cap the worst-case cost of checking a single
definition; they are not business rules.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from workflow_engine.engine.workflow.validator import ValidationLimits


class EngineSettings(BaseSettings):
    """Settings for the engine core.

    Environment variables:
    - LOG_LEVEL                       (optional)
    - WORKFLOW_STORE_BACKEND          (optional, "json" or "memory")
    - WORKFLOW_STATE_PATH             (optional)
    - WORKFLOW_MAX_*                  (optional validator limits)
    - WORKFLOW_MAX_EXECUTE_ATTEMPTS   (optional)
    - WORKFLOW_RETRY_BASE_DELAY_SECONDS (optional)

    Notes:
        Pydantic-settings supports overriding the env file in tests via:
        `EngineSettings(_env_file=path_to_env)`.
    """

    log_level: str = Field(
        default="INFO",
        validation_alias="LOG_LEVEL",
        description="Root logging level",
    )

    store_backend: Literal["json", "memory"] = Field(
        default="json",
        validation_alias="WORKFLOW_STORE_BACKEND",
        description=(
            "Where definitions and instances live. 'memory' is lost on exit and is "
            "mostly useful for tests and demos."
        ),
    )
    state_path: Path = Field(
        default=Path("workflow_state"),
        validation_alias="WORKFLOW_STATE_PATH",
        description="Directory used by the JSON file store",
    )

    max_states: int = Field(default=200, ge=1, le=10_000, validation_alias="WORKFLOW_MAX_STATES")
    max_transitions: int = Field(
        default=1000, ge=1, le=50_000, validation_alias="WORKFLOW_MAX_TRANSITIONS"
    )
    max_identifier_length: int = Field(
        default=64, ge=1, le=1024, validation_alias="WORKFLOW_MAX_IDENTIFIER_LENGTH"
    )
    max_sources_per_transition: int = Field(
        default=50, ge=1, le=10_000, validation_alias="WORKFLOW_MAX_SOURCES_PER_TRANSITION"
    )

    max_execute_attempts: int = Field(
        default=3,
        ge=1,
        le=20,
        validation_alias="WORKFLOW_MAX_EXECUTE_ATTEMPTS",
        description="Conditional save attempts per execution before reporting a conflict",
    )
    retry_base_delay_seconds: float = Field(
        default=0.05,
        ge=0.0,
        le=5.0,
        validation_alias="WORKFLOW_RETRY_BASE_DELAY_SECONDS",
        description="Backoff before the first retry; doubles on each further retry",
    )

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        extra="ignore",
    )

    @property
    def definitions_file(self) -> Path:
        """Path where workflow definitions are persisted by the JSON store."""

        return self.state_path / "definitions.json"

    @property
    def instances_file(self) -> Path:
        """Path where workflow instances are persisted by the JSON store."""

        return self.state_path / "instances.json"

    def validation_limits(self) -> ValidationLimits:
        return ValidationLimits(
            max_states=self.max_states,
            max_transitions=self.max_transitions,
            max_identifier_length=self.max_identifier_length,
            max_sources_per_transition=self.max_sources_per_transition,
        )
