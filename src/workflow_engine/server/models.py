"""Pydantic models for the REST server."""

from __future__ import annotations

from datetime import datetime

from pydantic import AliasChoices, BaseModel, Field


class ExecuteRequest(BaseModel):
    transition_id: str = Field(
        validation_alias=AliasChoices("transition_id", "transitionId", "actionId")
    )


class ApiError(BaseModel):
    type: str
    title: str
    detail: str
    status: int

    code: str | None = None
    identifiers: list[str] = Field(default_factory=list)
    correlation_id: str | None = None
    timestamp: datetime
