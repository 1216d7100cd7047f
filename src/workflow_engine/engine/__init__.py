"""Core engine: settings, logging, the workflow service facade and the CLI."""

from __future__ import annotations

from workflow_engine.engine.config import EngineSettings

__all__ = ["EngineSettings"]
