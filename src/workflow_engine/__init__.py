"""Workflow Engine.

Define state machines, validate them up front, then run independent instances of
them one transition at a time with optimistic concurrency control.
"""

__version__ = "0.1.0"

from workflow_engine.engine.config import EngineSettings

__all__ = ["__version__", "EngineSettings"]
