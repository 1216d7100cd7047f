"""Workflow domain concepts.

This package holds the first-class pieces of the engine:
- The data model (definitions, instances, history)
- A transition graph and the definition validator built on it
- Single-instance transition semantics
- The store contract and the execution coordinator that commits through it

Validation and legality checks are pure; only the coordinator touches the store.
"""

__all__: list[str] = []
