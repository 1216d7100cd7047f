"""Storage contract for definitions and instances, plus two implementations.

The store is the only shared mutable resource. Contention on an instance is settled
solely by :meth:`WorkflowStore.save_instance_if_version_matches`; callers never hold
a lock across processing.
"""

from __future__ import annotations

import fcntl
import json
import logging
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import contextmanager
from enum import Enum
from pathlib import Path

from pydantic import ValidationError

from .errors import StoreError
from .models import WorkflowDefinition, WorkflowInstance

logger = logging.getLogger(__name__)


class SaveOutcome(str, Enum):
    SUCCESS = "success"
    CONFLICT = "conflict"


class WorkflowStore(ABC):
    """Abstract store.

    Every accessor returns a value independent of the stored one, so callers may do
    whatever they like with it. An instance that does not exist yet has version 0;
    creating one is a conditional save with ``expected_version=0``.
    """

    @abstractmethod
    def load_definition(self, definition_id: str) -> WorkflowDefinition | None:
        pass

    @abstractmethod
    def load_all_definitions(self) -> list[WorkflowDefinition]:
        pass

    @abstractmethod
    def save_definition(self, definition: WorkflowDefinition) -> None:
        """Upsert by id, last writer wins."""
        pass

    @abstractmethod
    def save_definition_if_absent(self, definition: WorkflowDefinition) -> SaveOutcome:
        """Insert ``definition`` unless its id is already stored.

        Atomic with respect to concurrent callers; a taken id yields ``CONFLICT``.
        """
        pass

    @abstractmethod
    def load_instance(self, instance_id: str) -> WorkflowInstance | None:
        pass

    @abstractmethod
    def save_instance_if_version_matches(
        self, instance: WorkflowInstance, expected_version: int
    ) -> SaveOutcome:
        """Replace the stored instance only if its version is still ``expected_version``.

        Must be atomic with respect to concurrent callers on the same instance id.
        """
        pass


class InMemoryWorkflowStore(WorkflowStore):
    """Dictionary-backed store guarded by a single lock."""

    def __init__(self) -> None:
        self._definitions: dict[str, WorkflowDefinition] = {}
        self._instances: dict[str, WorkflowInstance] = {}
        self._lock = threading.Lock()

    def load_definition(self, definition_id: str) -> WorkflowDefinition | None:
        with self._lock:
            definition = self._definitions.get(definition_id)
            return definition.model_copy(deep=True) if definition is not None else None

    def load_all_definitions(self) -> list[WorkflowDefinition]:
        with self._lock:
            return [d.model_copy(deep=True) for d in self._definitions.values()]

    def save_definition(self, definition: WorkflowDefinition) -> None:
        with self._lock:
            self._definitions[definition.id] = definition.model_copy(deep=True)

    def save_definition_if_absent(self, definition: WorkflowDefinition) -> SaveOutcome:
        with self._lock:
            if definition.id in self._definitions:
                return SaveOutcome.CONFLICT
            self._definitions[definition.id] = definition.model_copy(deep=True)
            return SaveOutcome.SUCCESS

    def load_instance(self, instance_id: str) -> WorkflowInstance | None:
        with self._lock:
            instance = self._instances.get(instance_id)
            return instance.model_copy(deep=True) if instance is not None else None

    def save_instance_if_version_matches(
        self, instance: WorkflowInstance, expected_version: int
    ) -> SaveOutcome:
        with self._lock:
            existing = self._instances.get(instance.id)
            current_version = existing.version if existing is not None else 0
            if current_version != expected_version:
                return SaveOutcome.CONFLICT
            self._instances[instance.id] = instance.model_copy(deep=True)
            return SaveOutcome.SUCCESS


def _acquire_flock(lock_path: Path) -> int:
    """Block until ``lock_path`` is exclusively locked; return the locked descriptor.

    Closing the descriptor releases the lock.
    """

    lock_path.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(lock_path, os.O_RDWR | os.O_CREAT, 0o644)
    try:
        fcntl.flock(fd, fcntl.LOCK_EX)
    except OSError:
        os.close(fd)
        raise
    return fd


def _replace_file(path: Path, text: str) -> None:
    """Write ``text`` to a sibling temp file, then rename it over ``path``."""

    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path: Path | None = None
    try:
        with tempfile.NamedTemporaryFile(
            "w", encoding="utf-8", dir=path.parent, prefix=f".{path.name}.", delete=False
        ) as tmp:
            tmp_path = Path(tmp.name)
            tmp.write(text)
            tmp.flush()
            os.fsync(tmp.fileno())
        tmp_path.replace(path)
    except OSError:
        if tmp_path is not None:
            tmp_path.unlink(missing_ok=True)
        raise


class JsonFileWorkflowStore(WorkflowStore):
    """JSON-file backed store.

    Definitions and instances live in two files under ``root``, each a JSON object
    keyed by id. Every write holds a thread lock and an ``fcntl`` lock on
    ``root/.lock``, so separate CLI processes and server threads can share one
    directory. Readers never see a half-written file.

    An unreadable or malformed file raises :class:`StoreError` rather than being
    treated as empty; a later save would otherwise wipe everything in it.
    """

    def __init__(self, root: Path) -> None:
        self.root = root
        self.definitions_file = root / "definitions.json"
        self.instances_file = root / "instances.json"
        self._lock_file = root / ".lock"
        self._lock = threading.Lock()

    def _read_unlocked(self, path: Path) -> dict[str, object]:
        if not path.exists():
            return {}
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise StoreError(f"Cannot read workflow state file {path}: {e}") from e
        if not isinstance(raw, dict):
            raise StoreError(f"Workflow state file {path} has unexpected shape")
        return raw

    def _write_unlocked(self, path: Path, payload: dict[str, object]) -> None:
        try:
            _replace_file(
                path, json.dumps(payload, indent=2, ensure_ascii=False, sort_keys=True) + "\n"
            )
        except OSError as e:
            raise StoreError(f"Cannot write workflow state file {path}: {e}") from e

    @contextmanager
    def _exclusive(self) -> Iterator[None]:
        with self._lock:
            try:
                fd = _acquire_flock(self._lock_file)
            except OSError as e:
                raise StoreError(f"Cannot lock workflow state in {self.root}: {e}") from e
            try:
                yield
            finally:
                os.close(fd)

    def _parse_definition(self, raw: object) -> WorkflowDefinition:
        try:
            return WorkflowDefinition.model_validate(raw)
        except ValidationError as e:
            raise StoreError(f"Corrupt definition in {self.definitions_file}: {e}") from e

    def _parse_instance(self, raw: object) -> WorkflowInstance:
        try:
            return WorkflowInstance.model_validate(raw)
        except ValidationError as e:
            raise StoreError(f"Corrupt instance in {self.instances_file}: {e}") from e

    def load_definition(self, definition_id: str) -> WorkflowDefinition | None:
        with self._lock:
            raw = self._read_unlocked(self.definitions_file).get(definition_id)
        return self._parse_definition(raw) if raw is not None else None

    def load_all_definitions(self) -> list[WorkflowDefinition]:
        with self._lock:
            raw = self._read_unlocked(self.definitions_file)
        return [self._parse_definition(item) for item in raw.values()]

    def save_definition(self, definition: WorkflowDefinition) -> None:
        with self._exclusive():
            payload = self._read_unlocked(self.definitions_file)
            payload[definition.id] = definition.model_dump(mode="json")
            self._write_unlocked(self.definitions_file, payload)
        logger.debug(
            "Definition written",
            extra={"definition_id": definition.id, "path": str(self.definitions_file)},
        )

    def save_definition_if_absent(self, definition: WorkflowDefinition) -> SaveOutcome:
        with self._exclusive():
            payload = self._read_unlocked(self.definitions_file)
            if definition.id in payload:
                return SaveOutcome.CONFLICT
            payload[definition.id] = definition.model_dump(mode="json")
            self._write_unlocked(self.definitions_file, payload)
        logger.debug(
            "Definition inserted",
            extra={"definition_id": definition.id, "path": str(self.definitions_file)},
        )
        return SaveOutcome.SUCCESS

    def load_instance(self, instance_id: str) -> WorkflowInstance | None:
        with self._lock:
            raw = self._read_unlocked(self.instances_file).get(instance_id)
        return self._parse_instance(raw) if raw is not None else None

    def save_instance_if_version_matches(
        self, instance: WorkflowInstance, expected_version: int
    ) -> SaveOutcome:
        with self._exclusive():
            payload = self._read_unlocked(self.instances_file)
            existing = payload.get(instance.id)
            current_version = (
                self._parse_instance(existing).version if existing is not None else 0
            )
            if current_version != expected_version:
                return SaveOutcome.CONFLICT
            payload[instance.id] = instance.model_dump(mode="json")
            self._write_unlocked(self.instances_file, payload)
            return SaveOutcome.SUCCESS
