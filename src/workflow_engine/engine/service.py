"""Workflow service: the operations exposed to callers (CLI, HTTP).

The service turns tagged validation results into exceptions at this boundary and
otherwise delegates: validation to :class:`DefinitionValidator`, execution to
:class:`ExecutionCoordinator`, persistence to a :class:`WorkflowStore`.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from datetime import UTC, datetime

from workflow_engine.engine.config import EngineSettings
from workflow_engine.engine.workflow.coordinator import ExecutionCoordinator
from workflow_engine.engine.workflow.errors import (
    DefinitionNotFound,
    InstanceNotFound,
    StoreError,
    ValidationRejected,
)
from workflow_engine.engine.workflow.models import (
    CreateDefinitionRequest,
    WorkflowDefinition,
    WorkflowInstance,
)
from workflow_engine.engine.workflow.results import (
    Rejected,
    RejectionCode,
    ValidationResult,
)
from workflow_engine.engine.workflow.state_machine import start_instance_from
from workflow_engine.engine.workflow.store import (
    InMemoryWorkflowStore,
    JsonFileWorkflowStore,
    SaveOutcome,
    WorkflowStore,
)
from workflow_engine.engine.workflow.validator import DefinitionValidator

logger = logging.getLogger(__name__)


def _new_instance_id() -> str:
    return uuid.uuid4().hex


class WorkflowService:
    """High-level, testable workflow orchestration."""

    def __init__(
        self,
        *,
        store: WorkflowStore,
        validator: DefinitionValidator | None = None,
        coordinator: ExecutionCoordinator | None = None,
        clock: Callable[[], datetime] | None = None,
        id_factory: Callable[[], str] = _new_instance_id,
    ) -> None:
        self._store = store
        self._clock = clock or (lambda: datetime.now(tz=UTC))
        self._validator = validator or DefinitionValidator(clock=self._clock)
        self._coordinator = coordinator or ExecutionCoordinator(store, clock=self._clock)
        self._id_factory = id_factory

    @property
    def store(self) -> WorkflowStore:
        return self._store

    def validate_definition(self, request: CreateDefinitionRequest) -> ValidationResult:
        """Dry run: validate without persisting anything."""

        return self._validator.validate(request)

    def create_definition(self, request: CreateDefinitionRequest) -> WorkflowDefinition:
        result = self._validator.validate(request)
        if isinstance(result, Rejected):
            logger.info(
                "Definition rejected",
                extra={
                    "definition_id": request.id,
                    "code": result.code.value,
                    "identifiers": list(result.identifiers),
                },
            )
            raise ValidationRejected(
                code=result.code, reason=result.reason, identifiers=result.identifiers
            )

        definition = result.definition
        # Definitions are immutable once stored; a change needs a new id.
        outcome = self._store.save_definition_if_absent(definition)
        if outcome is not SaveOutcome.SUCCESS:
            raise ValidationRejected(
                code=RejectionCode.DUPLICATE_DEFINITION,
                reason=f"Workflow definition '{definition.id}' already exists",
                identifiers=(definition.id,),
            )

        logger.info(
            "Definition created",
            extra={
                "definition_id": definition.id,
                "states": len(definition.states),
                "transitions": len(definition.transitions),
            },
        )
        return definition

    def get_definition(self, definition_id: str) -> WorkflowDefinition:
        definition = self._store.load_definition(definition_id)
        if definition is None:
            raise DefinitionNotFound(definition_id)
        return definition

    def list_definitions(self) -> list[WorkflowDefinition]:
        return sorted(self._store.load_all_definitions(), key=lambda d: d.id)

    def start_instance(self, definition_id: str) -> WorkflowInstance:
        definition = self.get_definition(definition_id)
        instance = start_instance_from(
            definition, instance_id=self._id_factory(), now=self._clock()
        )

        outcome = self._store.save_instance_if_version_matches(instance, expected_version=0)
        if outcome is not SaveOutcome.SUCCESS:
            # Only possible if the id factory repeats itself.
            raise StoreError(f"Instance id '{instance.id}' is already taken")

        logger.info(
            "Instance started",
            extra={
                "instance_id": instance.id,
                "definition_id": definition.id,
                "state": instance.current_state,
            },
        )
        return instance

    def execute(self, instance_id: str, transition_id: str) -> WorkflowInstance:
        return self._coordinator.execute(instance_id, transition_id)

    def get_instance_status(self, instance_id: str) -> WorkflowInstance:
        instance = self._store.load_instance(instance_id)
        if instance is None:
            raise InstanceNotFound(instance_id)
        return instance


def build_store(settings: EngineSettings) -> WorkflowStore:
    if settings.store_backend == "memory":
        return InMemoryWorkflowStore()
    return JsonFileWorkflowStore(settings.state_path)


def build_service(settings: EngineSettings) -> WorkflowService:
    store = build_store(settings)
    coordinator = ExecutionCoordinator(
        store,
        max_attempts=settings.max_execute_attempts,
        base_delay_seconds=settings.retry_base_delay_seconds,
    )
    return WorkflowService(
        store=store,
        validator=DefinitionValidator(settings.validation_limits()),
        coordinator=coordinator,
    )
