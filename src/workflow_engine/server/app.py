"""FastAPI app factory.

Endpoints are intentionally thin wrappers over :class:`WorkflowService`; every
error, expected or not, is rendered as an :class:`ApiError` body by exception handlers.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from workflow_engine import __version__
from workflow_engine.engine.config import EngineSettings
from workflow_engine.engine.service import WorkflowService, build_service
from workflow_engine.engine.workflow.errors import (
    ConcurrencyExhausted,
    NotFound,
    ValidationRejected,
    WorkflowError,
)
from workflow_engine.engine.workflow.models import (
    CreateDefinitionRequest,
    WorkflowDefinition,
    WorkflowInstance,
)
from workflow_engine.server.config import ServerSettings
from workflow_engine.server.middleware import (
    CORRELATION_ID_HEADER,
    CorrelationIdMiddleware,
    RequestTimingMiddleware,
)
from workflow_engine.server.models import ApiError, ExecuteRequest

logger = logging.getLogger(__name__)

MALFORMED_REQUEST_CODE = "malformed_request"


def _error_response(request: Request, exc: Exception) -> JSONResponse:
    correlation_id = getattr(request.state, "correlation_id", None)

    if isinstance(exc, ValidationRejected):
        error = ApiError(
            type="ValidationError",
            title="Validation Failed",
            detail=exc.reason,
            status=400,
            code=exc.code.value,
            identifiers=list(exc.identifiers),
            correlation_id=correlation_id,
            timestamp=datetime.now(tz=UTC),
        )
        logger.warning(
            "Request rejected",
            extra={"path": request.url.path, "code": exc.code.value},
        )
    elif isinstance(exc, NotFound):
        error = ApiError(
            type="NotFound",
            title="Resource Not Found",
            detail=str(exc),
            status=404,
            identifiers=[exc.identifier],
            correlation_id=correlation_id,
            timestamp=datetime.now(tz=UTC),
        )
        logger.warning("Resource not found", extra={"path": request.url.path})
    elif isinstance(exc, ConcurrencyExhausted):
        error = ApiError(
            type="ConcurrencyError",
            title="Conflict Detected",
            detail=str(exc),
            status=409,
            identifiers=[exc.instance_id],
            correlation_id=correlation_id,
            timestamp=datetime.now(tz=UTC),
        )
        logger.info("Concurrency conflict", extra={"path": request.url.path})
    else:
        # Store failures and bugs: details stay in the log, not in the response.
        error = ApiError(
            type="InternalServerError",
            title="An unexpected error occurred",
            detail="Something went wrong on our end. Please try again later.",
            status=500,
            correlation_id=correlation_id,
            timestamp=datetime.now(tz=UTC),
        )
        logger.error(
            "Unhandled error",
            exc_info=(type(exc), exc, exc.__traceback__),
            extra={
                "path": request.url.path,
                "method": request.method,
                "error_type": type(exc).__name__,
            },
        )

    response = JSONResponse(status_code=error.status, content=error.model_dump(mode="json"))
    if correlation_id:
        response.headers[CORRELATION_ID_HEADER] = correlation_id
    return response


def _malformed_request_response(request: Request, exc: RequestValidationError) -> JSONResponse:
    locations = [".".join(str(part) for part in err["loc"]) for err in exc.errors()]
    problems = [f"{loc}: {err['msg']}" for loc, err in zip(locations, exc.errors())]
    error = ApiError(
        type="ValidationError",
        title="Malformed Request",
        detail="; ".join(problems),
        status=400,
        code=MALFORMED_REQUEST_CODE,
        identifiers=locations,
        correlation_id=getattr(request.state, "correlation_id", None),
        timestamp=datetime.now(tz=UTC),
    )
    logger.warning(
        "Malformed request", extra={"path": request.url.path, "locations": locations}
    )
    return JSONResponse(status_code=400, content=error.model_dump(mode="json"))


def create_app(service: WorkflowService | None = None) -> FastAPI:
    settings = ServerSettings()
    if service is None:
        service = build_service(EngineSettings())

    app = FastAPI(
        title="Workflow Engine",
        version=__version__,
        description="REST API for defining state machines and running instances of them.",
        openapi_url="/api/openapi.json",
        docs_url="/api/docs",
        redoc_url="/api/redoc",
    )

    # Expose settings and service for request handlers that want to read them.
    app.state.settings = settings
    app.state.service = service

    # Added last runs first: correlation id must be set before timing logs.
    app.add_middleware(RequestTimingMiddleware, slow_request_ms=settings.slow_request_ms)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.parsed_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Correlation-ID", "X-Response-Time-ms"],
    )
    app.add_middleware(CorrelationIdMiddleware)

    @app.exception_handler(WorkflowError)
    async def workflow_error_handler(request: Request, exc: WorkflowError) -> JSONResponse:
        return _error_response(request, exc)

    @app.exception_handler(RequestValidationError)
    async def malformed_request_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return _malformed_request_response(request, exc)

    # Runs outside the middleware stack, so the correlation header is set explicitly.
    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        return _error_response(request, exc)

    @app.get("/api/health")
    def health() -> dict[str, str]:
        return {"status": "ok", "version": __version__}

    @app.post("/api/workflows", response_model=WorkflowDefinition, status_code=201)
    def create_workflow(req: CreateDefinitionRequest) -> WorkflowDefinition:
        return service.create_definition(req)

    @app.get("/api/workflows", response_model=list[WorkflowDefinition])
    def list_workflows() -> list[WorkflowDefinition]:
        return service.list_definitions()

    @app.get("/api/workflows/{definition_id}", response_model=WorkflowDefinition)
    def get_workflow(definition_id: str) -> WorkflowDefinition:
        return service.get_definition(definition_id)

    @app.post(
        "/api/workflows/{definition_id}/instances",
        response_model=WorkflowInstance,
        status_code=201,
    )
    def start_instance(definition_id: str) -> WorkflowInstance:
        return service.start_instance(definition_id)

    @app.get("/api/instances/{instance_id}", response_model=WorkflowInstance)
    def get_instance(instance_id: str) -> WorkflowInstance:
        return service.get_instance_status(instance_id)

    @app.post("/api/instances/{instance_id}/execute", response_model=WorkflowInstance)
    def execute(instance_id: str, req: ExecuteRequest) -> WorkflowInstance:
        return service.execute(instance_id, req.transition_id)

    return app
