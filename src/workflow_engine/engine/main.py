"""CLI entrypoint for the workflow engine.

Commands print JSON on stdout; logs go to stderr.

Exit codes:
- 0 success
- 1 unexpected/internal failure (including store errors)
- 2 configuration or input file error
- 3 rejected (invalid definition or illegal transition)
- 4 definition or instance not found
- 5 concurrent modification; retrying the same command may succeed
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from pydantic import BaseModel, ValidationError

from workflow_engine import __version__
from workflow_engine.engine.config import EngineSettings
from workflow_engine.engine.logging import configure_logging
from workflow_engine.engine.service import WorkflowService, build_service
from workflow_engine.engine.workflow.errors import (
    ConcurrencyExhausted,
    NotFound,
    ValidationRejected,
)
from workflow_engine.engine.workflow.models import CreateDefinitionRequest
from workflow_engine.engine.workflow.results import Rejected

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="workflow-engine",
        description="Define state machines and run instances of them",
    )
    parser.add_argument("--version", action="version", version=f"workflow-engine {__version__}")

    subparsers = parser.add_subparsers(dest="command", required=True)

    validate = subparsers.add_parser(
        "validate", help="Check a definition file without storing it"
    )
    validate.add_argument("file", type=Path, help="Path to a JSON workflow definition")

    create = subparsers.add_parser("create-definition", help="Validate and store a definition")
    create.add_argument("file", type=Path, help="Path to a JSON workflow definition")

    subparsers.add_parser("list-definitions", help="List stored definitions")

    show = subparsers.add_parser("show-definition", help="Print a stored definition")
    show.add_argument("definition_id")

    start = subparsers.add_parser("start", help="Start a new instance of a definition")
    start.add_argument("definition_id")

    execute = subparsers.add_parser("execute", help="Fire a transition on an instance")
    execute.add_argument("instance_id")
    execute.add_argument("transition_id")

    status = subparsers.add_parser("status", help="Print an instance's current state")
    status.add_argument("instance_id")

    serve = subparsers.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default=None, help="Bind address (default from settings)")
    serve.add_argument("--port", type=int, default=None, help="Port (default from settings)")

    return parser


def _print_json(value: BaseModel | list[BaseModel] | dict[str, object]) -> None:
    if isinstance(value, BaseModel):
        payload: object = value.model_dump(mode="json")
    elif isinstance(value, list):
        payload = [item.model_dump(mode="json") for item in value]
    else:
        payload = value
    print(json.dumps(payload, indent=2, ensure_ascii=False))


def _load_request(path: Path) -> CreateDefinitionRequest:
    return CreateDefinitionRequest.model_validate_json(path.read_text(encoding="utf-8"))


def _run(args: argparse.Namespace, service: WorkflowService) -> int:
    if args.command == "validate":
        result = service.validate_definition(_load_request(args.file))
        if isinstance(result, Rejected):
            _print_json(
                {
                    "valid": False,
                    "code": result.code.value,
                    "reason": result.reason,
                    "identifiers": list(result.identifiers),
                }
            )
            return 3
        _print_json({"valid": True, "definition_id": result.definition.id})
        return 0

    if args.command == "create-definition":
        _print_json(service.create_definition(_load_request(args.file)))
        return 0

    if args.command == "list-definitions":
        _print_json(service.list_definitions())
        return 0

    if args.command == "show-definition":
        _print_json(service.get_definition(args.definition_id))
        return 0

    if args.command == "start":
        _print_json(service.start_instance(args.definition_id))
        return 0

    if args.command == "execute":
        _print_json(service.execute(args.instance_id, args.transition_id))
        return 0

    if args.command == "status":
        _print_json(service.get_instance_status(args.instance_id))
        return 0

    logger.error("Unknown command", extra={"command": args.command})
    return 2


def _serve(args: argparse.Namespace) -> int:
    import uvicorn

    from workflow_engine.server.app import create_app
    from workflow_engine.server.config import ServerSettings

    server_settings = ServerSettings()
    uvicorn.run(
        create_app(),
        host=args.host or server_settings.host,
        port=args.port or server_settings.port,
        log_config=None,
    )
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = EngineSettings()
    except ValidationError as e:
        # Logging isn't configured yet; keep it simple and actionable.
        print("Configuration error (check your .env):", file=sys.stderr)
        print(e, file=sys.stderr)
        return 2

    configure_logging(settings.log_level)

    if args.command == "serve":
        return _serve(args)

    try:
        return _run(args, build_service(settings))

    except (OSError, ValidationError) as e:
        print(f"Cannot read definition file: {e}", file=sys.stderr)
        return 2

    except ValidationRejected as e:
        print(f"Rejected ({e.code.value}): {e.reason}", file=sys.stderr)
        return 3

    except NotFound as e:
        print(str(e), file=sys.stderr)
        return 4

    except ConcurrencyExhausted as e:
        print(str(e), file=sys.stderr)
        return 5

    except Exception:
        logger.exception("Command failed")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
