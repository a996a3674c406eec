"""Command-line interface for inspecting a JSON-backed workflow store."""

from __future__ import annotations

import argparse
import json
import sys
from collections.abc import Sequence
from pathlib import Path

from pydantic import BaseModel

from .audit import history_is_consistent
from .config import WorkflowSettings
from .exceptions import WorkflowError
from .logging_config import configure_logging
from .notifications import InMemoryNotifier
from .seed import seed_requests, seed_users
from .storage import JsonFileRecordStore
from .workflow import WorkflowService


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="travel-workflow",
        description="Seed and inspect travel requests stored in a JSON file.",
    )
    parser.add_argument(
        "--config", type=Path, default=None, help="Path to a workflow settings YAML file."
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    seed = subparsers.add_parser("seed", help="Write sample users and requests.")
    seed.add_argument("store", type=Path, help="Path to the JSON store.")

    show = subparsers.add_parser("show", help="Print a request with its history.")
    show.add_argument("store", type=Path, help="Path to the JSON store.")
    show.add_argument("request_id", type=int)

    pending = subparsers.add_parser("pending", help="List requests awaiting a user.")
    pending.add_argument("store", type=Path, help="Path to the JSON store.")
    pending.add_argument("user_id", type=int)

    audit = subparsers.add_parser("audit", help="Print the audit log of a request.")
    audit.add_argument("store", type=Path, help="Path to the JSON store.")
    audit.add_argument("request_id", type=int)
    return parser


def _dump(models: BaseModel | Sequence[BaseModel]) -> str:
    if isinstance(models, BaseModel):
        payload: object = models.model_dump(mode="json", by_alias=True)
    else:
        payload = [model.model_dump(mode="json", by_alias=True) for model in models]
    return json.dumps(payload, indent=2)


def _run(args: argparse.Namespace, service: WorkflowService) -> str:
    if args.command == "seed":
        created_users = seed_users(service.store)
        request_ids = seed_requests(service)
        return (
            f"Seeded {len(created_users)} users and requests "
            f"{', '.join(str(request_id) for request_id in request_ids)} into {args.store}"
        )
    if args.command == "show":
        request = service.get_request(args.request_id)
        if not history_is_consistent(request):
            print(
                f"Warning: history of request {args.request_id} does not replay to its status",
                file=sys.stderr,
            )
        return _dump(request)
    if args.command == "pending":
        return _dump(service.get_pending_approvals(args.user_id))
    return _dump(service.get_request_audit_logs(args.request_id))


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    try:
        settings = WorkflowSettings.from_file(args.config)
        configure_logging(settings.log_level)
        store = JsonFileRecordStore(args.store)
        service = WorkflowService(store, notifier=InMemoryNotifier(), settings=settings)
        output = _run(args, service)
    except WorkflowError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    print(output)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
