#!/usr/bin/env python3
"""CLI for planning and applying backlog reorders."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from dotenv import load_dotenv

# Support running as a standalone script from repo root.
REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from backlog_sync.client import BacklogSyncClient
from backlog_sync.workitem.errors import (
    BacklogSyncError,
    InvalidSpec,
    ReorderPreconditionError,
)
from backlog_sync.workitem.types import Anchor, QuerySpec, ReorderIntent


def _add_common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--config", default=None, help="Path to backlog_sync.yaml")
    parser.add_argument("--project", required=True)
    parser.add_argument("--type", action="append", dest="work_item_types", default=[])
    parser.add_argument("--state", action="append", dest="states", default=[])
    parser.add_argument("--iteration", default=None, dest="iteration_path")
    parser.add_argument("--area", default=None, dest="area_path")
    parser.add_argument("--tag", action="append", dest="tags", default=[])
    parser.add_argument("--assignee", default=None)
    parser.add_argument(
        "--move",
        action="append",
        type=int,
        dest="item_ids",
        default=[],
        help="Work item id to move (repeatable, in the desired order)",
    )

    anchor = parser.add_mutually_exclusive_group(required=True)
    anchor.add_argument("--top", action="store_true")
    anchor.add_argument("--bottom", action="store_true")
    anchor.add_argument("--after", type=int, default=None)
    anchor.add_argument("--before", type=int, default=None)


def _parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Backlog reorder CLI")
    subparsers = parser.add_subparsers(dest="command", required=True)

    plan_parser = subparsers.add_parser("plan", help="Compute new order values only")
    _add_common(plan_parser)

    apply_parser = subparsers.add_parser("apply", help="Compute and apply new order values")
    _add_common(apply_parser)
    apply_parser.add_argument(
        "--deadline",
        type=float,
        default=None,
        help="Overall time budget in seconds",
    )

    return parser


def build_query_spec(args: argparse.Namespace) -> QuerySpec:
    return QuerySpec(
        project=args.project,
        work_item_types=args.work_item_types or None,
        states=args.states or None,
        iteration_path=args.iteration_path,
        area_path=args.area_path,
        tags=args.tags or None,
        assignee=args.assignee,
    )


def build_intent(args: argparse.Namespace) -> ReorderIntent:
    if args.top:
        anchor = Anchor.top()
    elif args.bottom:
        anchor = Anchor.bottom()
    elif args.after is not None:
        anchor = Anchor.after(args.after)
    else:
        anchor = Anchor.before(args.before)
    return ReorderIntent(tuple(args.item_ids), anchor)


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    args = _parser().parse_args(argv)

    try:
        spec = build_query_spec(args)
        intent = build_intent(args)
        client = BacklogSyncClient.from_config(args.config)

        if args.command == "plan":
            plan = client.plan(spec, intent)
            print(json.dumps(plan.to_dict(), indent=2))
            return 0

        if args.command == "apply":
            report = client.reorder(spec, intent, deadline_s=args.deadline)
            print(json.dumps(report.to_dict(), indent=2))
            return 0 if report.all_applied else 1
    except (InvalidSpec, ReorderPreconditionError) as err:
        print(f"invalid:{err}", file=sys.stderr)
        return 2
    except BacklogSyncError as err:
        print(f"error:{err}", file=sys.stderr)
        return 1
    except ValueError as err:
        print(f"config:{err}", file=sys.stderr)
        return 2

    return 1


if __name__ == "__main__":
    raise SystemExit(main())
