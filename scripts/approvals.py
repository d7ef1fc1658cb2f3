#!/usr/bin/env python3
"""
Operate the approval workflow from the command line.

Usage:
    python3 scripts/approvals.py init-db
    python3 scripts/approvals.py seed-workflows
    python3 scripts/approvals.py inbox --user <user-id> [--type trip|report]
    python3 scripts/approvals.py approve <entity-id> --actor-id <id> --actor-name <name>
    python3 scripts/approvals.py reject <entity-id> --actor-id <id> --actor-name <name> --comments "..."
    python3 scripts/approvals.py show <entity-id> [--json]

Examples:
    # Create the tables and load the seed workflows from the default settings
    python3 scripts/approvals.py init-db
    python3 scripts/approvals.py seed-workflows

    # What is waiting for user 5?
    python3 scripts/approvals.py inbox --user 5

    # Use another settings file or database
    APPROVALS_CONFIG=/etc/approvals.yaml python3 scripts/approvals.py inbox --user 5
    python3 scripts/approvals.py --db-url postgresql+psycopg://u:p@host/db show TRIP-001
"""

import argparse
import json
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

W = 72


# =============================================================================
# Formatting helpers
# =============================================================================


def banner(title: str) -> None:
    print()
    print("=" * W)
    print(f"  {title}")
    print("=" * W)


def _print_entity(entity, progress=None) -> None:
    banner(f"{entity.subject_type.value.upper()} {entity.entity_id}")
    print(f"  Owner:   {entity.owner_key}")
    print(f"  Status:  {entity.status}")
    if progress is not None:
        print(f"  Stages:  {progress.completed_stages}/{progress.total_stages} completed")
        if progress.current_stage is not None:
            stage = progress.current_stage
            print(
                f"  Waiting: stage {stage.sequence_number} "
                f"({stage.role_label}, approver {stage.approver_id})"
            )
    print()
    print(f"  {'When':<26} {'Actor':<20} {'Role':<18} Status")
    print(f"  {'-'*26} {'-'*20} {'-'*18} {'-'*10}")
    for action in entity.approval_history:
        print(
            f"  {action.timestamp.isoformat():<26} {action.actor_name:<20} "
            f"{action.actor_role:<18} {action.result_status}"
        )
        if action.comments:
            print(f"  {'':<26} \"{action.comments}\"")


# =============================================================================
# Commands
# =============================================================================


def cmd_init_db(args, settings) -> int:
    from approval_kernel.db.engine import create_tables

    create_tables()
    print("Tables created.")
    return 0


def cmd_seed_workflows(args, settings) -> int:
    from approval_config import seed_workflows
    from approval_kernel.db.engine import session_scope
    from approval_kernel.services.workflow_store import WorkflowStore

    with session_scope() as session:
        saved = seed_workflows(WorkflowStore(session), settings, actor_id=args.actor_id)
    for workflow in saved:
        print(
            f"  {workflow.owner_key:<16} {workflow.subject_type.value:<8} "
            f"{len(workflow.stages)} stage(s)  v{workflow.version}"
        )
    print(f"Seeded {len(saved)} workflow(s).")
    return 0


def cmd_inbox(args, settings) -> int:
    from approval_kernel.db.engine import session_scope
    from approval_kernel.services.approval_service import ApprovalService

    with session_scope() as session:
        pending = ApprovalService(session).pending_for_user(
            args.user, subject_type=args.type,
        )
    if not pending:
        print(f"Nothing awaiting approval by {args.user}.")
        return 0
    print(f"  {'ID':<20} {'Type':<8} {'Owner':<16} Status")
    print(f"  {'-'*20} {'-'*8} {'-'*16} {'-'*10}")
    for entity in pending:
        print(
            f"  {entity.entity_id:<20} {entity.subject_type.value:<8} "
            f"{entity.owner_key:<16} {entity.status}"
        )
    return 0


def _cmd_decide(args, settings, decision: str) -> int:
    from approval_kernel.db.engine import session_scope
    from approval_kernel.domain.approval import Actor
    from approval_kernel.services.approval_service import ApprovalService

    actor = Actor(actor_id=args.actor_id, name=args.actor_name, role_label=args.role)
    with session_scope() as session:
        service = ApprovalService(session)
        if decision == "approve":
            entity = service.approve(args.entity_id, actor, args.comments)
        else:
            entity = service.reject(args.entity_id, actor, args.comments)
    print(f"{entity.entity_id} is now {entity.status}.")
    return 0


def cmd_approve(args, settings) -> int:
    return _cmd_decide(args, settings, "approve")


def cmd_reject(args, settings) -> int:
    return _cmd_decide(args, settings, "reject")


def cmd_show(args, settings) -> int:
    from approval_kernel.db.engine import session_scope
    from approval_kernel.services.approval_service import ApprovalService

    with session_scope() as session:
        service = ApprovalService(session)
        entity = service.get_entity(args.entity_id)
        progress = service.get_progress(args.entity_id)

    if args.json:
        print(json.dumps(entity.to_document(), indent=2))
    else:
        _print_entity(entity, progress)
    return 0


# =============================================================================
# Entry point
# =============================================================================


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Sequential approval workflow operations")
    parser.add_argument("--config", default=None, help="Settings YAML (default: APPROVALS_CONFIG or packaged defaults)")
    parser.add_argument("--db-url", default=None, help="Override the database URL")
    parser.add_argument("-v", "--verbose", action="store_true", help="Emit structured logs to stderr")

    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("init-db", help="Create the approval tables")
    p.set_defaults(func=cmd_init_db)

    p = sub.add_parser("seed-workflows", help="Save the workflows listed in the settings file")
    p.add_argument("--actor-id", default=None)
    p.set_defaults(func=cmd_seed_workflows)

    p = sub.add_parser("inbox", help="List entities awaiting a user's approval")
    p.add_argument("--user", required=True)
    p.add_argument("--type", choices=["trip", "report"], default=None)
    p.set_defaults(func=cmd_inbox)

    for name, func in (("approve", cmd_approve), ("reject", cmd_reject)):
        p = sub.add_parser(name, help=f"{name.capitalize()} at the current stage")
        p.add_argument("entity_id")
        p.add_argument("--actor-id", required=True)
        p.add_argument("--actor-name", required=True)
        p.add_argument("--role", default="Approver")
        p.add_argument("--comments", default=None)
        p.set_defaults(func=func)

    p = sub.add_parser("show", help="Print an entity and its approval history")
    p.add_argument("entity_id")
    p.add_argument("--json", action="store_true", help="Print the stored document shape")
    p.set_defaults(func=cmd_show)

    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    from approval_config import get_active_settings
    from approval_kernel.db.engine import init_engine_from_url
    from approval_kernel.exceptions import ApprovalKernelError
    from approval_kernel.logging_config import configure_logging

    if not args.verbose:
        logging.disable(logging.CRITICAL)

    try:
        try:
            settings = get_active_settings(args.config)
        except (OSError, ValueError, KeyError) as exc:
            print(f"  ERROR: cannot load settings: {exc}", file=sys.stderr)
            return 1

        configure_logging(level=settings.logging.level)
        init_engine_from_url(
            args.db_url or settings.database.url,
            echo=settings.database.echo,
            pool_size=settings.database.pool_size,
            max_overflow=settings.database.max_overflow,
        )

        try:
            return args.func(args, settings)
        except ApprovalKernelError as exc:
            print(f"  ERROR [{exc.code}]: {exc}", file=sys.stderr)
            return 1
    finally:
        if not args.verbose:
            logging.disable(logging.NOTSET)


if __name__ == "__main__":
    sys.exit(main())
