"""HR workflow command line interface.

Provides operational tools for:
- Maintenance deletes under the audited override
- Audit trail queries
- Creating the schema on a fresh database

Usage:
    python -m hr_workflow.cli maintenance-delete --organization-id X --actor-id Y \\
        --entity-type journal_entry --entity-id Z --reason "orphaned posting"
    python -m hr_workflow.cli audit --organization-id X --actor-id Y --action leave_approved
    python -m hr_workflow.cli --database-url sqlite+aiosqlite:///hr.db create-schema
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from collections.abc import Awaitable, Callable
from uuid import UUID

from hr_workflow.audit.logger import AuditFilter
from hr_workflow.config import get_settings
from hr_workflow.database import database
from hr_workflow.errors import WorkflowError
from hr_workflow.logging_config import configure_logging
from hr_workflow.services.workflow_service import WorkflowService


def parse_uuid(s: str) -> UUID:
    """Parse UUID string."""
    return UUID(s)


class WorkflowCli:
    """HR workflow command line interface."""

    def __init__(self) -> None:
        self.parser = self._build_parser()

    def _build_parser(self) -> argparse.ArgumentParser:
        """Build argument parser."""
        parser = argparse.ArgumentParser(
            prog="python -m hr_workflow.cli",
            description="HR workflow operational tools",
        )
        parser.add_argument("--database-url", help="Override DATABASE_URL")
        subparsers = parser.add_subparsers(dest="command", help="Commands")

        delete = subparsers.add_parser(
            "maintenance-delete",
            help="Delete a guarded record under the audited maintenance override",
        )
        delete.add_argument("--organization-id", type=parse_uuid, required=True)
        delete.add_argument("--actor-id", type=parse_uuid, required=True, help="Admin principal performing the correction")
        delete.add_argument("--entity-type", required=True, help="Entity type, or journal_entry")
        delete.add_argument("--entity-id", type=parse_uuid, required=True)
        delete.add_argument("--reason", required=True, help="Why the correction is needed (audited)")

        audit = subparsers.add_parser("audit", help="Print audit entries as JSON lines")
        audit.add_argument("--organization-id", type=parse_uuid, required=True)
        audit.add_argument("--actor-id", type=parse_uuid, required=True, help="Admin or HR principal running the query")
        audit.add_argument("--action", help="Filter by action, e.g. leave_approved")
        audit.add_argument("--entity-type", help="Filter by entity type")
        audit.add_argument("--by", type=parse_uuid, dest="performed_by", help="Filter by acting principal")
        audit.add_argument("--limit", type=int, default=None)

        subparsers.add_parser("create-schema", help="Create missing tables (development databases)")

        return parser

    def run(self, args: list[str] | None = None) -> int:
        """Run the CLI with given arguments."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 1

        configure_logging(get_settings().log_level)
        handlers: dict[str, Callable[[argparse.Namespace], Awaitable[int]]] = {
            "maintenance-delete": self._cmd_maintenance_delete,
            "audit": self._cmd_audit,
            "create-schema": self._cmd_create_schema,
        }
        handler = handlers.get(parsed.command)
        if handler is None:
            print(f"Unknown command: {parsed.command}", file=sys.stderr)
            return 1

        database.configure(parsed.database_url)
        try:
            return asyncio.run(self._run(handler, parsed))
        except (WorkflowError, ValueError) as exc:
            print(f"Error: {exc}", file=sys.stderr)
            return 2

    async def _run(self, handler: Callable[[argparse.Namespace], Awaitable[int]], parsed: argparse.Namespace) -> int:
        try:
            return await handler(parsed)
        finally:
            await database.dispose()

    async def _cmd_maintenance_delete(self, args: argparse.Namespace) -> int:
        """Delete a guarded record under the override."""
        try:
            async with database.session() as session:
                service = WorkflowService(session)
                ctx = await service.context(args.actor_id, args.organization_id)
                await service.maintenance_delete(ctx, args.entity_type, args.entity_id, args.reason)
        except (WorkflowError, ValueError) as exc:
            # The attempt was rolled back; record it in a unit of work of its own.
            async with database.session() as session:
                service = WorkflowService(session)
                ctx = await service.context(args.actor_id, args.organization_id)
                await service.record_maintenance_failure(ctx, args.entity_type, args.entity_id, args.reason, exc)
            raise
        print(f"Deleted {args.entity_type} {args.entity_id}")
        return 0

    async def _cmd_audit(self, args: argparse.Namespace) -> int:
        """Print audit entries, newest first."""
        async with database.session() as session:
            service = WorkflowService(session)
            ctx = await service.context(args.actor_id, args.organization_id)
            listing = await service.list_audit(
                ctx,
                AuditFilter(
                    action=args.action,
                    entity_type=args.entity_type,
                    actor_id=args.performed_by,
                    limit=args.limit,
                ),
            )
            if not listing:
                print(f"Denied: {listing.decision.reason.value}", file=sys.stderr)
                return 1
            for entry in listing.entries:
                print(json.dumps(entry.to_dict(), default=str, sort_keys=True))
        return 0

    async def _cmd_create_schema(self, args: argparse.Namespace) -> int:
        await database.create_schema()
        print("Schema created")
        return 0


def main() -> int:
    """CLI entry point."""
    cli = WorkflowCli()
    return cli.run()


if __name__ == "__main__":
    sys.exit(main())
