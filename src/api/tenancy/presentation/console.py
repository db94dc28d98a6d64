"""Operator console for tenancy administration.

Usage:
    tenancy-console provision "Nature Village" nature-village nv@example.com
    tenancy-console sweep
    tenancy-console verify
    tenancy-console reassign-owner <tenant-id> new-owner@example.com
    tenancy-console grant-role <identity-id> administrator
    tenancy-console revoke-role <identity-id> administrator

Environment Variables:
    TENANCY_DB_*: Database connection (see DatabaseSettings)
    TENANCY_*: Provisioning behaviour (see ProvisioningSettings)
"""

from __future__ import annotations

import argparse
import asyncio
from enum import IntEnum
from typing import Sequence

from rich import box
from rich.console import Console
from rich.table import Table

from infrastructure.database.dependencies import (
    close_database_connections,
    get_write_engine,
    open_write_session,
)
from infrastructure.logging import configure_logging
from infrastructure.settings import get_provisioning_settings
from shared_kernel.audit.exceptions import AuditWriteFailedError
from tenancy.application.value_objects import ProvisioningResult, SweepReport
from tenancy.dependencies import (
    TenancyServices,
    build_services,
    get_audit_engine,
    sweep_lock_for,
)
from tenancy.domain.exceptions import InvalidStatusTransitionError
from tenancy.domain.invariants import InvariantViolation
from tenancy.domain.value_objects import IdentityId, TenantId
from tenancy.ports.exceptions import (
    ConcurrentModificationError,
    ConflictError,
    IdentityCreateFailedError,
    InvariantViolationError,
    ProvisioningInProgressError,
    SweepInProgressError,
    TenantNotFoundError,
)

console = Console()


class ConsoleExitCode(IntEnum):
    """Process exit codes of the operator console."""

    SUCCESS = 0
    INTERNAL_ERROR = 1
    CONFLICT = 2
    INVARIANT_VIOLATIONS = 3


def build_parser() -> argparse.ArgumentParser:
    """Build the command-line parser."""
    parser = argparse.ArgumentParser(
        prog="tenancy-console",
        description="Tenant provisioning and integrity administration",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        "--actor",
        default=None,
        help="Operator name recorded in the audit log",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        help="Minimum log level written alongside the console output",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    provision = commands.add_parser("provision", help="Provision a tenant")
    provision.add_argument("tenant_name", help="Restaurant display name")
    provision.add_argument("slug", help="URL handle, unique among active tenants")
    provision.add_argument("owner_email", help="Email of the owning identity")
    provision.add_argument(
        "--contact-email", default=None, help="Public contact email"
    )
    provision.add_argument(
        "--idempotency-key",
        default=None,
        help="Repeated runs with the same key provision once",
    )

    commands.add_parser("sweep", help="Repair ownership drift and report the rest")
    commands.add_parser("verify", help="Report integrity violations")

    reassign = commands.add_parser(
        "reassign-owner", help="Move a tenant to a new dedicated owner"
    )
    reassign.add_argument("tenant_id", help="Tenant ID (ULID)")
    reassign.add_argument("owner_email", help="Email for the new owner identity")

    grant = commands.add_parser("grant-role", help="Grant an access role")
    grant.add_argument("identity_id")
    grant.add_argument("role")

    revoke = commands.add_parser("revoke-role", help="Revoke an access role")
    revoke.add_argument("identity_id")
    revoke.add_argument("role")

    return parser


async def execute(
    args: argparse.Namespace,
    services: TenancyServices,
    out: Console = console,
) -> ConsoleExitCode:
    """Run one parsed command against ``services`` and render its outcome."""
    try:
        return await _dispatch(args, services, out)

    except InvariantViolationError as e:
        render_violations(e.violations, out, title="Blocking violations")
        return ConsoleExitCode.INVARIANT_VIOLATIONS
    except (
        ConflictError,
        ConcurrentModificationError,
        ProvisioningInProgressError,
        SweepInProgressError,
    ) as e:
        out.print(f"[bold yellow]Conflict:[/] {e}")
        return ConsoleExitCode.CONFLICT
    except (
        AuditWriteFailedError,
        IdentityCreateFailedError,
        InvalidStatusTransitionError,
        TenantNotFoundError,
        ValueError,
    ) as e:
        out.print(f"[bold red]Error:[/] {e}")
        return ConsoleExitCode.INTERNAL_ERROR


async def _dispatch(
    args: argparse.Namespace,
    services: TenancyServices,
    out: Console,
) -> ConsoleExitCode:
    if args.command == "provision":
        result = await services.provisioning.provision(
            args.tenant_name,
            args.slug,
            args.owner_email,
            contact_email=args.contact_email,
            idempotency_key=args.idempotency_key,
            actor=args.actor,
        )
        render_result(result, out)
        return ConsoleExitCode.SUCCESS

    if args.command == "sweep":
        report = await services.sweep.run(actor=args.actor)
        render_sweep_report(report, out)
        if report.is_clean:
            return ConsoleExitCode.SUCCESS
        return ConsoleExitCode.INVARIANT_VIOLATIONS

    if args.command == "verify":
        informational = await services.invariants.verify_or_raise()
        if informational:
            render_violations(informational, out, title="Informational findings")
        out.print("[green]✓[/] No blocking violations")
        return ConsoleExitCode.SUCCESS

    if args.command == "reassign-owner":
        result = await services.provisioning.reassign_owner(
            TenantId.from_string(args.tenant_id),
            args.owner_email,
            actor=args.actor,
        )
        render_result(result, out)
        return ConsoleExitCode.SUCCESS

    if args.command == "grant-role":
        assignment = await services.access_roles.grant(
            IdentityId.from_string(args.identity_id),
            args.role,
            granted_by=args.actor,
        )
        out.print(
            f"[green]✓[/] {assignment.identity_id} holds "
            f"[bold]{assignment.role}[/] ({assignment.status.value})"
        )
        return ConsoleExitCode.SUCCESS

    if args.command == "revoke-role":
        revoked = await services.access_roles.revoke(
            IdentityId.from_string(args.identity_id), args.role
        )
        if revoked:
            out.print(f"[green]✓[/] Revoked [bold]{args.role}[/]")
        else:
            out.print(f"[dim]{args.role} was not active; nothing changed[/]")
        return ConsoleExitCode.SUCCESS

    raise ValueError(f"Unknown command: {args.command}")


def render_result(result: ProvisioningResult, out: Console) -> None:
    table = Table(show_header=False, box=box.SIMPLE, padding=(0, 1))
    table.add_column("Field", style="dim")
    table.add_column("Value", style="bold")
    table.add_row("Tenant", result.tenant_id.value)
    table.add_row("Owner", result.identity_id.value)
    table.add_row("Ledger", result.ledger_id.value if result.ledger_id else "-")
    if result.idempotent:
        table.add_row("Replay", "[yellow]returned earlier attempt[/]")
    out.print(table)


def render_violations(
    violations: Sequence[InvariantViolation],
    out: Console,
    title: str = "Violations",
) -> None:
    table = Table(title=title, show_header=True, box=box.SIMPLE, padding=(0, 1))
    table.add_column("Kind", style="cyan")
    table.add_column("Tenants")
    table.add_column("Identity", style="dim")
    table.add_column("Message", ratio=2)

    for violation in violations:
        kind_style = "bold red" if violation.is_blocking else "yellow"
        table.add_row(
            f"[{kind_style}]{violation.kind.value}[/]",
            "\n".join(violation.tenant_ids) or "-",
            violation.identity_id or "-",
            violation.message,
        )
    out.print(table)


def render_sweep_report(report: SweepReport, out: Console) -> None:
    """Render repairs, skips, findings and errors of one sweep."""
    if report.repairs or report.skipped:
        table = Table(title="Repairs", show_header=True, box=box.SIMPLE)
        table.add_column("Kind", style="cyan")
        table.add_column("Row")
        table.add_column("Field", style="dim")
        table.add_column("Before")
        table.add_column("After", style="green")
        for action in report.repairs:
            table.add_row(
                action.kind.value,
                f"{action.table}:{action.row_id}",
                action.field,
                action.before or "-",
                action.after or "-",
            )
        for action in report.skipped:
            table.add_row(
                f"[dim]{action.kind.value} (skipped)[/]",
                f"{action.table}:{action.row_id}",
                action.field,
                action.before or "-",
                "[dim]row changed[/]",
            )
        out.print(table)
    else:
        out.print("[dim]No repairs needed[/]")

    if report.findings:
        render_violations(report.findings, out, title="Findings")

    for error in report.errors:
        out.print(
            f"[bold red]Repair failed:[/] {error.kind.value} "
            f"{error.row_id}: {error.error}"
        )

    remaining = report.blocking_violations_after
    if remaining:
        out.print(f"[bold red]{len(remaining)} blocking violation(s) remain[/]")
    elif not report.errors:
        out.print("[green]✓[/] Store is consistent")


async def _run(args: argparse.Namespace, out: Console) -> ConsoleExitCode:
    settings = get_provisioning_settings()
    try:
        async with open_write_session() as session:
            get_audit_engine().attach(session)
            services = build_services(
                session, sweep_lock_for(get_write_engine()), settings
            )
            return await execute(args, services, out)
    finally:
        await close_database_connections()


def main(argv: Sequence[str] | None = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    configure_logging(level=args.log_level)

    try:
        return int(asyncio.run(_run(args, console)))
    except KeyboardInterrupt:
        console.print("\n[yellow]Cancelled by user[/]")
        return int(ConsoleExitCode.INTERNAL_ERROR)
    except Exception as e:
        console.print(f"\n[bold red]Error:[/] {e}")
        return int(ConsoleExitCode.INTERNAL_ERROR)


if __name__ == "__main__":
    raise SystemExit(main())
