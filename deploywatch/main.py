"""Entry point for deploywatch."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from datetime import datetime, timezone

import uvicorn
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from deploywatch.config import settings
from deploywatch.credentials.store import CredentialSecretStore
from deploywatch.db import Database
from deploywatch.deployments.store import DeploymentStore, NotFoundError
from deploywatch.health.prober import N8nProber
from deploywatch.health.recorder import HealthRecorder
from deploywatch.health.scheduler import HealthScheduler
from deploywatch.notifications import get_notifier

console = Console()
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
)


def _fmt_ms(ms: int | None) -> str:
    if ms is None:
        return "-"
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


def run_server() -> None:
    """Start the FastAPI server (health scheduler runs inside it)."""
    console.print(Panel("Starting deploywatch API server", style="bold green"))
    uvicorn.run(
        "deploywatch.api.server:create_app",
        factory=True,
        host=settings.api_host,
        port=settings.api_port,
        reload=False,
    )


def run_check_all() -> None:
    """Run one health tick across every deployed workflow."""
    db = Database()
    deployments = DeploymentStore(db)
    notifier = get_notifier()
    scheduler = HealthScheduler(
        deployments,
        HealthRecorder(db, deployments=deployments),
        N8nProber(secrets=CredentialSecretStore(db)),
        on_notification=notifier.push if notifier.is_enabled else None,
    )

    async def _tick():
        try:
            return await scheduler.run_all_now()
        finally:
            await scheduler.stop()

    with console.status("[bold green]Probing deployments..."):
        outcomes = asyncio.run(_tick())

    table = Table(title="Health check")
    table.add_column("Deployment")
    table.add_column("Status")
    table.add_column("Latency")
    table.add_column("Error")
    for o in outcomes:
        table.add_row(
            o.deployment_id,
            "[green]healthy[/green]" if o.result.is_healthy else "[red]unhealthy[/red]",
            f"{o.result.latency_ms}ms" if o.result.latency_ms is not None else "-",
            o.result.error or "",
        )
    console.print(table)


def show_history(deployment_id: str, limit: int) -> None:
    db = Database()
    try:
        deployment = DeploymentStore(db).require(deployment_id)
    except NotFoundError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)

    history = HealthRecorder(db).get_history(deployment_id, limit)
    table = Table(title=f"{deployment.workflow_name} ({deployment_id})")
    table.add_column("Checked at")
    table.add_column("Status")
    table.add_column("Active")
    table.add_column("Details")
    for r in history:
        table.add_row(
            _fmt_ms(r.timestamp),
            r.overall_status.value,
            "yes" if r.checks.workflow_active else "no",
            r.details or "",
        )
    console.print(table)
    h = deployment.health
    console.print(
        f"[dim]consecutive errors: {h.consecutive_errors} | "
        f"error count: {h.error_count} | last checked: {_fmt_ms(h.last_checked)}[/dim]"
    )


def run_cleanup(days: int) -> None:
    removed = HealthRecorder(Database()).history.cleanup_old(days)
    console.print(f"Removed {removed} health-check records older than {days} days")


def main() -> None:
    parser = argparse.ArgumentParser(description="Deployment health monitoring")
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("serve", help="Start the API server")
    sub.add_parser("check-all", help="Probe every deployed workflow once")

    history_parser = sub.add_parser("history", help="Show health history for a deployment")
    history_parser.add_argument("deployment_id")
    history_parser.add_argument("--limit", type=int, default=settings.health_history_limit)

    cleanup_parser = sub.add_parser("cleanup", help="Prune old health-check records")
    cleanup_parser.add_argument("--days", type=int, default=settings.health_retention_days)

    args = parser.parse_args()

    if args.command == "serve":
        run_server()
    elif args.command == "check-all":
        run_check_all()
    elif args.command == "history":
        show_history(args.deployment_id, args.limit)
    elif args.command == "cleanup":
        run_cleanup(args.days)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
