"""Command-line interface for Sketch Brains."""

import asyncio
from typing import Annotated

import typer
import uvicorn
from rich.console import Console
from rich.table import Table

from sketchbrains.logging_config import configure_logging, get_logger
from sketchbrains.notifications.dispatcher import NotificationDispatcher
from sketchbrains.referral.processor import ReferralRewardProcessor
from sketchbrains.storage.db import db

logger = get_logger(__name__)

app = typer.Typer(
    name="sketchbrains",
    help="Sketch Brains - event registrations, referrals and notifications",
    no_args_is_help=True,
)

console = Console()


@app.callback()
def main(
    log_level: Annotated[str | None, typer.Option("--log-level", help="Override LOG_LEVEL")] = None,
    json_logs: Annotated[bool, typer.Option("--json-logs", help="Emit JSON log lines")] = False,
) -> None:
    """Sketch Brains maintenance commands."""
    configure_logging(level=log_level, log_format="json" if json_logs else None)


@app.command("init")
def init_database() -> None:
    """Initialize the database and create tables."""
    console.print("[bold blue]Initializing database...[/bold blue]")
    db.create_tables()
    console.print("[bold green]✓[/bold green] Database initialized successfully")


@app.command("process-referrals")
def process_referrals() -> None:
    """Run one referral reward pass."""
    try:
        result = ReferralRewardProcessor(db).run()
    except Exception as e:
        console.print(f"[bold red]✗[/bold red] Referral processing failed: {str(e)}")
        raise typer.Exit(1)

    console.print(
        f"[bold green]✓[/bold green] {len(result.processed_referrals)} referrals completed, "
        f"{len(result.rewards)} rewards granted"
    )

    if result.rewards:
        table = Table(title="Rewards Granted")
        table.add_column("Referrer", style="cyan")
        table.add_column("Event", style="green")
        table.add_column("Referrals", justify="right")

        for reward in result.rewards:
            table.add_row(reward.referrer_id, reward.event_id, str(reward.referral_count))

        console.print(table)


@app.command("send-notifications")
def send_notifications() -> None:
    """Deliver the next batch of queued notifications."""
    try:
        result = asyncio.run(NotificationDispatcher(db).dispatch())
    except Exception as e:
        console.print(f"[bold red]✗[/bold red] Dispatch failed: {str(e)}")
        raise typer.Exit(1)

    table = Table(title=f"Notifications ({result.total} due)")
    table.add_column("Outcome", style="cyan")
    table.add_column("Count", justify="right")

    for name, count in result.as_dict().items():
        if name != "total":
            table.add_row(name, str(count))

    console.print(table)


@app.command("serve")
def serve(
    host: Annotated[str, typer.Option("--host", help="Bind address")] = "127.0.0.1",
    port: Annotated[int, typer.Option("--port", "-p", help="Port")] = 8000,
    reload: Annotated[bool, typer.Option("--reload", help="Reload on code changes")] = False,
) -> None:
    """Run the API server."""
    console.print(f"[bold blue]Serving on http://{host}:{port}[/bold blue]")
    uvicorn.run("sketchbrains.api.main:app", host=host, port=port, reload=reload)


if __name__ == "__main__":
    app()
