"""
CLI interface for Lumina Gateway.

Operator commands for the backing store and the RPC server.
"""

import asyncio
import logging
import sys
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from lumina_gateway.config.loader import GatewayConfig, load_gateway_config
from lumina_gateway.core.quota import QuotaTracker
from lumina_gateway.storage.repository import get_repository, initialize_schema

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1


def _load_config(config_path: Optional[str]) -> GatewayConfig:
    if config_path:
        return load_gateway_config(config_path)
    return GatewayConfig()


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Lumina Gateway CLI."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )
    if ctx.invoked_subcommand is None:
        console.print("Lumina Gateway - Use --help to see available commands")


@app.command()
def status(
    config_path: Optional[str] = typer.Option(None, "--config", "-c", help="Path to YAML config"),
):
    """Show the effective configuration."""
    try:
        config = _load_config(config_path)
    except Exception as e:
        console.print(f"[red]Invalid configuration:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    table = Table(title="Lumina Gateway configuration")
    table.add_column("Setting")
    table.add_column("Value", justify="right")
    table.add_row("Database", config.db_path)
    table.add_row("Cache version", config.cache_version)
    table.add_row("Daily quota limit", f"{config.daily_quota_limit:,}")
    table.add_row(
        "Request limits",
        ", ".join(f"{w.max_requests}/{w.seconds}s ({w.name})" for w in config.rate_limit_windows) or "off",
    )
    table.add_row("Retry attempts", str(config.max_attempts))
    table.add_row("Worst-case backoff", f"{config.max_backoff_seconds:.1f}s")
    table.add_row("Deadline", f"{config.invocation_deadline_seconds:.1f}s")
    table.add_row("Safety mode", config.safety_mode.value)
    table.add_row("Text model", config.text_model)
    console.print(table)


@app.command()
def init(
    config_path: Optional[str] = typer.Option(None, "--config", "-c", help="Path to YAML config"),
):
    """Initialize the quota and cache tables."""
    try:
        config = _load_config(config_path)
        initialize_schema(config.db_path)
        console.print(f"[green]✓[/] Database initialized at {config.db_path}")
        sys.exit(EXIT_CODE_PASS)
    except Exception as e:
        console.print(f"[red]Error initializing database:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.command()
def quota(
    user_id: str = typer.Argument(..., help="User id to inspect"),
    config_path: Optional[str] = typer.Option(None, "--config", "-c", help="Path to YAML config"),
):
    """Show a user's usage for today."""
    try:
        config = _load_config(config_path)
        repository = get_repository(config.db_path)
        tracker = QuotaTracker(repository, limit=config.daily_quota_limit)
        usage = asyncio.run(tracker.read(user_id))
        record = repository.get_quota(user_id)
    except Exception as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    table = Table(title=f"Quota for {user_id}")
    table.add_column("Usage today", justify="right")
    table.add_column("Limit", justify="right")
    table.add_column("Last reset")
    table.add_row(
        f"{usage['usage']:,}",
        f"{usage['limit']:,}",
        record.last_reset if record else "never",
    )
    console.print(table)


@app.command("cache-info")
def cache_info(
    config_path: Optional[str] = typer.Option(None, "--config", "-c", help="Path to YAML config"),
):
    """Show how many cache rows each action has stored."""
    try:
        config = _load_config(config_path)
        counts = get_repository(config.db_path).count_cache_entries()
    except Exception as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    if not counts:
        console.print("[bold yellow]Cache is empty[/]")
        return

    table = Table(title=f"Cached content (version {config.cache_version})")
    table.add_column("Action")
    table.add_column("Rows", justify="right")
    for kind, count in counts.items():
        table.add_row(kind, str(count))
    console.print(table)


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Bind address"),
    port: int = typer.Option(8000, "--port", "-p", help="Bind port"),
    config_path: Optional[str] = typer.Option(None, "--config", "-c", help="Path to YAML config"),
):
    """Run the RPC server."""
    import uvicorn

    from lumina_gateway.api.server import create_app
    from lumina_gateway.core.orchestrator import build_orchestrator

    try:
        orchestrator = build_orchestrator(_load_config(config_path))
    except Exception as e:
        console.print(f"[red]Error starting server:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    uvicorn.run(create_app(orchestrator), host=host, port=port)


if __name__ == "__main__":
    app()
