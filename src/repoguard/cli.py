# SPDX-License-Identifier: Apache-2.0
"""RepoGuard command line interface."""

from __future__ import annotations

from pathlib import Path

import typer
from prometheus_client import generate_latest

from repoguard import __version__
from repoguard.config import ConfigVersionError, load_config
from repoguard.infrastructure.monitoring.query_monitor import normalize_query

app = typer.Typer(
    add_completion=False,
    help="RepoGuard data-access resilience and observability tools",
)


@app.command()
def version() -> None:
    """Show the installed version."""
    typer.echo(f"repoguard {__version__}")


@app.command("config-check")
def config_check(
    path: Path = typer.Argument(..., help="YAML configuration file to validate"),
) -> None:
    """Validate a configuration file and print the effective settings."""
    try:
        config = load_config(path)
    except (FileNotFoundError, ConfigVersionError, ValueError) as e:
        typer.echo(f"❌ {e}", err=True)
        raise typer.Exit(1)

    typer.echo(f"✅ Configuration valid (version {config.config_version})")
    typer.echo(f"  database: {config.database.path}")
    typer.echo(
        f"  retry: {config.retry.max_retries} attempts, "
        f"{config.retry.retry_delay_ms}ms delay, backoff x{config.retry.backoff_factor}"
    )
    monitor = config.query_monitor
    if monitor.enabled:
        typer.echo(
            f"  query monitor: window {monitor.collection_period_ms}ms, "
            f"slow > {monitor.slow_query_threshold_ms}ms, "
            f"N+1 > {monitor.n_plus_one_threshold} calls"
        )
    else:
        typer.echo("  query monitor: disabled")
    typer.echo(f"  event history: {config.event_bus.history_limit} events")
    typer.echo(f"  log level: {config.logging.level}")


@app.command()
def normalize(
    query: str = typer.Argument(..., help="Rendered query, literals included"),
    operation: str = typer.Option("select", "--operation", "-o", help="Query operation"),
) -> None:
    """Print the pattern a query is grouped under for N+1 detection."""
    typer.echo(normalize_query(query, operation))


@app.command()
def metrics() -> None:
    """Dump the current Prometheus metrics of this process."""
    typer.echo(generate_latest().decode("utf-8"))


if __name__ == "__main__":
    app()
