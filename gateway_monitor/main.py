"""
DaorsAgro Gateway Monitor — CLI Entry Point

Usage:
    python -m gateway_monitor.main serve [--host H] [--port N] [--no-poll]
    python -m gateway_monitor.main check [--json]
    python -m gateway_monitor.main config
"""

from __future__ import annotations

# Load .env file FIRST, before any other imports that might read env vars
from pathlib import Path
from dotenv import load_dotenv

_project_root = Path(__file__).parent.parent
_env_file = _project_root / ".env"
if _env_file.exists():
    load_dotenv(_env_file)

import json
from typing import Optional

import click

from .config.loader import load_settings
from .context import create_context
from .errors import ConfigurationError
from .logging_config import setup_logging
from .observability.health import HealthStatus

STATUS_STYLES = {
    HealthStatus.HEALTHY: ("✅", "green"),
    HealthStatus.DEGRADED: ("⚠️", "yellow"),
    HealthStatus.UNHEALTHY: ("❌", "red"),
}


def _load(config_path: Optional[str]):
    try:
        return load_settings(config_path=Path(config_path) if config_path else None)
    except ConfigurationError as e:
        raise click.ClickException(str(e))


@click.group()
@click.option("--log-level", default=None, help="DEBUG, INFO, WARNING, ERROR")
@click.option("--log-format", type=click.Choice(["text", "json"]), default=None)
@click.option("--config", "config_path", default=None, help="Path to monitor YAML config")
@click.pass_context
def cli(
    ctx: click.Context,
    log_level: Optional[str],
    log_format: Optional[str],
    config_path: Optional[str],
) -> None:
    """DaorsAgro Gateway Monitor — dependency health and metrics."""
    setup_logging(log_level, log_format)
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


@cli.command()
@click.option("--host", default=None, help="Bind address (default: HOST or 0.0.0.0)")
@click.option("--port", type=int, default=None, help="Port (default: PORT or 3000)")
@click.option("--no-poll", is_flag=True, help="Don't poll dependencies in the background")
@click.option("--debug", is_flag=True, help="Enable Flask debug mode")
@click.pass_context
def serve(
    ctx: click.Context,
    host: Optional[str],
    port: Optional[int],
    no_poll: bool,
    debug: bool,
) -> None:
    """Serve /health and /metrics."""
    from .server.app import run_server

    settings = _load(ctx.obj["config_path"])
    context = create_context(settings)
    run_server(
        context,
        host=host or settings.host,
        port=port or settings.port,
        poll=not no_poll,
        debug=debug,
    )


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def check(ctx: click.Context, as_json: bool) -> None:
    """Probe every dependency once and report."""
    settings = _load(ctx.obj["config_path"])
    context = create_context(settings)
    context.aggregator.check_all()
    result = context.aggregator.get_health()

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
    else:
        icon, color = STATUS_STYLES[result.status]
        click.echo()
        click.secho(f"{icon} Gateway Health: {result.status.value.upper()}", fg=color, bold=True)
        click.echo(f"   {result.reachable_count}/{result.total} dependencies reachable")
        click.echo()

        click.echo("Dependencies:")
        for name, record in result.checks.items():
            c_icon, c_color = STATUS_STYLES[record.status]
            click.echo(f"  {c_icon} ", nl=False)
            click.secho(name, fg=c_color, bold=True, nl=False)
            click.echo(f": {record.message}")
            if record.response_time_ms is not None:
                click.echo(f"      Latency: {record.response_time_ms:.1f}ms")
        click.echo()

    if result.status == HealthStatus.UNHEALTHY:
        raise SystemExit(1)


@cli.command("config")
@click.pass_context
def show_config(ctx: click.Context) -> None:
    """Print the effective configuration."""
    settings = _load(ctx.obj["config_path"])
    click.echo(json.dumps(settings.to_dict(), indent=2))


if __name__ == "__main__":
    cli()
