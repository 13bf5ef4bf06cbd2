"""Click CLI for running and checking the relay server."""

from __future__ import annotations

import logging
import sys

import click
import uvicorn

from smartrelay.config import load_settings
from smartrelay.server.dashboard import script_url_is_valid

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def configure_logging(level: str) -> None:
    """Send application logs to stdout."""
    logging.basicConfig(
        level=level.upper(),
        format=LOG_FORMAT,
        stream=sys.stdout,
    )


@click.group()
@click.option("--env-file", default=None, help="Path to a .env file.")
@click.pass_context
def cli(ctx: click.Context, env_file: str | None) -> None:
    """Smart-reply webhook relay."""
    ctx.ensure_object(dict)
    ctx.obj["settings"] = load_settings(dotenv_path=env_file)


@cli.command()
@click.option("--host", default="0.0.0.0", help="Interface to bind.")
@click.option("--port", type=int, default=None, help="Port (defaults to $PORT or 3000).")
@click.pass_context
def serve(ctx: click.Context, host: str, port: int | None) -> None:
    """Run the relay server."""
    settings = ctx.obj["settings"]
    configure_logging(settings.log_level)
    port = port or settings.port
    click.echo(f"Serveur actif sur http://localhost:{port}", err=True)
    uvicorn.run(
        "smartrelay.server.app:create_app_from_env",
        factory=True,
        host=host,
        port=port,
        log_level=settings.log_level.lower(),
    )


@cli.command("check-env")
@click.pass_context
def check_env(ctx: click.Context) -> None:
    """Report which features the current environment enables."""
    settings = ctx.obj["settings"]
    url_ok = script_url_is_valid(settings.app_script_url)
    click.echo(f"APP_SCRIPT_URL: {'ok' if url_ok else 'invalid or missing'}")
    click.echo(f"Verification: {'on' if settings.verify_token else 'off'}")
    click.echo(f"Interactive replies: {'on' if settings.interactive_enabled else 'off'}")
    click.echo(
        f"Transaction log: "
        f"{settings.log_buffer_size if settings.log_buffer_enabled else 'off'}",
    )
    click.echo(f"Script timeout: {settings.script_timeout_seconds:g}s")
    if not url_ok:
        ctx.exit(1)
