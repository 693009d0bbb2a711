"""Command-line interface for the resume mailer.

Usage:
    resume-mailer serve --port 5000
    resume-mailer config
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import click
import uvicorn
from rich.console import Console
from rich.table import Table

from resume_mailer.api import create_app
from resume_mailer.config_loader import load_settings
from resume_mailer.core import MailRelayService

console = Console()
err_console = Console(stderr=True)


def print_error(message: str) -> None:
    """Print an error message to stderr."""
    err_console.print(f"[red]Error:[/red] {message}")


def configure_logging(level: str) -> None:
    """Configure the root logger once for the whole process."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='[%(asctime)s] [%(levelname)s] %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
        force=True  # Force reconfiguration to avoid duplicate handlers
    )


def _load(config_path: Optional[str]) -> Dict[str, Any]:
    try:
        return load_settings(config_path)
    except ValueError as exc:
        print_error(f"Invalid configuration: {exc}")
        raise SystemExit(1)


@click.group()
@click.version_option(package_name="resume-mailer")
def main() -> None:
    """resume-mailer CLI - relay a PDF resume to a list of recipients."""
    pass


@main.command("serve")
@click.option("--config", "config_path", default=None, help="Path to config.ini (default: $RMS_CONFIG or config.ini).")
@click.option("--host", "-h", default=None, help="Host to bind to (default: 0.0.0.0).")
@click.option("--port", "-p", type=int, default=None, help="Port to listen on (default: $PORT or 5000).")
def serve(config_path: Optional[str], host: Optional[str], port: Optional[int]) -> None:
    """Start the HTTP server.

    Example:

        resume-mailer serve -p 8080
    """
    settings = _load(config_path)
    configure_logging(settings["log_level"])
    service = MailRelayService.from_settings(settings)
    app = create_app(service, cors_origins=settings["cors_origins"])
    bind_host = host or str(settings["http_host"])
    bind_port = port or int(settings["http_port"])
    console.print(f"[green]Resume mailer listening on[/green] {bind_host}:{bind_port}")
    uvicorn.run(app, host=bind_host, port=bind_port)


@main.command("config")
@click.option("--config", "config_path", default=None, help="Path to config.ini (default: $RMS_CONFIG or config.ini).")
def show_config(config_path: Optional[str]) -> None:
    """Show the resolved settings."""
    settings = _load(config_path)
    table = Table(title="Resume mailer settings")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    for key in sorted(settings):
        value = settings[key]
        if isinstance(value, list):
            value = ", ".join(value) or "-"
        table.add_row(key, "-" if value is None else str(value))
    console.print(table)


if __name__ == "__main__":
    main()
