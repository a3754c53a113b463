from __future__ import annotations

import logging
import sys
from pathlib import Path

import typer
from rich.panel import Panel

from pwsession.cli.client import SessionServerClient, ensure_server, terminate_recorded_server
from pwsession.cli.console import err_console, output, output_error
from pwsession.config import settings
from pwsession.exceptions import PWSessionException
from pwsession.logs import setup_logger

cli_app = typer.Typer(
    help="[bold]pwsession[/bold]\nRun Python fragments against long-lived Playwright browser sessions.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

SessionOption = typer.Option(None, "--session", "-s", help="Session id. Defaults to DEFAULT_SESSION_ID.")


@cli_app.callback()
def cli_callback() -> None:
    """Configure logging before command execution."""
    for logger_name in ("httpx", "httpcore"):
        logging.getLogger(logger_name).setLevel(logging.WARNING)
    setup_logger()


def _client() -> SessionServerClient:
    return SessionServerClient()


def _emit(response: dict) -> None:
    output(response)
    if response.get("success") is False:
        raise typer.Exit(code=1)


def _read_code(code: str | None, file: Path | None) -> str:
    if file is not None:
        if str(file) == "-":
            return sys.stdin.read()
        if not file.exists():
            output_error(f"File not found: {file}")
        return file.read_text()
    if code == "-":
        return sys.stdin.read()
    if not code:
        output_error("Missing code", hint="Pass CODE, --file PATH, or '-' to read stdin")
    return code


@cli_app.command()
def serve(
    host: str | None = typer.Option(None, "--host", help="Interface to bind. Defaults to HOST."),
    port: int | None = typer.Option(None, "--port", "-p", help="Port to listen on. Defaults to PORT."),
) -> None:
    """Run the session server in the foreground."""
    from pwsession.server.server_uvicorn import serve as run_server  # noqa: PLC0415

    err_console.print(
        Panel(
            f"[bold green]Starting session server on {host or settings.HOST}:{port or settings.PORT}...",
            border_style="green",
        ),
    )
    run_server(host=host, port=port)


@cli_app.command()
def start(session: str | None = SessionOption) -> None:
    """Start a session, spawning the background server if none is running."""
    client = _client()
    try:
        ensure_server(client)
        _emit(client.start(session or settings.DEFAULT_SESSION_ID))
    except PWSessionException as e:
        output_error(str(e))


@cli_app.command(name="eval")
def eval_code(
    code: str | None = typer.Argument(None, help="Python fragment to run, or '-' to read stdin."),
    file: Path | None = typer.Option(None, "--file", "-f", help="Read the fragment from a file ('-' for stdin)."),
    session: str | None = SessionOption,
) -> None:
    """Run a Python fragment in a session."""
    fragment = _read_code(code, file)
    try:
        _emit(_client().eval(session or settings.DEFAULT_SESSION_ID, fragment))
    except PWSessionException as e:
        output_error(str(e))


@cli_app.command()
def stop(session: str | None = SessionOption) -> None:
    """Stop a session, saving its storage state."""
    try:
        _emit(_client().stop(session or settings.DEFAULT_SESSION_ID))
    except PWSessionException as e:
        output_error(str(e))


@cli_app.command()
def sessions() -> None:
    """List sessions with live browser resources."""
    try:
        _emit(_client().sessions())
    except PWSessionException as e:
        output_error(str(e))


@cli_app.command()
def status() -> None:
    """Show whether the server is running and which sessions it holds."""
    client = _client()
    if not client.is_running():
        output({"status": "not running", "url": client.base_url})
        raise typer.Exit(code=1)
    output(client.health())


@cli_app.command()
def shutdown() -> None:
    """Close every session and stop the background server."""
    client = _client()
    if client.is_running():
        try:
            output(client.shutdown())
        except PWSessionException as e:
            output_error(str(e))
    else:
        err_console.print("[yellow]Server not running.[/yellow]")
    terminate_recorded_server()
