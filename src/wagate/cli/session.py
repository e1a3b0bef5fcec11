"""
CLI subcommands for the running session.

Usage:
    wagate session status
    wagate session send 0812345678 "hello"
    wagate session disconnect
    wagate session reconnect
"""

import typer

from wagate.cli._http import _http_get, _http_post

session_app = typer.Typer(help="Inspect and control the messaging session.")


def _print_session(data: dict) -> None:
    ready = "yes" if data.get("ready") else "no"
    typer.echo(f"  State: {data.get('state')}  (ready: {ready})")
    identity = data.get("identity")
    if identity:
        typer.echo(
            f"  Account: {identity['display_name']} "
            f"({identity['address']}, {identity['platform']})"
        )


@session_app.command("status")
def status():
    """Show the session state and the logged-in account."""
    _print_session(_http_get("/session"))


@session_app.command("send")
def send(
    recipient: str = typer.Argument(..., help="Phone number or full address"),
    body: str = typer.Argument(..., help="Message text"),
):
    """Send one message through the session."""
    data = _http_post("/send-message", {"recipient": recipient, "body": body})
    if data.get("failed"):
        typer.echo(f"❌ {data.get('display_message')}")
        raise typer.Exit(code=1)
    typer.echo(f"✅ {data.get('display_message')}")


@session_app.command("disconnect")
def disconnect():
    """Log the session out. It stays down until reconnected."""
    _print_session(_http_post("/session/disconnect"))


@session_app.command("reconnect")
def reconnect():
    """Start a new session if none exists."""
    _print_session(_http_post("/session/reconnect"))
