"""
Top-level CLI commands: serve, history.
"""

import os

import typer


def configure_logging(verbose: bool = False):
    """Configure logging for the CLI."""
    from wagate.logger import setup_logging

    log_level = "DEBUG" if verbose else os.getenv("LOG_LEVEL", "WARNING")
    setup_logging(level=log_level, log_file=os.getenv("LOG_FILE"))


def register_commands(app: typer.Typer):
    @app.command()
    def serve(
        host: str = typer.Option(None, "--host", help="Bind address"),
        port: int = typer.Option(None, "--port", "-p", help="Port to listen on"),
        debug: bool = typer.Option(False, "--debug", help="Log at DEBUG level"),
    ):
        """Start the wagate server."""
        import uvicorn

        from wagate.config import CONFIG

        if debug:
            os.environ["LOG_LEVEL"] = "DEBUG"
        log_level = os.getenv("LOG_LEVEL", "INFO")

        from wagate.server import app as server_app

        host = host or CONFIG.host
        port = port or CONFIG.port
        typer.echo(f"🚀 wagate running: http://{host}:{port}")
        uvicorn.run(
            server_app,
            host=host,
            port=port,
            log_level=log_level.lower(),
            ws="wsproto",
        )

    @app.command()
    def history(
        limit: int = typer.Option(20, "--limit", "-n", help="Number of entries"),
    ):
        """Print the most recent send attempts from the audit log."""
        from wagate.database import get_database

        entries = get_database().list_recent_message_logs(limit)
        if not entries:
            typer.echo("No messages logged yet.")
            return

        for entry in entries:
            line = (
                f"  #{entry.id:>5}  {entry.created_at:%Y-%m-%d %H:%M:%S}  "
                f"{entry.outcome.value:<6}  {entry.recipient:<20}  {entry.body[:40]}"
            )
            if entry.failure_reason:
                line += f"  ({entry.failure_reason})"
            typer.echo(line)
