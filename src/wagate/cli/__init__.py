"""
wagate CLI.

- main:    serve, history
- session: status, send, disconnect, reconnect (against a running server)
"""

import typer

from wagate.cli.main import configure_logging, register_commands
from wagate.cli.session import session_app

app = typer.Typer(help="wagate - messaging session gateway")


@app.callback()
def main(
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable verbose logging (DEBUG level)"
    ),
):
    """
    wagate - messaging session gateway.
    """
    configure_logging(verbose)


register_commands(app)
app.add_typer(session_app, name="session")

if __name__ == "__main__":
    app()
