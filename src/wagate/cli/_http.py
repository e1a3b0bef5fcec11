"""
Shared HTTP helpers for CLI commands that talk to the running server.
"""

import os

import httpx
import typer


def get_server_url() -> str:
    """Get the server URL from the environment, defaulting to localhost."""
    explicit = os.getenv("WAGATE_SERVER_URL")
    if explicit:
        return explicit.rstrip("/")

    host = os.getenv("WAGATE_CLIENT_HOST", "localhost")
    port = os.getenv("WAGATE_PORT", "8000")
    return f"http://{host}:{port}"


def _request(method: str, path: str, data: dict = None, timeout: float = 10.0) -> dict:
    url = f"{get_server_url()}{path}"
    try:
        resp = httpx.request(method, url, json=data, timeout=timeout)
        if resp.status_code == 400:
            # Validation failures carry a structured body worth showing.
            return resp.json()
        resp.raise_for_status()
        return resp.json()
    except httpx.ConnectError:
        typer.echo("❌ Cannot connect to wagate server. Is it running?")
        raise typer.Exit(code=1)
    except httpx.HTTPStatusError as e:
        try:
            detail = e.response.json().get("error", str(e))
        except Exception:
            detail = str(e)
        typer.echo(f"❌ Server error: {detail}")
        raise typer.Exit(code=1)
    except Exception as e:
        typer.echo(f"❌ Error: {e}")
        raise typer.Exit(code=1)


def _http_get(path: str) -> dict:
    """Make a GET request to the running server."""
    return _request("GET", path)


def _http_post(path: str, data: dict = None) -> dict:
    """Make a POST request to the running server."""
    return _request("POST", path, data=data or {}, timeout=60.0)
