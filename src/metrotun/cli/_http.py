"""
Shared HTTP helpers for CLI commands that talk to the running server.
"""

import os

import httpx
import typer

from metrotun.config import DEFAULT_API_PORT


def get_server_url() -> str:
    """Get the control server URL from the environment or defaults."""
    explicit = os.getenv("METROTUN_SERVER_URL")
    if explicit:
        return explicit.rstrip("/")

    host = os.getenv("METROTUN_HOST", "localhost")
    if host in ("0.0.0.0", "::"):
        host = "localhost"
    port = os.getenv("METROTUN_PORT", str(DEFAULT_API_PORT))
    return f"http://{host}:{port}"


def _error_detail(response: httpx.Response) -> str:
    try:
        return response.json().get("error", f"HTTP {response.status_code}")
    except ValueError:
        return f"HTTP {response.status_code}"


def _http_get(path: str) -> dict:
    """Make a GET request to the running server."""
    url = f"{get_server_url()}{path}"
    try:
        resp = httpx.get(url, timeout=10.0)
        resp.raise_for_status()
        return resp.json()
    except httpx.ConnectError:
        typer.echo("❌ Cannot connect to metrotun server. Is it running?")
        raise typer.Exit(code=1)
    except httpx.HTTPStatusError as e:
        typer.echo(f"❌ Server error: {_error_detail(e.response)}")
        raise typer.Exit(code=1)
    except httpx.HTTPError as e:
        typer.echo(f"❌ Error: {e}")
        raise typer.Exit(code=1)


def _http_post(path: str, data: dict = None, timeout: float = 60.0) -> dict:
    """Make a POST request to the running server.

    The default timeout is generous because /start waits for the
    pre-flight cleanup commands.
    """
    url = f"{get_server_url()}{path}"
    try:
        resp = httpx.post(url, json=data or {}, timeout=timeout)
        resp.raise_for_status()
        return resp.json()
    except httpx.ConnectError:
        typer.echo("❌ Cannot connect to metrotun server. Is it running?")
        raise typer.Exit(code=1)
    except httpx.HTTPStatusError as e:
        typer.echo(f"❌ Server error: {_error_detail(e.response)}")
        raise typer.Exit(code=1)
    except httpx.HTTPError as e:
        typer.echo(f"❌ Error: {e}")
        raise typer.Exit(code=1)
