"""
metrotun CLI — run and control the Metro tunnel server.

This package splits CLI commands into focused modules:
- main:   serve, doctor
- tunnel: start, stop, status, logs (talk to a running server)
"""

import typer

from metrotun.cli._http import _http_get, _http_post  # noqa: F401 — re-export for test patching
from metrotun.cli.main import configure_logging, register_commands
from metrotun.cli.tunnel import register_tunnel_commands

app = typer.Typer(help="metrotun - Expo Metro tunnel supervisor")


@app.callback()
def main(
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable verbose logging (DEBUG level)"
    ),
):
    """
    metrotun - Expo Metro tunnel supervisor.
    """
    configure_logging(verbose)


register_commands(app)
register_tunnel_commands(app)

if __name__ == "__main__":
    app()
