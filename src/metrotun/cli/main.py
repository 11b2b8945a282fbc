"""
Top-level CLI commands: serve, doctor.
"""

import os
import shutil
import subprocess
import sys
from pathlib import Path
from typing import Optional

import typer

from metrotun.config import TunnelConfig

IS_WINDOWS = sys.platform == "win32"

REQUIRED_TOOLS = {
    "npx": "runs the Expo CLI",
    "script": "gives Metro a pseudo-terminal (colours, QR code)",
    "lsof": "frees the Metro port before starting",
    "pkill": "stops leftover ngrok helpers",
}


def configure_logging(verbose: bool = False):
    """Configure logging for the CLI."""
    from metrotun.logger import setup_logging

    setup_logging(level="DEBUG" if verbose else "WARNING")


def get_pid_on_port(port: int) -> int | None:
    """Get the PID of the process listening on the specified port."""
    if IS_WINDOWS:
        return None
    try:
        result = subprocess.run(
            ["lsof", "-t", f"-i:{port}"], capture_output=True, text=True
        )
    except FileNotFoundError:
        return None
    if result.returncode == 0 and result.stdout.strip():
        return int(result.stdout.strip().split("\n")[0])
    return None


def register_commands(app: typer.Typer):
    """Register top-level commands onto the app."""

    @app.command()
    def serve(
        host: Optional[str] = typer.Option(None, help="Host to bind to"),
        port: Optional[int] = typer.Option(None, help="API port to bind to"),
        project: Optional[Path] = typer.Option(
            None, "--project", "-p", help="Expo project directory"
        ),
        metro_port: Optional[int] = typer.Option(
            None, "--metro-port", help="Port Metro listens on"
        ),
        no_echo: bool = typer.Option(
            False, "--no-echo", help="Don't mirror Metro output to this terminal"
        ),
        no_pty: bool = typer.Option(
            False, "--no-pty", help="Run npx directly instead of under 'script'"
        ),
        debug: bool = typer.Option(False, "--debug", help="Run in debug mode"),
    ):
        """Run the tunnel control server in the foreground."""
        from metrotun.logger import setup_logging
        from metrotun.server import run

        config = TunnelConfig.from_env().with_overrides(
            host=host,
            port=port,
            project_dir=project,
            metro_port=metro_port,
            echo_output=False if no_echo else None,
            use_pty=False if no_pty else None,
        )

        if not config.project_dir.is_dir():
            typer.echo(f"❌ Project directory not found: {config.project_dir}")
            raise typer.Exit(code=1)

        # from_env() has already loaded .env
        log_level = "DEBUG" if debug else os.getenv("LOG_LEVEL", "INFO")
        setup_logging(level=log_level, log_file=os.getenv("LOG_FILE"))

        typer.echo(f"🚀 Starting metrotun server on {config.host}:{config.port}...")
        typer.echo(f"   Project: {config.project_dir}")
        typer.echo(f"   Metro port: {config.metro_port}")

        try:
            run(config, log_level=log_level)
        except KeyboardInterrupt:
            typer.echo("\n🛑 Server stopped.")

    @app.command()
    def doctor(
        metro_port: Optional[int] = typer.Option(
            None, "--metro-port", help="Port Metro listens on"
        ),
    ):
        """Check that the tools the tunnel needs are installed."""
        typer.echo("🩺 Checking system...")

        all_ok = True
        for name, purpose in REQUIRED_TOOLS.items():
            path = shutil.which(name)
            if path:
                typer.echo(f"  ✅ {name:<8} : {path}")
            else:
                typer.echo(f"  ❌ {name:<8} : not found ({purpose})")
                all_ok = False

        config = TunnelConfig.from_env().with_overrides(metro_port=metro_port)
        pid = get_pid_on_port(config.metro_port)
        if pid:
            typer.echo(
                f"  ⚠️  Port {config.metro_port} is in use by PID {pid} "
                "(it will be killed on start)"
            )
        else:
            typer.echo(f"  ✅ Port {config.metro_port} is free")

        if all_ok:
            typer.echo("\n✨ System is ready!")
        else:
            typer.echo("\n⚠️  Some tools are missing. Please install them.")
            raise typer.Exit(code=1)
