"""
CLI commands that drive a running metrotun server.

Usage:
    metrotun start [--wait SECONDS]
    metrotun stop
    metrotun status
    metrotun logs [--tail N]
"""

import time

import typer

from metrotun.cli._http import _http_get, _http_post

POLL_INTERVAL = 1.0

_LOG_ICONS = {
    "info": "  ",
    "stderr": "❗",
    "warning": "⚠️ ",
    "error": "❌",
    "success": "✅",
}


def _print_session(session: dict) -> None:
    typer.echo(f"   Platform: {session.get('platform', 'unknown')}")
    typer.echo(f"   Status: {session.get('status', 'unknown')}")
    typer.echo(f"   URL: {session.get('url') or '(waiting for tunnel)'}")


def _wait_for_url(timeout: float) -> str | None:
    """Poll /status until the session reports a URL, ends, or time runs out."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        data = _http_get("/status")
        session = data.get("session", {})
        if session.get("url"):
            return session["url"]
        if not data.get("active"):
            return None
        time.sleep(POLL_INTERVAL)
    return None


def register_tunnel_commands(app: typer.Typer):
    """Register start/stop/status/logs onto the app."""

    @app.command()
    def start(
        wait: float = typer.Option(
            0, "--wait", "-w", help="Seconds to wait for the exp:// URL (0 = don't wait)"
        ),
    ):
        """Start the Metro bundler tunnel on the server."""
        typer.echo("🚀 Starting tunnel...")
        result = _http_post("/start")

        if not result.get("success"):
            typer.echo(f"❌ Failed: {result.get('error', 'Unknown error')}")
            raise typer.Exit(code=1)

        if result.get("message"):
            typer.echo(f"ℹ️  {result['message']}")
        session = result.get("session", {})

        if wait > 0 and not session.get("url"):
            typer.echo(f"⏳ Waiting up to {wait:g}s for the tunnel URL...")
            url = _wait_for_url(wait)
            if not url:
                typer.echo("⚠️  No tunnel URL yet. Check 'metrotun logs'.")
                raise typer.Exit(code=1)
            session = {**session, "url": url}

        _print_session(session)

    @app.command()
    def stop():
        """Stop the running tunnel."""
        result = _http_post("/stop")
        if result.get("message"):
            typer.echo(f"ℹ️  {result['message']}")
        else:
            typer.echo("🛑 Tunnel stopped.")

    @app.command()
    def status():
        """Show whether a tunnel is running and its URL."""
        data = _http_get("/status")
        icon = "🟢" if data.get("active") else "🔴"
        typer.echo(f"{icon} Tunnel {'active' if data.get('active') else 'inactive'}")
        _print_session(data.get("session", {}))

    @app.command()
    def logs(
        tail: int = typer.Option(
            0, "--tail", "-n", help="Only show the last N entries (0 = all)"
        ),
    ):
        """Print the captured tunnel output."""
        entries = _http_get("/logs").get("logs", [])
        if tail > 0:
            entries = entries[-tail:]

        if not entries:
            typer.echo("No logs captured.")
            return

        for entry in entries:
            icon = _LOG_ICONS.get(entry.get("type"), "  ")
            typer.echo(f"{entry.get('timestamp', '')} {icon} {entry.get('message', '')}")
