"""
Tunnel supervisor: the single owner of the tunnel session.

Composes the process lifecycle, output sanitizer, URL extractor and log
buffer behind four operations used by the HTTP layer:

- start():  clean up leftovers, spawn the bundler, return the new session
- stop():   terminate the bundler and mark the session inactive
- status(): snapshot of the current session
- logs():   snapshot of the captured output
"""

import asyncio
import os
from dataclasses import dataclass
from typing import Any, Optional

from metrotun.config import TunnelConfig
from metrotun.exceptions import SpawnError
from metrotun.logger import get_logger
from metrotun.tunnel.log_buffer import LogBuffer, LogEntry, LogKind
from metrotun.tunnel.process import (
    ProcessLifecycle,
    default_cleanup_steps,
    metro_command,
)
from metrotun.tunnel.sanitizer import sanitize
from metrotun.tunnel.session import TunnelSession
from metrotun.tunnel.url_extractor import try_extract

logger = get_logger(__name__)

_CONSOLE_LEVELS = {
    LogKind.INFO: "INFO",
    LogKind.STDERR: "ERROR",
    LogKind.WARNING: "WARNING",
    LogKind.ERROR: "ERROR",
    LogKind.SUCCESS: "SUCCESS",
}


@dataclass(frozen=True)
class StartResult:
    session: dict[str, Any]
    already_running: bool = False


@dataclass(frozen=True)
class StopResult:
    was_running: bool


class TunnelSupervisor:
    """Runs at most one tunnel session at a time.

    All mutation happens on the event loop: ``start``/``stop`` are
    serialized by an ``asyncio.Lock`` and the stream/exit callbacks are
    synchronous, so status and URL always change in a single step.
    """

    def __init__(
        self,
        config: TunnelConfig,
        lifecycle: Optional[ProcessLifecycle] = None,
        log_buffer: Optional[LogBuffer] = None,
    ):
        self.config = config
        self.lifecycle = lifecycle or ProcessLifecycle(
            cleanup_steps=default_cleanup_steps(config.metro_port),
            cleanup_timeout=config.cleanup_timeout,
            echo_output=config.echo_output,
        )
        self.log_buffer = log_buffer or LogBuffer(config.log_capacity)
        self.session = TunnelSession(platform=config.platform)
        self._lock = asyncio.Lock()

    @property
    def is_active(self) -> bool:
        return self.session.is_active

    # ─── Operations ──────────────────────────────────────────────────

    async def start(self) -> StartResult:
        """Start a tunnel session, or return the running one.

        Raises:
            SpawnError: If the bundler could not be launched. The session is
                left inactive.
        """
        async with self._lock:
            if self.is_active:
                return StartResult(self.session.to_dict(), already_running=True)

            logger.info("Cleaning up zombie processes...")
            await self.lifecycle.preflight_cleanup()

            self.log_buffer.clear()
            session = TunnelSession.begin(self.config.platform)

            port = self.config.metro_port
            self._record(
                LogKind.INFO,
                f"Starting Metro Bundler with Expo Tunnel on port {port}...",
            )

            command, args = metro_command(port, use_pty=self.config.use_pty)
            env = {**os.environ, "FORCE_COLOR": "1"}
            try:
                child = await self.lifecycle.spawn(
                    command,
                    args,
                    cwd=self.config.project_dir,
                    env=env,
                    on_stdout=lambda data: self._on_stdout(session, data),
                    on_stderr=lambda data: self._on_stderr(session, data),
                    on_exit=lambda code: self._on_exit(session, code),
                )
            except SpawnError as e:
                session.deactivate()
                self._record(LogKind.ERROR, f"Failed to start: {e}")
                raise

            # No await between spawn returning and here, so the drain tasks
            # cannot deliver output before the session is installed.
            session.attach(child)
            self.session = session
            return StartResult(session.to_dict())

    async def stop(self) -> StopResult:
        """Stop the running session. Succeeds even if nothing is running."""
        async with self._lock:
            session = self.session
            child = session.deactivate()
            if child is None:
                return StopResult(was_running=False)

            self.lifecycle.terminate(child)
            await self.lifecycle.preflight_cleanup()
            self._record(LogKind.INFO, "Metro server stopped by user")
            return StopResult(was_running=True)

    def status(self) -> dict[str, Any]:
        return {"active": self.is_active, "session": self.session.to_dict()}

    def logs(self) -> tuple[LogEntry, ...]:
        return self.log_buffer.snapshot()

    async def shutdown(self) -> None:
        """Stop the session when the server goes down."""
        if self.is_active:
            logger.info("Shutting down active tunnel session")
            await self.stop()

    # ─── Callbacks ───────────────────────────────────────────────────

    def _on_stdout(self, session: TunnelSession, data: bytes) -> None:
        if session is not self.session:
            return
        for line in sanitize(data):
            self._record(LogKind.INFO, line)
            url = try_extract(line)
            if url and session.set_url(url):
                self._record(LogKind.SUCCESS, f"Captured QR URL: {url}")

    def _on_stderr(self, session: TunnelSession, data: bytes) -> None:
        if session is not self.session:
            return
        for line in sanitize(data):
            self._record(LogKind.STDERR, line)

    def _on_exit(self, session: TunnelSession, code: Optional[int]) -> None:
        if session is not self.session:
            logger.debug(f"Ignoring exit (code {code}) of a replaced session")
            return
        self._record(LogKind.WARNING, f"Metro process exited with code {code}")
        if session.process is not None:
            session.deactivate()

    def _record(self, kind: LogKind, message: str) -> None:
        self.log_buffer.append(LogEntry(kind, message))
        logger.log(_CONSOLE_LEVELS[kind], f"[{kind.value}] {message}")
