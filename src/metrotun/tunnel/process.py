"""
Process lifecycle for the tunnel child.

Handles spawning the bundler (optionally under ``script`` so it believes it
has a TTY), draining its output streams, signalling it on stop, and the
best-effort cleanup of processes a previous crashed run left behind.
"""

import asyncio
import os
import shlex
import signal
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Sequence

from metrotun.exceptions import CleanupError, SpawnError
from metrotun.logger import get_logger

logger = get_logger(__name__)

StreamCallback = Callable[[bytes], None]
ExitCallback = Callable[[Optional[int]], None]

CHUNK_SIZE = 4096
MAX_PENDING_BYTES = 64 * 1024


@dataclass(frozen=True)
class CleanupStep:
    """A best-effort shell command run before spawning and after stopping."""

    name: str
    command: str


def default_cleanup_steps(metro_port: int) -> list[CleanupStep]:
    return [
        CleanupStep("tunnel helper", "pkill -f ngrok"),
        CleanupStep("port listener", f"lsof -t -i:{metro_port} | xargs kill -9"),
    ]


def metro_command(
    metro_port: int, use_pty: bool = True, platform: str = sys.platform
) -> tuple[str, list[str]]:
    """Build the executable and arguments that start Metro with a tunnel."""
    expo_args = ["npx", "expo", "start", "--tunnel", "--port", str(metro_port), "--clear"]
    if not use_pty:
        return expo_args[0], expo_args[1:]

    # BSD script takes the command as trailing args, util-linux wants -c.
    if platform == "darwin":
        return "script", ["-q", "/dev/null", *expo_args]
    return "script", ["-q", "-c", shlex.join(expo_args), "/dev/null"]


class ChildProcess:
    """Handle to a spawned tunnel process and the tasks draining it."""

    def __init__(self, process: asyncio.subprocess.Process, command: str):
        self._process = process
        self.command = command
        self._watcher: Optional[asyncio.Task] = None

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def returncode(self) -> Optional[int]:
        return self._process.returncode

    async def wait(self) -> Optional[int]:
        """Wait until the process exited and both streams were drained."""
        if self._watcher is not None:
            await asyncio.shield(self._watcher)
        return self._process.returncode

    def __repr__(self) -> str:
        return f"<ChildProcess pid={self.pid} command={self.command!r}>"


class ProcessLifecycle:
    """Spawns, drains, terminates and cleans up after tunnel processes.

    Args:
        cleanup_steps: Commands run by ``preflight_cleanup``.
        cleanup_timeout: Seconds each cleanup command may run.
        echo_output: Copy raw child output to this process's stdout/stderr.
    """

    def __init__(
        self,
        cleanup_steps: Sequence[CleanupStep] = (),
        cleanup_timeout: float = 10.0,
        echo_output: bool = False,
    ):
        self.cleanup_steps = list(cleanup_steps)
        self.cleanup_timeout = cleanup_timeout
        self.echo_output = echo_output

    async def spawn(
        self,
        command: str,
        args: Sequence[str],
        cwd: Path | str,
        env: dict[str, str],
        on_stdout: StreamCallback,
        on_stderr: StreamCallback,
        on_exit: ExitCallback,
    ) -> ChildProcess:
        """Start ``command`` and begin draining its output.

        The stream consumers are wired up before this returns; output the
        child writes in the meantime waits in the pipe.

        Raises:
            SpawnError: If ``cwd`` is not a directory or ``command`` cannot
                be executed.
        """
        cwd_path = Path(cwd)
        if not cwd_path.is_dir():
            raise SpawnError(f"Working directory does not exist: {cwd_path}")

        try:
            process = await asyncio.create_subprocess_exec(
                command,
                *args,
                cwd=str(cwd_path),
                env=env,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=os.name == "posix",
            )
        except FileNotFoundError as e:
            raise SpawnError(f"Executable not found: {command}") from e
        except (PermissionError, NotADirectoryError) as e:
            raise SpawnError(f"Cannot execute {command}: {e}") from e

        child = ChildProcess(process, command)
        child._watcher = asyncio.create_task(
            self._watch(child, on_stdout, on_stderr, on_exit)
        )
        logger.info(f"Spawned {command} (PID {process.pid}) in {cwd_path}")
        return child

    async def _watch(
        self,
        child: ChildProcess,
        on_stdout: StreamCallback,
        on_stderr: StreamCallback,
        on_exit: ExitCallback,
    ) -> None:
        process = child._process
        try:
            await asyncio.gather(
                self._drain(process.stdout, on_stdout, "stdout"),
                self._drain(process.stderr, on_stderr, "stderr"),
            )
        except Exception as e:
            logger.error(f"Reading output of PID {child.pid} failed: {e}")
        finally:
            code = await process.wait()
            logger.debug(f"Process {child.pid} closed with code {code}")
            try:
                on_exit(code)
            except Exception as e:
                logger.error(f"Exit handler for PID {child.pid} failed: {e}")

    async def _drain(
        self,
        stream: Optional[asyncio.StreamReader],
        callback: StreamCallback,
        name: str,
    ) -> None:
        """Feed complete lines from ``stream`` to ``callback`` until EOF."""
        if stream is None:
            return

        pending = b""
        while True:
            chunk = await stream.read(CHUNK_SIZE)
            if not chunk:
                break
            if self.echo_output:
                self._echo(chunk, name)

            pending += chunk
            head, sep, tail = pending.rpartition(b"\n")
            if sep:
                self._deliver(callback, head + sep, name)
                pending = tail
            elif len(pending) > MAX_PENDING_BYTES:
                self._deliver(callback, pending, name)
                pending = b""

        if pending:
            self._deliver(callback, pending, name)

    @staticmethod
    def _deliver(callback: StreamCallback, data: bytes, name: str) -> None:
        try:
            callback(data)
        except Exception as e:
            logger.error(f"Handler for {name} output failed: {e}")

    @staticmethod
    def _echo(chunk: bytes, name: str) -> None:
        target = sys.stderr if name == "stderr" else sys.stdout
        buffer = getattr(target, "buffer", None)
        try:
            if buffer is not None:
                buffer.write(chunk)
            else:
                target.write(chunk.decode("utf-8", errors="replace"))
            target.flush()
        except (OSError, ValueError) as e:
            logger.debug(f"Could not echo {name} output: {e}")

    def terminate(self, child: ChildProcess) -> bool:
        """Send SIGTERM to the child and return without waiting.

        The child runs in its own session, so the whole group (``script``
        plus the bundler under it) is signalled. Returns False if the
        process was already gone.
        """
        if child.returncode is not None:
            return False

        logger.info(f"Terminating PID {child.pid}")
        try:
            if os.name == "posix":
                os.killpg(child.pid, signal.SIGTERM)
            else:
                child._process.terminate()
        except ProcessLookupError:
            return False
        except PermissionError as e:
            logger.warning(f"Cannot signal process group {child.pid}: {e}")
            try:
                child._process.terminate()
            except ProcessLookupError:
                return False
        return True

    async def preflight_cleanup(self) -> list[str]:
        """Run every cleanup step, swallowing failures.

        A failed step usually just means there was nothing to clean up, so
        failures are only logged. Returns the names of the steps that
        succeeded.
        """
        cleaned = []
        for step in self.cleanup_steps:
            try:
                await self._run_cleanup_step(step)
                cleaned.append(step.name)
            except CleanupError as e:
                logger.debug(f"Cleanup step '{step.name}' skipped: {e}")
        return cleaned

    async def _run_cleanup_step(self, step: CleanupStep) -> None:
        logger.debug(f"Cleanup: {step.name} ({step.command})")
        try:
            proc = await asyncio.create_subprocess_shell(
                step.command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise CleanupError(f"could not run command: {e}") from e

        try:
            _, stderr = await asyncio.wait_for(
                proc.communicate(), timeout=self.cleanup_timeout
            )
        except asyncio.TimeoutError:
            try:
                proc.kill()
            except ProcessLookupError:
                pass
            await proc.wait()
            raise CleanupError(f"timed out after {self.cleanup_timeout}s")

        if proc.returncode != 0:
            detail = stderr.decode("utf-8", errors="replace").strip()
            raise CleanupError(f"exit code {proc.returncode} {detail}".strip())
