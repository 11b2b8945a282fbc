"""Shared pytest fixtures and configuration."""

import asyncio

import pytest

from metrotun.config import TunnelConfig
from metrotun.logger import setup_logging
from metrotun.tunnel.supervisor import TunnelSupervisor


class FakeChild:
    """Stand-in for ChildProcess; ``returncode`` stays None while alive."""

    def __init__(self, pid: int):
        self.pid = pid
        self.returncode = None

    def __repr__(self):
        return f"<FakeChild pid={self.pid}>"


class FakeLifecycle:
    """Records spawns and terminations and lets tests drive the callbacks."""

    def __init__(self, cleanup_delay: float = 0.0, spawn_error: Exception = None):
        self.cleanup_delay = cleanup_delay
        self.spawn_error = spawn_error
        self.cleanup_runs = 0
        self.spawned: list[FakeChild] = []
        self.terminated: list[FakeChild] = []
        self.spawn_calls: list[dict] = []
        self._callbacks = {}

    async def preflight_cleanup(self):
        self.cleanup_runs += 1
        await asyncio.sleep(self.cleanup_delay)
        return []

    async def spawn(self, command, args, cwd, env, on_stdout, on_stderr, on_exit):
        await asyncio.sleep(0)
        self.spawn_calls.append(
            {"command": command, "args": list(args), "cwd": cwd, "env": env}
        )
        if self.spawn_error:
            raise self.spawn_error
        child = FakeChild(pid=1000 + len(self.spawned))
        self.spawned.append(child)
        self._callbacks[child] = (on_stdout, on_stderr, on_exit)
        return child

    def terminate(self, child):
        self.terminated.append(child)
        if child.returncode is not None:
            return False
        child.returncode = -15
        return True

    # ─── Test helpers ────────────────────────────────────────────────

    def emit_stdout(self, child, data: bytes):
        self._callbacks[child][0](data)

    def emit_stderr(self, child, data: bytes):
        self._callbacks[child][1](data)

    def exit(self, child, code: int):
        child.returncode = code
        self._callbacks[child][2](code)

    @property
    def live_children(self) -> list[FakeChild]:
        return [c for c in self.spawned if c.returncode is None]


@pytest.fixture(autouse=True)
def reset_logging():
    """Point loguru at the current (captured) stderr for every test."""
    setup_logging(level="DEBUG")
    yield


@pytest.fixture
def config(tmp_path):
    """Config pointing at a temporary project directory."""
    return TunnelConfig(project_dir=tmp_path, echo_output=False)


@pytest.fixture
def lifecycle():
    return FakeLifecycle()


@pytest.fixture
def supervisor(config, lifecycle):
    return TunnelSupervisor(config, lifecycle=lifecycle)


@pytest.fixture
def make_supervisor(config):
    """Build a supervisor around a FakeLifecycle with custom behaviour."""

    def _make(**lifecycle_kwargs):
        fake = FakeLifecycle(**lifecycle_kwargs)
        return TunnelSupervisor(config, lifecycle=fake), fake

    return _make
