"""
Unit tests for the tunnel supervisor, driven through a fake lifecycle.
"""

import asyncio

import pytest

from metrotun.exceptions import SpawnError
from metrotun.tunnel.log_buffer import LogKind

URL_LINE = b"\x1b[1m\xe2\x80\xba Metro waiting on \x1b[4mexp://abcd-1234-anonymous-8081.exp.direct\x1b[24m\x1b[22m\r\n"


def _kinds(supervisor):
    return [e.kind for e in supervisor.logs()]


def _messages(supervisor):
    return [e.message for e in supervisor.logs()]


class TestStart:
    @pytest.mark.asyncio
    async def test_start_activates_without_url(self, supervisor, lifecycle):
        result = await supervisor.start()

        assert result.already_running is False
        assert result.session["status"] == "active"
        assert result.session["url"] is None
        assert result.session["platform"] == "expo"
        assert len(lifecycle.spawned) == 1
        assert supervisor.status()["active"] is True

    @pytest.mark.asyncio
    async def test_start_runs_cleanup_and_spawns_metro(self, supervisor, lifecycle, config):
        await supervisor.start()

        assert lifecycle.cleanup_runs == 1
        call = lifecycle.spawn_calls[0]
        assert call["cwd"] == config.project_dir
        assert call["env"]["FORCE_COLOR"] == "1"
        assert "--tunnel" in " ".join(call["args"])
        assert "8081" in " ".join(call["args"])

    @pytest.mark.asyncio
    async def test_start_twice_returns_same_session(self, supervisor, lifecycle):
        first = await supervisor.start()
        second = await supervisor.start()

        assert second.already_running is True
        assert second.session == first.session
        assert len(lifecycle.spawned) == 1
        assert lifecycle.cleanup_runs == 1

    @pytest.mark.asyncio
    async def test_concurrent_starts_spawn_once(self, make_supervisor):
        supervisor, lifecycle = make_supervisor(cleanup_delay=0.01)

        results = await asyncio.gather(*(supervisor.start() for _ in range(5)))

        assert len(lifecycle.spawned) == 1
        assert sum(1 for r in results if not r.already_running) == 1
        assert len({r.session["id"] for r in results}) == 1

    @pytest.mark.asyncio
    async def test_start_clears_previous_logs(self, supervisor, lifecycle):
        await supervisor.start()
        lifecycle.emit_stdout(lifecycle.spawned[0], b"old session output\n")
        await supervisor.stop()

        await supervisor.start()
        assert "old session output" not in _messages(supervisor)
        assert _messages(supervisor)[0].startswith("Starting Metro Bundler")

    @pytest.mark.asyncio
    async def test_start_replaces_session_wholesale(self, supervisor):
        first = await supervisor.start()
        await supervisor.stop()
        second = await supervisor.start()
        assert second.session["id"] != first.session["id"]


class TestSpawnFailure:
    @pytest.mark.asyncio
    async def test_spawn_error_rolls_back(self, make_supervisor):
        supervisor, lifecycle = make_supervisor(
            spawn_error=SpawnError("Executable not found: script")
        )

        with pytest.raises(SpawnError, match="not found"):
            await supervisor.start()

        status = supervisor.status()
        assert status["active"] is False
        assert status["session"]["status"] == "inactive"
        assert status["session"]["url"] is None
        assert supervisor.logs()[-1].kind is LogKind.ERROR
        assert "Failed to start" in supervisor.logs()[-1].message

    @pytest.mark.asyncio
    async def test_can_start_after_spawn_error(self, make_supervisor):
        supervisor, lifecycle = make_supervisor(spawn_error=SpawnError("boom"))
        with pytest.raises(SpawnError):
            await supervisor.start()

        lifecycle.spawn_error = None
        result = await supervisor.start()
        assert result.session["status"] == "active"


class TestStop:
    @pytest.mark.asyncio
    async def test_stop_when_inactive_is_noop(self, supervisor, lifecycle):
        result = await supervisor.stop()

        assert result.was_running is False
        assert lifecycle.terminated == []
        assert lifecycle.cleanup_runs == 0

    @pytest.mark.asyncio
    async def test_stop_terminates_child(self, supervisor, lifecycle):
        await supervisor.start()
        child = lifecycle.spawned[0]
        lifecycle.emit_stdout(child, URL_LINE)

        result = await supervisor.stop()

        assert result.was_running is True
        assert lifecycle.terminated == [child]
        assert lifecycle.cleanup_runs == 2
        assert supervisor.status() == {
            "active": False,
            "session": {
                "id": supervisor.session.session_id,
                "url": None,
                "platform": "expo",
                "status": "inactive",
            },
        }
        assert _messages(supervisor)[-1] == "Metro server stopped by user"

    @pytest.mark.asyncio
    async def test_stop_twice(self, supervisor, lifecycle):
        await supervisor.start()
        await supervisor.stop()
        result = await supervisor.stop()

        assert result.was_running is False
        assert len(lifecycle.terminated) == 1

    @pytest.mark.asyncio
    async def test_exit_after_stop_is_logged_without_state_change(
        self, supervisor, lifecycle
    ):
        await supervisor.start()
        child = lifecycle.spawned[0]
        await supervisor.stop()

        lifecycle.exit(child, -15)

        assert supervisor.status()["active"] is False
        assert _messages(supervisor)[-1] == "Metro process exited with code -15"


class TestOutputHandling:
    @pytest.mark.asyncio
    async def test_url_discovered_from_stdout(self, supervisor, lifecycle):
        await supervisor.start()
        lifecycle.emit_stdout(lifecycle.spawned[0], URL_LINE)

        session = supervisor.status()["session"]
        assert session["url"] == "exp://abcd-1234-anonymous-8081.exp.direct"
        assert supervisor.logs()[-1].kind is LogKind.SUCCESS
        assert supervisor.logs()[-1].message == (
            "Captured QR URL: exp://abcd-1234-anonymous-8081.exp.direct"
        )

    @pytest.mark.asyncio
    async def test_repeated_url_logged_once(self, supervisor, lifecycle):
        await supervisor.start()
        child = lifecycle.spawned[0]
        lifecycle.emit_stdout(child, URL_LINE)
        lifecycle.emit_stdout(child, URL_LINE)

        assert _kinds(supervisor).count(LogKind.SUCCESS) == 1

    @pytest.mark.asyncio
    async def test_rotated_url_overwrites(self, supervisor, lifecycle):
        await supervisor.start()
        child = lifecycle.spawned[0]
        lifecycle.emit_stdout(child, URL_LINE)
        lifecycle.emit_stdout(child, b"Tunnel reconnected: exp://new-host.exp.direct\n")

        assert supervisor.status()["session"]["url"] == "exp://new-host.exp.direct"
        assert _kinds(supervisor).count(LogKind.SUCCESS) == 2

    @pytest.mark.asyncio
    async def test_stdout_lines_sanitized(self, supervisor, lifecycle):
        await supervisor.start()
        qr = "▄▄▄▄▄▄▄\n█ ▄▄▄ █\n".encode("utf-8")
        lifecycle.emit_stdout(lifecycle.spawned[0], b"\x1b[32mHello\x1b[0m\n" + qr)

        assert _messages(supervisor)[-1] == "Hello"
        assert not any("▄" in m for m in _messages(supervisor))

    @pytest.mark.asyncio
    async def test_stderr_recorded_as_stderr(self, supervisor, lifecycle):
        await supervisor.start()
        lifecycle.emit_stderr(lifecycle.spawned[0], b"\x1b[31mWarning: ngrok slow\x1b[0m\n")

        entry = supervisor.logs()[-1]
        assert entry.kind is LogKind.STDERR
        assert entry.message == "Warning: ngrok slow"

    @pytest.mark.asyncio
    async def test_url_on_stderr_is_not_captured(self, supervisor, lifecycle):
        await supervisor.start()
        lifecycle.emit_stderr(lifecycle.spawned[0], URL_LINE)
        assert supervisor.status()["session"]["url"] is None

    @pytest.mark.asyncio
    async def test_log_buffer_stays_bounded(self, supervisor, lifecycle):
        await supervisor.start()
        chunk = b"".join(f"line {i}\n".encode() for i in range(1500))
        lifecycle.emit_stdout(lifecycle.spawned[0], chunk)

        logs = supervisor.logs()
        assert len(logs) == 1000
        assert logs[-1].message == "line 1499"


class TestUnexpectedExit:
    @pytest.mark.asyncio
    async def test_exit_deactivates_session(self, supervisor, lifecycle):
        await supervisor.start()
        child = lifecycle.spawned[0]
        lifecycle.emit_stdout(child, URL_LINE)

        lifecycle.exit(child, 1)

        status = supervisor.status()
        assert status["active"] is False
        assert status["session"]["url"] is None
        assert status["session"]["status"] == "inactive"
        entry = supervisor.logs()[-1]
        assert entry.kind is LogKind.WARNING
        assert entry.message == "Metro process exited with code 1"

    @pytest.mark.asyncio
    async def test_stop_after_exit_does_not_kill(self, supervisor, lifecycle):
        await supervisor.start()
        lifecycle.exit(lifecycle.spawned[0], 1)

        result = await supervisor.stop()
        assert result.was_running is False
        assert lifecycle.terminated == []

    @pytest.mark.asyncio
    async def test_stale_exit_does_not_touch_new_session(self, supervisor, lifecycle):
        await supervisor.start()
        old = lifecycle.spawned[0]
        await supervisor.stop()
        await supervisor.start()

        lifecycle.exit(old, -15)
        lifecycle.emit_stdout(old, b"exp://stale.exp.direct\n")

        status = supervisor.status()
        assert status["active"] is True
        assert status["session"]["url"] is None
        assert "Metro process exited with code -15" not in _messages(supervisor)


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_stop_during_start_cleanup(self, make_supervisor):
        supervisor, lifecycle = make_supervisor(cleanup_delay=0.02)

        start_task = asyncio.create_task(supervisor.start())
        await asyncio.sleep(0.005)  # start is inside its cleanup step
        stop_result = await supervisor.stop()
        await start_task

        assert len(lifecycle.spawned) == 1
        assert stop_result.was_running is True
        assert lifecycle.live_children == []
        assert supervisor.status()["active"] is False

    @pytest.mark.asyncio
    async def test_interleaved_start_stop_never_leaves_two_children(
        self, make_supervisor
    ):
        supervisor, lifecycle = make_supervisor(cleanup_delay=0.001)

        ops = [supervisor.start, supervisor.stop] * 5 + [supervisor.start]
        await asyncio.gather(*(op() for op in ops))

        assert len(lifecycle.live_children) == 1
        # every termination hit a child that was still running
        assert all(c.returncode == -15 for c in lifecycle.terminated)
        assert len(set(map(id, lifecycle.terminated))) == len(lifecycle.terminated)
        assert supervisor.session.process is lifecycle.live_children[0]

    @pytest.mark.asyncio
    async def test_shutdown_stops_active_session(self, supervisor, lifecycle):
        await supervisor.start()
        await supervisor.shutdown()
        assert lifecycle.live_children == []

    @pytest.mark.asyncio
    async def test_shutdown_when_idle(self, supervisor, lifecycle):
        await supervisor.shutdown()
        assert lifecycle.terminated == []
