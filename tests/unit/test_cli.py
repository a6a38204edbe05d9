"""Unit tests for the window-restore CLI."""

import json
import socket
import threading
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from window_restore_daemon.cli import DaemonClient, cli


STATUS = {
    "running": True,
    "paused": False,
    "pause_remaining": None,
    "monitoring_suspended": False,
    "privacy_mode": False,
    "active_slot": 2,
    "slots": [
        {"id": 0, "windows": 3, "updated_at": "2026-01-05T10:00:00"},
        {"id": 1, "windows": 0, "updated_at": None},
        {"id": 2, "windows": 4, "updated_at": "2026-01-05T09:30:00"},
    ],
    "detector": {
        "state": "idle",
        "last_outcome": {"restored": 1, "saved": 2, "skipped": 1, "failed": 0},
    },
    "timers": [],
}


@pytest.fixture
def daemon():
    """Patches DaemonClient; ``daemon.call`` records (method, params)."""
    with patch("window_restore_daemon.cli.DaemonClient") as client_cls:
        yield client_cls.return_value


def invoke(*args):
    return CliRunner().invoke(cli, list(args))


class TestStatusCommand:
    def test_table_output(self, daemon):
        daemon.call.return_value = STATUS

        result = invoke("status")

        assert result.exit_code == 0
        daemon.call.assert_called_once_with("status", None)
        assert "Slots" in result.output
        assert "auto" in result.output
        assert "never" in result.output
        assert "Last restore: 1/2 windows" in result.output

    def test_json_output(self, daemon):
        daemon.call.return_value = STATUS

        result = invoke("status", "--json")

        assert result.exit_code == 0
        assert json.loads(result.output)["active_slot"] == 2


class TestSlotCommands:
    def test_save_default_slot(self, daemon):
        daemon.call.return_value = {"saved": True, "slot": 1, "windows": 3}

        result = invoke("save")

        assert result.exit_code == 0
        daemon.call.assert_called_once_with("save", {})
        assert "Saved 3 windows to slot 1" in result.output

    def test_save_while_paused(self, daemon):
        daemon.call.return_value = {"saved": False, "slot": 2, "reason": "paused"}

        result = invoke("save", "2")

        daemon.call.assert_called_once_with("save", {"slot": 2})
        assert "Not saved: paused" in result.output

    def test_restore(self, daemon):
        daemon.call.return_value = {"ran": True, "slot": 3, "restored": 2, "saved": 4}

        result = invoke("restore", "3")

        daemon.call.assert_called_once_with("restore", {"slot": 3})
        assert "Restored 2/4 windows from slot 3" in result.output

    def test_restore_nothing(self, daemon):
        daemon.call.return_value = {"ran": False, "slot": 1}

        result = invoke("restore")

        assert "Nothing restored from slot 1" in result.output

    def test_clear_all(self, daemon):
        daemon.call.return_value = {"cleared": "all"}

        result = invoke("clear", "--all")

        daemon.call.assert_called_once_with("clear", {"all": True})
        assert "Cleared all" in result.output

    def test_select(self, daemon):
        daemon.call.return_value = {"active_slot": 4}

        result = invoke("select", "4")

        daemon.call.assert_called_once_with("select_slot", {"slot": 4})
        assert "Active slot: 4" in result.output

    def test_select_requires_slot(self, daemon):
        result = invoke("select")

        assert result.exit_code == 2
        daemon.call.assert_not_called()


class TestPauseAndPrivacy:
    def test_pause_indefinitely(self, daemon):
        daemon.call.return_value = {"paused": True, "remaining": None}

        invoke("pause")

        daemon.call.assert_called_once_with("pause", {})

    def test_pause_with_duration(self, daemon):
        daemon.call.return_value = {"paused": True, "remaining": 300.0}

        invoke("pause", "--duration", "300")

        daemon.call.assert_called_once_with("pause", {"duration": 300.0})

    def test_zero_duration_is_sent_for_validation(self, daemon):
        daemon.call.side_effect = RuntimeError("'duration' must be a positive number of seconds")

        result = invoke("pause", "--duration", "0")

        daemon.call.assert_called_once_with("pause", {"duration": 0.0})
        assert result.exit_code == 1
        assert "positive number" in result.output

    def test_resume(self, daemon):
        daemon.call.return_value = {"paused": False}

        result = invoke("resume")

        daemon.call.assert_called_once_with("resume", None)
        assert "Resumed" in result.output

    @pytest.mark.parametrize("state,enabled", [("on", True), ("off", False)])
    def test_privacy(self, daemon, state, enabled):
        daemon.call.return_value = {"privacy_mode": enabled}

        result = invoke("privacy", state)

        daemon.call.assert_called_once_with("privacy", {"enabled": enabled})
        assert f"Privacy mode: {state}" in result.output

    @pytest.mark.parametrize("phase,method", [("pre", "sleep"), ("post", "wake")])
    def test_sleep_hook(self, daemon, phase, method):
        daemon.call.return_value = {"queued": method}

        result = invoke("sleep-hook", phase)

        assert result.exit_code == 0
        daemon.call.assert_called_once_with(method, None)


def test_daemon_error_exits_nonzero(daemon):
    daemon.call.side_effect = RuntimeError("Daemon not running")

    result = invoke("resume")

    assert result.exit_code == 1
    assert "Error: Daemon not running" in result.output


class TestDaemonClient:
    def test_missing_socket(self, tmp_path):
        client = DaemonClient(tmp_path / "missing.sock")

        with pytest.raises(RuntimeError, match="Daemon socket not found"):
            client.call("ping")

    def serve_once(self, path, response):
        server = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        server.bind(str(path))
        server.listen(1)
        received = []

        def handle():
            conn, _ = server.accept()
            with conn:
                data = b""
                while b"\n" not in data:
                    data += conn.recv(4096)
                received.append(json.loads(data))
                conn.sendall(json.dumps(response).encode() + b"\n")
            server.close()

        thread = threading.Thread(target=handle, daemon=True)
        thread.start()
        return thread, received

    def test_result(self, tmp_path):
        path = tmp_path / "d.sock"
        thread, received = self.serve_once(path, {"jsonrpc": "2.0", "result": {"status": "ok"}, "id": 1})

        result = DaemonClient(path, timeout=5).call("ping")
        thread.join(timeout=5)

        assert result == {"status": "ok"}
        assert received[0]["method"] == "ping"
        assert received[0]["params"] == {}

    def test_error_carries_suggestion(self, tmp_path):
        path = tmp_path / "d.sock"
        error = {"code": 1500, "message": "Invalid slot 9", "suggestion": "Use a slot between 0 and 5"}
        thread, _ = self.serve_once(path, {"jsonrpc": "2.0", "error": error, "id": 1})

        with pytest.raises(RuntimeError) as exc_info:
            DaemonClient(path, timeout=5).call("save", {"slot": 9})
        thread.join(timeout=5)

        assert "Invalid slot 9" in str(exc_info.value)
        assert "Use a slot between 0 and 5" in str(exc_info.value)
