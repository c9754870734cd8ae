"""Integration-style tests for the FastAPI layer using fakes."""
from __future__ import annotations

import asyncio
import tempfile
import time
import unittest
from pathlib import Path
from typing import Any, List, Optional
from unittest.mock import patch

from fastapi.testclient import TestClient

import netauth.api as api_module
from netauth.config import Settings
from netauth.errors import ConfigError
from netauth.journal import EventJournal
from netauth.models import ConnectionState
from netauth.supervisor import SupervisorSettings


class _FakeSupervisor:
    def __init__(self) -> None:
        self.settings = SupervisorSettings()

    def set_auto_login(self, enabled: bool) -> None:
        self.settings = SupervisorSettings(auto_login=enabled)


class _FakeRunner:
    instances: List["_FakeRunner"] = []

    def __init__(self, settings: Settings, **kwargs: Any) -> None:
        self.settings = settings
        self.kwargs = kwargs
        self.supervisor = _FakeSupervisor()
        self.stop_event = asyncio.Event()
        self.run_calls: List[Optional[float]] = []
        self.resets = 0
        _FakeRunner.instances.append(self)

    async def run(self, runtime: Optional[float] = None) -> None:
        self.run_calls.append(runtime)
        try:
            await asyncio.wait_for(self.stop_event.wait(), timeout=1.0)
        except asyncio.TimeoutError:
            pass

    def snapshot(self) -> ConnectionState:
        return ConnectionState.initial(reachable=True)

    def request_stop(self) -> None:
        self.stop_event.set()

    def request_reset(self) -> None:
        self.resets += 1


class ApiSimulationTest(unittest.TestCase):
    def setUp(self) -> None:
        api_module._runner_task = None
        api_module._runner = None
        api_module._journal_path = None
        self._tmp = tempfile.TemporaryDirectory()
        self.journal_path = str(Path(self._tmp.name, "events.csv"))
        self.settings = Settings(username="65010001", journal_path=self.journal_path)
        self.client = TestClient(api_module.app)
        self.client.__enter__()

    def tearDown(self) -> None:
        if api_module._runner is not None:
            api_module._runner.request_stop()
        self.client.__exit__(None, None, None)
        api_module._runner_task = None
        api_module._runner = None
        api_module._journal_path = None
        _FakeRunner.instances.clear()
        self._tmp.cleanup()

    def _start(self, **params: Any):
        with patch("netauth.api.load_settings", return_value=self.settings), patch(
            "netauth.api.build_runner", _FakeRunner
        ):
            return self.client.post("/supervisor/start", params=params)

    def test_health_endpoint_returns_ok(self) -> None:
        response = self.client.get("/health")
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["status"], "ok")
        self.assertIn("time", payload)

    def test_status_returns_idle_when_not_running(self) -> None:
        response = self.client.get("/status")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"status": "idle"})

    def test_start_and_stop_flow_uses_runner(self) -> None:
        response = self._start(interval=120, max_attempt=5, runtime=0.5)

        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data["status"], "started")
        self.assertEqual(data["journal"], self.journal_path)
        self.assertEqual(data["interval"], 120)

        runner = _FakeRunner.instances[-1]
        self.assertEqual(runner.settings.max_attempt, 5)
        self.assertIsInstance(runner.kwargs["journal"], EventJournal)
        time.sleep(0.1)
        self.assertEqual(runner.run_calls, [0.5])

        status = self.client.get("/status").json()
        self.assertEqual(status["status"], "running")
        self.assertEqual(status["summary"], "unauthenticated")
        self.assertEqual(status["state"]["phase"], "unauthenticated")

        again = self._start()
        self.assertEqual(again.json()["status"], "already-running")
        self.assertEqual(len(_FakeRunner.instances), 1)

        stop_response = self.client.post("/supervisor/stop")
        self.assertEqual(stop_response.status_code, 200)
        self.assertEqual(stop_response.json(), {"status": "stopped"})
        self.assertEqual(self.client.post("/supervisor/stop").json(), {"status": "idle"})

    def test_start_rejects_invalid_configuration(self) -> None:
        with patch("netauth.api.load_settings", side_effect=ConfigError("interval must be positive")):
            response = self.client.post("/supervisor/start")
        self.assertEqual(response.status_code, 400)
        self.assertIn("Invalid configuration", response.json()["detail"])

        # Overrides are validated too: a heartbeat shorter than the probe timeout.
        response = self._start(interval=1)
        self.assertEqual(response.status_code, 400)
        self.assertIn("probe_timeout", response.json()["detail"])
        self.assertEqual(_FakeRunner.instances, [])

    def test_reset_and_auto_login_controls(self) -> None:
        self.assertEqual(self.client.post("/supervisor/reset").json(), {"status": "idle"})
        self.assertEqual(
            self.client.post("/supervisor/auto-login", params={"enabled": False}).json(),
            {"status": "idle"},
        )

        self._start()
        runner = _FakeRunner.instances[-1]

        reset = self.client.post("/supervisor/reset").json()
        self.assertEqual(reset["status"], "reset-requested")
        self.assertEqual(runner.resets, 1)

        paused = self.client.post("/supervisor/auto-login", params={"enabled": False}).json()
        self.assertEqual(paused, {"status": "ok", "auto_login": False})
        self.assertFalse(self.client.get("/status").json()["auto_login"])

    def test_history_reads_journal_rows(self) -> None:
        self.assertEqual(self.client.get("/events/history").json(), [])

        journal = EventJournal(self.journal_path)
        journal.log("logged_in", phase="authenticated", failures=0, message="ok")
        journal.log("session_lost", phase="retrying", failures=1, error="network_failure")
        api_module._journal_path = self.journal_path

        rows = self.client.get("/events/history", params={"limit": 1}).json()
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0]["event"], "session_lost")
        self.assertEqual(rows[0]["failures"], "1")


if __name__ == "__main__":
    unittest.main()
