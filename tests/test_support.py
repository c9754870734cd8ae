"""Credential sources, state store, event journal and notifiers."""
from __future__ import annotations

import json
import tempfile
import unittest
from datetime import datetime, timezone
from pathlib import Path

from fakes import RecordingSink

from netauth.config import Settings
from netauth.credentials import JsonFileCredentialSource, SettingsCredentialSource
from netauth.errors import CredentialError, CredentialErrorKind
from netauth.journal import EventJournal
from netauth.models import ConnectionState, ErrorKind, EventReason, Phase, StatusEvent
from netauth.notify import FanoutNotifier, JournalNotifier, LoggingNotifier
from netauth.store import StateStore


def _event(reason: EventReason, phase: Phase = Phase.RETRYING, failures: int = 1) -> StatusEvent:
    before = ConnectionState.initial(reachable=True)
    after = before.evolve(phase=phase, consecutive_failures=failures)
    return StatusEvent(before, after, reason, f"{reason.value} happened", 5.0, ErrorKind.NETWORK_FAILURE)


class CredentialSourceTest(unittest.TestCase):
    def test_settings_source_prefers_environment(self) -> None:
        settings = Settings(username="65010001", password="from-file", ip_address="10.0.0.5")
        source = SettingsCredentialSource(lambda: settings, environ={"KMITL_PASSWORD": "from-env"})
        creds = source.get()
        self.assertEqual(creds.student_id, "65010001")
        self.assertEqual(creds.password, "from-env")

    def test_settings_source_reads_fresh_each_time(self) -> None:
        settings = Settings(username="65010001", password="old", ip_address="10.0.0.5")
        source = SettingsCredentialSource(lambda: settings, environ={})
        self.assertEqual(source.get().password, "old")
        settings.password = "new"
        self.assertEqual(source.get().password, "new")

    def test_incomplete_settings_are_not_configured(self) -> None:
        source = SettingsCredentialSource(lambda: Settings(username="65010001"), environ={})
        with self.assertRaises(CredentialError) as ctx:
            source.get()
        self.assertIs(ctx.exception.kind, CredentialErrorKind.NOT_CONFIGURED)

    def test_json_file_source(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp, "credentials.json")
            source = JsonFileCredentialSource(path)
            with self.assertRaises(CredentialError) as ctx:
                source.get()
            self.assertIs(ctx.exception.kind, CredentialErrorKind.NOT_CONFIGURED)

            path.write_text("{oops", encoding="utf-8")
            with self.assertRaises(CredentialError) as ctx:
                source.get()
            self.assertIs(ctx.exception.kind, CredentialErrorKind.IO_ERROR)

            path.write_text(
                json.dumps({"student_id": "65010001", "password": "hunter2", "static_ip": "10.0.0.5"}),
                encoding="utf-8",
            )
            self.assertEqual(source.get().static_ip, "10.0.0.5")


class StateStoreTest(unittest.TestCase):
    def test_save_and_load(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            store = StateStore(Path(tmp, "nested", "state.json"))
            self.assertIsNone(store.load())
            state = ConnectionState.initial(reachable=True).evolve(
                phase=Phase.GIVEN_UP,
                consecutive_failures=20,
                given_up_at=99.0,
                last_error=ErrorKind.AUTH_FAILURE,
            )
            store.save(state)
            self.assertEqual(store.load(), state)
            self.assertFalse(store.path.with_suffix(".json.tmp").exists())

    def test_corrupt_file_is_ignored(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp, "state.json")
            path.write_text('{"phase": "sideways"}', encoding="utf-8")
            with self.assertLogs("netauth.store", level="WARNING"):
                self.assertIsNone(StateStore(path).load())


class EventJournalTest(unittest.TestCase):
    def test_record_writes_rows(self) -> None:
        fixed = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
        with tempfile.TemporaryDirectory() as tmp:
            journal = EventJournal(Path(tmp, "events.csv"), clock=lambda: fixed)
            self.assertEqual(journal.read(), [])
            journal.record(_event(EventReason.NETWORK_ERROR, failures=2))
            journal.log("note", message="manual")

            rows = journal.read()
            self.assertEqual(len(rows), 2)
            self.assertEqual(rows[0]["timestamp"], "2024-01-02T03:04:05.000+00:00")
            self.assertEqual(rows[0]["event"], "network_error")
            self.assertEqual(rows[0]["failures"], "2")
            self.assertEqual(rows[0]["error"], "network_failure")
            self.assertEqual(rows[1]["extra"], "")
            self.assertEqual(journal.read(1), [rows[1]])
            self.assertEqual(journal.read(0), [])

            # Reopening an existing journal must not rewrite the header.
            self.assertEqual(len(EventJournal(journal.path).read()), 2)

    def test_rejects_empty_fields(self) -> None:
        with tempfile.TemporaryDirectory() as tmp, self.assertRaises(ValueError):
            EventJournal(Path(tmp, "events.csv"), fields=())


class NotifierTest(unittest.TestCase):
    def test_logging_levels(self) -> None:
        notifier = LoggingNotifier()
        with self.assertLogs("netauth.notify", level="INFO") as logs:
            notifier.notify(_event(EventReason.LOGGED_IN, Phase.AUTHENTICATED, 0))
            notifier.notify(_event(EventReason.SESSION_LOST))
            notifier.notify(_event(EventReason.GIVEN_UP, Phase.GIVEN_UP, 20))
        levels = [record.levelname for record in logs.records]
        self.assertEqual(levels, ["INFO", "WARNING", "ERROR"])

    def test_fanout_survives_failing_sink(self) -> None:
        class Broken:
            def notify(self, event):
                raise RuntimeError("boom")

        recorder = RecordingSink()
        with tempfile.TemporaryDirectory() as tmp:
            journal = EventJournal(Path(tmp, "events.csv"))
            fanout = FanoutNotifier([Broken(), recorder, JournalNotifier(journal)])
            with self.assertLogs("netauth.notify", level="WARNING"):
                fanout.notify(_event(EventReason.INTERNET_LOST, Phase.DISCONNECTED))
            self.assertEqual(recorder.reasons, ["internet_lost"])
            self.assertEqual(journal.read()[0]["event"], "internet_lost")


if __name__ == "__main__":
    unittest.main()
