"""Append-only CSV journal of supervisor status events."""
from __future__ import annotations

import csv
import json
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from netauth.models import StatusEvent


DEFAULT_FIELDS: Sequence[str] = (
    "timestamp",
    "event",
    "phase",
    "failures",
    "error",
    "message",
    "extra",
)


def _ensure_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _normalize_extra(extra: Mapping[str, Any]) -> str:
    if not extra:
        return ""
    try:
        return json.dumps(extra, separators=(",", ":"), ensure_ascii=True, sort_keys=True)
    except (TypeError, ValueError):
        return repr(extra)


@dataclass(slots=True)
class JournalRecord:
    """One CSV row."""

    timestamp: str
    event: str
    phase: str = ""
    failures: Optional[int] = None
    error: Optional[str] = None
    message: Optional[str] = None
    extra: str = ""

    def as_row(self, fields: Sequence[str]) -> Dict[str, Any]:
        row: Dict[str, Any] = {
            "timestamp": self.timestamp,
            "event": self.event,
            "phase": self.phase,
            "failures": self.failures if self.failures is not None else "",
            "error": self.error or "",
            "message": self.message or "",
            "extra": self.extra,
        }
        return {key: row.get(key, "") for key in fields}


class EventJournal:
    """CSV log of status changes.

    Rows are written and flushed one at a time so that the API's ``/events``
    websocket can tail the file as it grows.
    """

    def __init__(
        self,
        path: str | Path,
        *,
        fields: Sequence[str] | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.path = Path(path)
        self.fields: Sequence[str] = tuple(fields) if fields else DEFAULT_FIELDS
        if not self.fields:
            raise ValueError("fields must contain at least one column")

        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._ensure_header()

    def _ensure_header(self) -> None:
        if self.path.exists() and self.path.stat().st_size > 0:
            return
        with self._lock:
            with self.path.open("w", newline="", encoding="utf-8") as handle:
                writer = csv.DictWriter(handle, fieldnames=self.fields, extrasaction="ignore")
                writer.writeheader()
                handle.flush()

    def record(self, event: StatusEvent) -> None:
        current = event.current
        self.log(
            event.reason.value,
            phase=current.phase.value,
            failures=current.consecutive_failures,
            error=event.error.value if event.error else None,
            message=event.message,
            extra={"previous": event.previous.summary(), "reachable": current.internet_reachable},
        )

    def log(
        self,
        event: str,
        *,
        phase: str = "",
        failures: Optional[int] = None,
        error: Optional[str] = None,
        message: Optional[str] = None,
        extra: Optional[Mapping[str, Any]] = None,
    ) -> None:
        record = JournalRecord(
            timestamp=self._timestamp(),
            event=event,
            phase=phase,
            failures=failures,
            error=error,
            message=message,
            extra=_normalize_extra(extra or {}),
        )
        row = record.as_row(self.fields)
        with self._lock:
            with self.path.open("a", newline="", encoding="utf-8") as handle:
                writer = csv.DictWriter(handle, fieldnames=self.fields, extrasaction="ignore")
                writer.writerow(row)
                handle.flush()

    def read(self, limit: Optional[int] = None) -> List[Dict[str, str]]:
        """Return journal rows oldest first, optionally only the last ``limit``."""
        if not self.path.exists():
            return []
        with self._lock:
            with self.path.open("r", newline="", encoding="utf-8") as handle:
                rows = list(csv.DictReader(handle))
        if limit is not None:
            rows = rows[-limit:] if limit > 0 else []
        return rows

    def _timestamp(self) -> str:
        dt = self._clock()
        if not isinstance(dt, datetime):
            return str(dt)
        return _ensure_utc(dt).isoformat(timespec="milliseconds")


__all__ = [
    "DEFAULT_FIELDS",
    "EventJournal",
    "JournalRecord",
]
