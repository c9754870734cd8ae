"""Notification sinks for supervisor status events."""
from __future__ import annotations

import logging
from typing import Iterable, List, Protocol

from netauth.journal import EventJournal
from netauth.models import EventReason, StatusEvent

logger = logging.getLogger(__name__)

_GOOD_NEWS = frozenset({EventReason.INTERNET_RESTORED, EventReason.LOGGED_IN, EventReason.RESET})


class NotificationSink(Protocol):
    def notify(self, event: StatusEvent) -> None: ...


class LoggingNotifier:
    """Turns status events into log lines, louder the worse they are."""

    def __init__(self, log: logging.Logger | None = None) -> None:
        self._log = log or logger

    def notify(self, event: StatusEvent) -> None:
        if event.exhausted:
            level = logging.ERROR
        elif event.reason in _GOOD_NEWS:
            level = logging.INFO
        else:
            level = logging.WARNING
        self._log.log(
            level,
            "[%s] %s -> %s: %s",
            event.reason.value,
            event.previous.summary(),
            event.current.summary(),
            event.message,
        )


class JournalNotifier:
    def __init__(self, journal: EventJournal) -> None:
        self.journal = journal

    def notify(self, event: StatusEvent) -> None:
        self.journal.record(event)


class FanoutNotifier:
    """Deliver each event to several sinks in order.

    A failing sink is logged and skipped; it never stops the others.
    """

    def __init__(self, sinks: Iterable[NotificationSink]) -> None:
        self.sinks: List[NotificationSink] = list(sinks)

    def notify(self, event: StatusEvent) -> None:
        for sink in self.sinks:
            try:
                sink.notify(event)
            except Exception:
                logger.warning("Notification sink %r failed", sink, exc_info=True)


__all__ = [
    "FanoutNotifier",
    "JournalNotifier",
    "LoggingNotifier",
    "NotificationSink",
]
