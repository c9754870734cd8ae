"""Time source used by the supervisor and its runner."""
from __future__ import annotations

import time
from typing import Protocol


class Clock(Protocol):
    def now(self) -> float: ...

    def sleep_until(self, instant: float) -> None: ...


class SystemClock:
    """Wall-clock seconds, so persisted timestamps survive a restart."""

    def now(self) -> float:
        return time.time()

    def sleep_until(self, instant: float) -> None:
        remaining = instant - self.now()
        if remaining > 0:
            time.sleep(remaining)


__all__ = ["Clock", "SystemClock"]
