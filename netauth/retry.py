"""Backoff and give-up rules for failed portal calls.

Kept free of clocks and I/O: the supervisor passes in its failure count and
decides for itself when the returned delay has elapsed.
"""
from __future__ import annotations

from dataclasses import dataclass

# 2**62 seconds is already far past any sane ceiling.
_MAX_EXPONENT = 62


def _check_count(failures: int) -> int:
    if isinstance(failures, bool) or not isinstance(failures, int):
        raise TypeError(f"failure count must be an int, got {type(failures).__name__}")
    if failures < 0:
        raise ValueError(f"failure count must be >= 0, got {failures}")
    return failures


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Exponential backoff with a ceiling and a fixed attempt budget."""

    base_interval: float = 5.0
    max_interval: float = 300.0
    max_attempts: int = 20

    def __post_init__(self) -> None:
        if self.base_interval <= 0:
            raise ValueError("base_interval must be positive")
        if self.max_interval < self.base_interval:
            raise ValueError("max_interval must be >= base_interval")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

    def backoff(self, failures: int) -> float:
        """Seconds to wait before acting again after ``failures`` failures."""
        failures = _check_count(failures)
        return min(self.base_interval * (2 ** min(failures, _MAX_EXPONENT)), self.max_interval)

    def give_up(self, failures: int) -> bool:
        return _check_count(failures) >= self.max_attempts


__all__ = ["RetryPolicy"]
