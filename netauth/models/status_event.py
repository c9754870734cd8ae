from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, NamedTuple, Optional

from .connection_state import ConnectionState
from .outcomes import ErrorKind


class EventReason(str, Enum):
    INTERNET_RESTORED = "internet_restored"
    INTERNET_LOST = "internet_lost"
    LOGGED_IN = "logged_in"
    SESSION_LOST = "session_lost"
    LOGIN_REJECTED = "login_rejected"
    NETWORK_ERROR = "network_error"
    GIVEN_UP = "given_up"
    RESET = "reset"
    CREDENTIALS_UNAVAILABLE = "credentials_unavailable"


@dataclass(frozen=True, slots=True)
class StatusEvent:
    """A status change handed to the notification sink, then forgotten."""

    previous: ConnectionState
    current: ConnectionState
    reason: EventReason
    message: str
    timestamp: float
    error: Optional[ErrorKind] = None

    @property
    def exhausted(self) -> bool:
        return self.reason is EventReason.GIVEN_UP

    @property
    def auth_related(self) -> bool:
        return self.error is ErrorKind.AUTH_FAILURE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reason": self.reason.value,
            "message": self.message,
            "timestamp": self.timestamp,
            "error": self.error.value if self.error else None,
            "exhausted": self.exhausted,
            "previous": self.previous.summary(),
            "current": self.current.to_dict(),
        }


class TickResult(NamedTuple):
    state: ConnectionState
    event: Optional[StatusEvent] = None
