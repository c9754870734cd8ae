from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class AttemptKind(str, Enum):
    LOGIN = "login"
    HEARTBEAT = "heartbeat"


class AuthOutcome(str, Enum):
    """Result of a single portal call."""

    SUCCESS = "success"
    AUTH_FAILURE = "auth_failure"
    NETWORK_FAILURE = "network_failure"
    TIMEOUT = "timeout"

    @property
    def ok(self) -> bool:
        return self is AuthOutcome.SUCCESS


class ErrorKind(str, Enum):
    NETWORK_FAILURE = "network_failure"
    AUTH_FAILURE = "auth_failure"
    CREDENTIAL_ERROR = "credential_error"
    TIMEOUT = "timeout"

    @property
    def is_network(self) -> bool:
        # Timeouts are reported separately but handled as network failures.
        return self in (ErrorKind.NETWORK_FAILURE, ErrorKind.TIMEOUT)


@dataclass(frozen=True, slots=True)
class Attempt:
    """One login or heartbeat call, as seen by the supervisor."""

    kind: AttemptKind
    outcome: AuthOutcome
    timestamp: float

    @property
    def error(self) -> ErrorKind | None:
        """Map the outcome onto the supervisor's error taxonomy.

        Only a login can be rejected; a failed heartbeat looks the same as a
        lapsed session or a network blip, so it is always a network failure.
        """
        if self.outcome is AuthOutcome.SUCCESS:
            return None
        if self.outcome is AuthOutcome.TIMEOUT:
            return ErrorKind.TIMEOUT
        if self.outcome is AuthOutcome.AUTH_FAILURE and self.kind is AttemptKind.LOGIN:
            return ErrorKind.AUTH_FAILURE
        return ErrorKind.NETWORK_FAILURE
