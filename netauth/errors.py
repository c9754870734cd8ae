"""Exception types shared across the netauth package."""
from __future__ import annotations

from enum import Enum


class NetAuthError(Exception):
    """Base class for netauth errors."""


class ConfigError(NetAuthError):
    """Raised when settings are missing, unparseable, or inconsistent."""


class CredentialErrorKind(str, Enum):
    LOCKED = "locked"
    NOT_CONFIGURED = "not_configured"
    IO_ERROR = "io_error"


class CredentialError(NetAuthError):
    """A credential store could not produce usable credentials.

    This is a local resource problem, not evidence that the portal rejected
    anything, so the supervisor never counts it against the retry budget.
    """

    def __init__(self, kind: CredentialErrorKind, message: str = "") -> None:
        self.kind = kind
        super().__init__(message or kind.value)


__all__ = [
    "NetAuthError",
    "ConfigError",
    "CredentialError",
    "CredentialErrorKind",
]
