"""Value types passed between the supervisor and its collaborators."""
from .connection_state import ConnectionState, Phase
from .credentials import Credentials
from .outcomes import Attempt, AttemptKind, AuthOutcome, ErrorKind
from .status_event import EventReason, StatusEvent, TickResult

__all__ = [
    "Attempt",
    "AttemptKind",
    "AuthOutcome",
    "ConnectionState",
    "Credentials",
    "ErrorKind",
    "EventReason",
    "Phase",
    "StatusEvent",
    "TickResult",
]
