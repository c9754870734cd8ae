from __future__ import annotations

from dataclasses import asdict, dataclass, replace
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from .outcomes import ErrorKind


class Phase(str, Enum):
    DISCONNECTED = "disconnected"
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"
    RETRYING = "retrying"
    GIVEN_UP = "given_up"


@dataclass(frozen=True, slots=True)
class ConnectionState:
    """The supervisor's belief about the network, replaced wholesale each tick.

    Instances are immutable, so a reference handed to another thread is
    always a consistent snapshot.
    """

    phase: Phase = Phase.DISCONNECTED
    authorized: bool = False
    internet_reachable: bool = False
    consecutive_failures: int = 0
    last_action_at: Optional[float] = None
    last_error: Optional[ErrorKind] = None
    given_up_at: Optional[float] = None

    def __post_init__(self) -> None:
        if self.consecutive_failures < 0:
            raise ValueError("consecutive_failures must be >= 0")
        if self.authorized != (self.phase is Phase.AUTHENTICATED):
            raise ValueError(f"authorized={self.authorized} contradicts phase {self.phase.value}")
        if self.authorized and self.consecutive_failures:
            raise ValueError("an authorized state cannot carry failures")

    @classmethod
    def initial(cls, *, reachable: bool = False) -> "ConnectionState":
        phase = Phase.UNAUTHENTICATED if reachable else Phase.DISCONNECTED
        return cls(phase=phase, internet_reachable=reachable)

    def evolve(self, **changes: Any) -> "ConnectionState":
        if "phase" in changes and "authorized" not in changes:
            changes["authorized"] = changes["phase"] is Phase.AUTHENTICATED
        return replace(self, **changes)

    def summary(self) -> str:
        if self.phase is Phase.RETRYING:
            return f"retrying({self.consecutive_failures})"
        return self.phase.value

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["phase"] = self.phase.value
        data["last_error"] = self.last_error.value if self.last_error else None
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ConnectionState":
        error = data.get("last_error")
        last_action_at = data.get("last_action_at")
        given_up_at = data.get("given_up_at")
        return cls(
            phase=Phase(data.get("phase", Phase.DISCONNECTED.value)),
            authorized=bool(data.get("authorized", False)),
            internet_reachable=bool(data.get("internet_reachable", False)),
            consecutive_failures=int(data.get("consecutive_failures", 0)),
            last_action_at=float(last_action_at) if last_action_at is not None else None,
            last_error=ErrorKind(error) if error else None,
            given_up_at=float(given_up_at) if given_up_at is not None else None,
        )
