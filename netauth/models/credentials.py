from __future__ import annotations

from dataclasses import dataclass, field

from netauth.errors import CredentialError, CredentialErrorKind


@dataclass(frozen=True, slots=True)
class Credentials:
    """Login material for one portal call. Never stored past that call."""

    student_id: str
    password: str = field(repr=False)
    static_ip: str

    def __post_init__(self) -> None:
        missing = [
            name
            for name in ("student_id", "password", "static_ip")
            if not (getattr(self, name) or "").strip()
        ]
        if missing:
            raise CredentialError(
                CredentialErrorKind.NOT_CONFIGURED,
                f"missing credential fields: {', '.join(missing)}",
            )
