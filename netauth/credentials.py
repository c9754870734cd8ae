"""Where login credentials come from.

Sources are asked again for every login; nothing here is cached.
"""
from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Callable, Mapping, Optional, Protocol

from netauth.errors import CredentialError, CredentialErrorKind
from netauth.models import Credentials


class CredentialSource(Protocol):
    def get(self) -> Credentials: ...


class SettingsCredentialSource:
    """Credentials from the loaded settings, with ``KMITL_*`` env overrides."""

    def __init__(
        self,
        settings_provider: Callable[[], object],
        *,
        environ: Optional[Mapping[str, str]] = None,
    ) -> None:
        self._settings_provider = settings_provider
        self._environ = environ

    def get(self) -> Credentials:
        env = os.environ if self._environ is None else self._environ
        settings = self._settings_provider()
        return Credentials(
            student_id=env.get("KMITL_USERNAME") or getattr(settings, "username", "") or "",
            password=env.get("KMITL_PASSWORD") or getattr(settings, "password", None) or "",
            static_ip=env.get("KMITL_IP") or getattr(settings, "ip_address", None) or "",
        )


class JsonFileCredentialSource:
    """Credentials kept in a small JSON file next to the config."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def get(self) -> Credentials:
        if not self.path.exists():
            raise CredentialError(CredentialErrorKind.NOT_CONFIGURED, f"{self.path} does not exist")
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise CredentialError(CredentialErrorKind.IO_ERROR, f"cannot read {self.path}: {exc}") from exc
        if not isinstance(data, dict):
            raise CredentialError(CredentialErrorKind.IO_ERROR, f"{self.path} must hold a JSON object")
        return Credentials(
            student_id=str(data.get("student_id") or ""),
            password=str(data.get("password") or ""),
            static_ip=str(data.get("static_ip") or ""),
        )


__all__ = [
    "CredentialSource",
    "JsonFileCredentialSource",
    "SettingsCredentialSource",
]
