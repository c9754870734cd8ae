"""Persist the supervisor's ConnectionState between runs."""
from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Optional

from netauth.models import ConnectionState

logger = logging.getLogger(__name__)


class StateStore:
    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def load(self) -> Optional[ConnectionState]:
        """Return the saved state, or None when nothing usable is on disk."""
        if not self.path.exists():
            return None
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            return ConnectionState.from_dict(data)
        except (OSError, ValueError, TypeError) as exc:
            logger.warning("Ignoring unreadable state file %s: %s", self.path, exc)
            return None

    def save(self, state: ConnectionState) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(state.to_dict(), indent=2), encoding="utf-8")
        os.replace(tmp, self.path)


__all__ = ["StateStore"]
