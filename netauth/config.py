"""Settings: JSON config file, ``KMITL_*`` environment overlay, logging setup."""
from __future__ import annotations

import json
import logging
import os
import sys
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from netauth.errors import ConfigError
from netauth.portal import ACIP, HEARTBEAT_URL, LOGIN_URL
from netauth.probe import DEFAULT_PROBE_HOST, DEFAULT_PROBE_PORT, DEFAULT_PROBE_URL
from netauth.retry import RetryPolicy
from netauth.supervisor import SupervisorSettings

logger = logging.getLogger(__name__)

APP_DIR_NAME = "kmitlnetauth"
CONFIG_FILE_NAME = "config.json"
GLOBAL_CONFIG_PATH = Path("/etc") / APP_DIR_NAME / CONFIG_FILE_NAME
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def user_config_dir() -> Path:
    base = os.environ.get("XDG_CONFIG_HOME")
    return (Path(base) if base else Path.home() / ".config") / APP_DIR_NAME


def user_data_dir() -> Path:
    base = os.environ.get("XDG_STATE_HOME")
    return (Path(base) if base else Path.home() / ".local" / "state") / APP_DIR_NAME


@dataclass(slots=True)
class Settings:
    username: str = ""
    password: Optional[str] = None
    ip_address: Optional[str] = None
    interval: float = 300.0
    max_attempt: int = 20
    auto_login: bool = True
    log_level: str = "info"

    retry_base_interval: float = 5.0
    retry_max_interval: float = 300.0
    give_up_cooldown: float = 3600.0
    probe_interval: float = 15.0
    probe_timeout: float = 5.0
    request_timeout: float = 10.0
    tick_slack: float = 5.0

    probe_mode: str = "socket"
    probe_host: str = DEFAULT_PROBE_HOST
    probe_port: int = DEFAULT_PROBE_PORT
    probe_url: str = DEFAULT_PROBE_URL
    login_url: str = LOGIN_URL
    heartbeat_url: str = HEARTBEAT_URL
    acip: str = ACIP
    verify_tls: bool = False

    credentials_path: Optional[str] = None
    journal_path: Optional[str] = None
    state_path: Optional[str] = None

    def validate(self) -> "Settings":
        if self.interval <= 0:
            raise ConfigError("interval must be positive")
        if self.max_attempt < 1:
            raise ConfigError("max_attempt must be at least 1")
        if self.probe_timeout <= 0 or self.request_timeout <= 0:
            raise ConfigError("timeouts must be positive")
        if self.probe_timeout >= self.interval:
            raise ConfigError("probe_timeout must be shorter than interval")
        if self.retry_base_interval <= 0 or self.retry_max_interval < self.retry_base_interval:
            raise ConfigError("retry intervals must be positive and max >= base")
        if self.probe_interval <= 0:
            raise ConfigError("probe_interval must be positive")
        if self.give_up_cooldown < 0:
            raise ConfigError("give_up_cooldown must be >= 0")
        if self.probe_mode not in ("socket", "http"):
            raise ConfigError(f"unknown probe_mode {self.probe_mode!r}")
        return self

    def supervisor_settings(self) -> SupervisorSettings:
        return SupervisorSettings(
            interval=self.interval,
            auto_login=self.auto_login,
            give_up_cooldown=self.give_up_cooldown,
            probe_interval=self.probe_interval,
        )

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            base_interval=self.retry_base_interval,
            max_interval=self.retry_max_interval,
            max_attempts=self.max_attempt,
        )

    @property
    def tick_deadline(self) -> float:
        # One probe plus at most one portal call per tick.
        return self.probe_timeout + self.request_timeout + self.tick_slack

    def resolved_journal_path(self) -> Path:
        return Path(self.journal_path) if self.journal_path else user_data_dir() / "events.csv"

    def resolved_state_path(self) -> Path:
        return Path(self.state_path) if self.state_path else user_data_dir() / "state.json"


def default_config_path(environ: Optional[Mapping[str, str]] = None) -> Path:
    env = os.environ if environ is None else environ
    explicit = env.get("KMITL_CONFIG")
    if explicit:
        return Path(explicit)
    if sys.platform.startswith("linux") and GLOBAL_CONFIG_PATH.exists():
        return GLOBAL_CONFIG_PATH
    return user_config_dir() / CONFIG_FILE_NAME


def _from_mapping(data: Mapping[str, Any]) -> Settings:
    known = {f.name for f in fields(Settings)}
    unknown = sorted(set(data) - known)
    if unknown:
        logger.warning("Ignoring unknown config keys: %s", ", ".join(unknown))
    try:
        return Settings(**{key: value for key, value in data.items() if key in known})
    except TypeError as exc:
        raise ConfigError(f"invalid config: {exc}") from exc


def _parse_bool(raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ValueError(f"not a boolean: {raw!r}")


def apply_env(settings: Settings, environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Overlay ``KMITL_*`` variables; bad numbers or booleans are skipped."""
    env = os.environ if environ is None else environ
    if "KMITL_USERNAME" in env:
        settings.username = env["KMITL_USERNAME"]
    if "KMITL_PASSWORD" in env:
        settings.password = env["KMITL_PASSWORD"]
    if "KMITL_IP" in env:
        settings.ip_address = env["KMITL_IP"]
    if "KMITL_LOG_LEVEL" in env:
        settings.log_level = env["KMITL_LOG_LEVEL"]

    parsers = (
        ("KMITL_INTERVAL", "interval", float),
        ("KMITL_MAX_ATTEMPT", "max_attempt", int),
        ("KMITL_AUTO_LOGIN", "auto_login", _parse_bool),
    )
    for var, attr, parse in parsers:
        raw = env.get(var)
        if raw is None:
            continue
        try:
            setattr(settings, attr, parse(raw))
        except ValueError:
            logger.warning("Ignoring %s=%r: cannot parse", var, raw)
    return settings


def load_settings(
    path: Optional[str | Path] = None,
    *,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Read the config file (defaults if absent), overlay env, validate."""
    config_path = Path(path) if path else default_config_path(environ)
    if config_path.exists():
        try:
            data = json.loads(config_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise ConfigError(f"failed to parse config {config_path}: {exc}") from exc
        if not isinstance(data, dict):
            raise ConfigError(f"config {config_path} must hold a JSON object")
        settings = _from_mapping(data)
    else:
        settings = Settings()
    return apply_env(settings, environ).validate()


def save_settings(settings: Settings, path: str | Path) -> None:
    """Write settings as JSON. The password is never written."""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    data: Dict[str, Any] = asdict(settings)
    data.pop("password", None)
    target.write_text(json.dumps(data, indent=2), encoding="utf-8")
    logger.info("Config saved to %s", target)


def configure_logging(level: str = "info", *, rich_console: Optional[bool] = None) -> None:
    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        numeric = logging.INFO
    if rich_console is None:
        rich_console = sys.stderr.isatty()

    if rich_console:
        from rich.logging import RichHandler

        handler: logging.Handler = RichHandler(rich_tracebacks=True, show_path=False)
        handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    else:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))

    logging.basicConfig(level=numeric, handlers=[handler], force=True)
    # urllib3 chatters at INFO about every new connection.
    logging.getLogger("urllib3").setLevel(max(numeric, logging.WARNING))


__all__ = [
    "Settings",
    "apply_env",
    "configure_logging",
    "default_config_path",
    "load_settings",
    "save_settings",
    "user_config_dir",
    "user_data_dir",
]
