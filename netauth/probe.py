"""Reachability checks that do not depend on portal authorization."""
from __future__ import annotations

import logging
import socket
from enum import Enum
from typing import Optional, Protocol

import requests

logger = logging.getLogger(__name__)

DEFAULT_PROBE_HOST = "portal.kmitl.ac.th"
DEFAULT_PROBE_PORT = 19008
DEFAULT_PROBE_URL = "http://detectportal.firefox.com/success.txt"


class Reachability(str, Enum):
    REACHABLE = "reachable"
    UNREACHABLE = "unreachable"

    @property
    def ok(self) -> bool:
        return self is Reachability.REACHABLE


class ConnectivityProbe(Protocol):
    timeout: float

    def check(self) -> Reachability: ...


class SocketProbe:
    """TCP connect to a known host.

    The portal host answers on the campus LAN whether or not this machine
    is logged in, which is what separates "no network" from "not authorized".
    """

    def __init__(
        self,
        host: str = DEFAULT_PROBE_HOST,
        port: int = DEFAULT_PROBE_PORT,
        *,
        timeout: float = 5.0,
    ) -> None:
        self.host = host
        self.port = port
        self.timeout = timeout

    def check(self) -> Reachability:
        try:
            with socket.create_connection((self.host, self.port), timeout=self.timeout):
                return Reachability.REACHABLE
        except OSError as exc:
            logger.debug("Probe %s:%s failed: %s", self.host, self.port, exc)
            return Reachability.UNREACHABLE


class HttpProbe:
    """Fetch a captive-portal detection page.

    Any HTTP answer means the network is up: before login the portal
    intercepts the page with a redirect or its own HTML, which still proves
    reachability. Whether the answer was the real page is kept in
    :attr:`captive` as a hint; only a transport error is UNREACHABLE.
    """

    def __init__(
        self,
        url: str = DEFAULT_PROBE_URL,
        *,
        expected: str = "success",
        timeout: float = 5.0,
    ) -> None:
        self.url = url
        self.expected = expected
        self.timeout = timeout
        self.captive: Optional[bool] = None

    def check(self) -> Reachability:
        try:
            resp = requests.get(self.url, timeout=self.timeout, allow_redirects=False)
        except requests.RequestException as exc:
            logger.debug("Probe %s failed: %s", self.url, exc)
            self.captive = None
            return Reachability.UNREACHABLE
        self.captive = not (resp.status_code == 200 and resp.text.strip() == self.expected)
        if self.captive:
            logger.debug("Probe %s intercepted (HTTP %d)", self.url, resp.status_code)
        return Reachability.REACHABLE


__all__ = [
    "ConnectivityProbe",
    "HttpProbe",
    "Reachability",
    "SocketProbe",
    "DEFAULT_PROBE_HOST",
    "DEFAULT_PROBE_PORT",
    "DEFAULT_PROBE_URL",
]
