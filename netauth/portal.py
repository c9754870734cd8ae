"""Captive-portal calls built on top of requests."""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Protocol

import requests
import urllib3
from requests.adapters import HTTPAdapter

from netauth.models import AttemptKind, AuthOutcome, Credentials

logger = logging.getLogger(__name__)

LOGIN_URL = "https://portal.kmitl.ac.th:19008/portalauth/login"
HEARTBEAT_URL = "https://nani.csc.kmitl.ac.th/network-api/data/"
ACIP = "10.252.13.10"
HEARTBEAT_OS = "Chrome v116.0.5845.141 on Windows 10 64-bit"

OutcomeClassifier = Callable[[AttemptKind, requests.Response], AuthOutcome]


class PortalClient(Protocol):
	"""Login and heartbeat against the portal. Each call stands alone."""

	def login(self, credentials: Credentials) -> AuthOutcome: ...

	def heartbeat(self) -> AuthOutcome: ...


def _json_body(resp: requests.Response) -> Any:
	try:
		return resp.json()
	except ValueError:
		return None


def classify_response(kind: AttemptKind, resp: requests.Response) -> AuthOutcome:
	"""Default mapping from an HTTP answer to an outcome.

	The portal does not document its rejection format, so this is only a
	best guess: 5xx is the network's fault, 4xx or an explicit
	``"success": false`` body on login is a rejection. Pass a different
	classifier to :class:`KmitlPortalClient` when the portal disagrees.
	"""
	status = resp.status_code
	if status >= 500:
		return AuthOutcome.NETWORK_FAILURE
	if kind is AttemptKind.HEARTBEAT:
		return AuthOutcome.SUCCESS if 200 <= status < 300 else AuthOutcome.NETWORK_FAILURE
	if 200 <= status < 300:
		body = _json_body(resp)
		if isinstance(body, dict) and body.get("success") is False:
			return AuthOutcome.AUTH_FAILURE
		return AuthOutcome.SUCCESS
	if 400 <= status < 500:
		return AuthOutcome.AUTH_FAILURE
	return AuthOutcome.NETWORK_FAILURE


def local_mac() -> str:
	return f"{uuid.getnode():012x}"


@dataclass(slots=True)
class PortalConfig:
	"""Endpoints and transport options for :class:`KmitlPortalClient`."""

	username: str = ""
	login_url: str = LOGIN_URL
	heartbeat_url: str = HEARTBEAT_URL
	acip: str = ACIP
	timeout: float = 10.0
	verify_tls: bool = False
	mac_address: Optional[str] = None


class KmitlPortalClient:
	"""Stateless client for the KMITL portal.

	A fresh :class:`requests.Session` is opened and closed for every call, so
	a call that died half-way leaves nothing behind for the next one.
	"""

	def __init__(
		self,
		config: PortalConfig,
		*,
		classifier: Optional[OutcomeClassifier] = None,
		session_factory: Optional[Callable[[], requests.Session]] = None,
	) -> None:
		self.config = config
		self.timeout = config.timeout
		self.mac_address = config.mac_address or local_mac()
		self._classify = classifier or classify_response
		self._session_factory = session_factory or self._create_session
		if not config.verify_tls:
			urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

	# ------------------------------------------------------------------
	# Portal operations
	# ------------------------------------------------------------------
	def login(self, credentials: Credentials) -> AuthOutcome:
		logger.info("Logging in as '%s'", credentials.student_id)
		form = {
			"userName": credentials.student_id,
			"userPass": credentials.password,
			"uaddress": credentials.static_ip,
			"umac": self.mac_address,
			"agreed": "1",
			"acip": self.config.acip,
			"authType": "1",
		}
		return self._post(AttemptKind.LOGIN, self.config.login_url, form)

	def heartbeat(self) -> AuthOutcome:
		form = {
			"username": self.config.username,
			"os": HEARTBEAT_OS,
			"speed": "1.29",
			"newauth": "1",
		}
		return self._post(AttemptKind.HEARTBEAT, self.config.heartbeat_url, form)

	# ------------------------------------------------------------------
	# Transport
	# ------------------------------------------------------------------
	def _post(self, kind: AttemptKind, url: str, form: Dict[str, str]) -> AuthOutcome:
		try:
			with self._session_factory() as session:
				resp = session.post(url, data=form, timeout=self.timeout, verify=self.config.verify_tls)
		except requests.Timeout as exc:
			logger.warning("%s timed out: %s", kind.value.capitalize(), exc)
			return AuthOutcome.TIMEOUT
		except requests.RequestException as exc:
			logger.warning("%s connection error: %s", kind.value.capitalize(), exc)
			return AuthOutcome.NETWORK_FAILURE

		outcome = self._classify(kind, resp)
		if outcome.ok:
			logger.debug("%s OK (HTTP %d)", kind.value.capitalize(), resp.status_code)
		else:
			logger.warning(
				"%s failed: HTTP %d -> %s: %s",
				kind.value.capitalize(),
				resp.status_code,
				outcome.value,
				resp.text[:200],
			)
		return outcome

	@staticmethod
	def _create_session() -> requests.Session:
		session = requests.Session()
		# Retries belong to the supervisor, not the transport.
		adapter = HTTPAdapter(pool_connections=1, pool_maxsize=1, max_retries=0)
		session.mount("http://", adapter)
		session.mount("https://", adapter)
		return session


__all__ = [
	"KmitlPortalClient",
	"OutcomeClassifier",
	"PortalClient",
	"PortalConfig",
	"classify_response",
	"local_mac",
]
