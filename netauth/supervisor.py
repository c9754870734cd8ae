"""Connectivity supervisor: decides when to log in, heartbeat, back off or stop."""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, replace
from typing import Any, Callable, Optional, Tuple

from netauth.clock import Clock, SystemClock
from netauth.credentials import CredentialSource
from netauth.errors import CredentialError, CredentialErrorKind
from netauth.models import (
    Attempt,
    AttemptKind,
    AuthOutcome,
    ConnectionState,
    ErrorKind,
    EventReason,
    Phase,
    StatusEvent,
    TickResult,
)
from netauth.notify import NotificationSink
from netauth.portal import PortalClient
from netauth.probe import ConnectivityProbe, Reachability
from netauth.retry import RetryPolicy

logger = logging.getLogger(__name__)

Decision = Tuple[ConnectionState, Optional[StatusEvent]]


@dataclass(frozen=True, slots=True)
class SupervisorSettings:
    """Inputs read once at the start of every tick."""

    interval: float = 300.0
    auto_login: bool = True
    give_up_cooldown: float = 3600.0
    probe_interval: float = 15.0

    def __post_init__(self) -> None:
        if self.interval <= 0:
            raise ValueError("interval must be positive")
        if self.probe_interval <= 0:
            raise ValueError("probe_interval must be positive")
        if self.give_up_cooldown < 0:
            raise ValueError("give_up_cooldown must be >= 0")


def _due(last: Optional[float], wait: float, now: float) -> bool:
    if last is None:
        return True
    elapsed = now - last
    # A clock that jumped backwards should not freeze the supervisor.
    return elapsed < 0 or elapsed >= wait


class Supervisor:
    """State machine driven by :meth:`tick`.

    ``tick`` is the only method that talks to the network. It probes
    connectivity, makes at most one portal call, and swaps in a new immutable
    :class:`ConnectionState`. Concurrent callers are serialized, and readers
    using :meth:`snapshot` only ever see whole states.
    """

    def __init__(
        self,
        *,
        probe: ConnectivityProbe,
        portal: PortalClient,
        credentials: CredentialSource,
        sink: Optional[NotificationSink] = None,
        policy: Optional[RetryPolicy] = None,
        settings: Optional[SupervisorSettings] = None,
        clock: Optional[Clock] = None,
        state: Optional[ConnectionState] = None,
    ) -> None:
        self.probe = probe
        self.portal = portal
        self.credentials = credentials
        self.sink = sink
        self.clock: Clock = clock or SystemClock()
        self._policy = policy or RetryPolicy()
        self._settings = settings or SupervisorSettings()
        self._state = state or ConnectionState.initial()
        self._tick_lock = threading.Lock()
        self._reset_requested = threading.Event()

    # ------------------------------------------------------------------
    # Read-only views and external signals
    # ------------------------------------------------------------------
    def snapshot(self) -> ConnectionState:
        return self._state

    @property
    def settings(self) -> SupervisorSettings:
        return self._settings

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    def update_settings(
        self,
        settings: Optional[SupervisorSettings] = None,
        *,
        policy: Optional[RetryPolicy] = None,
    ) -> None:
        """Replace tuning inputs; the next tick picks them up."""
        if settings is not None:
            self._settings = settings
        if policy is not None:
            self._policy = policy

    def set_auto_login(self, enabled: bool) -> None:
        self._settings = replace(self._settings, auto_login=bool(enabled))
        logger.info("Auto-login %s", "enabled" if enabled else "paused")

    def request_reset(self) -> None:
        """Ask the next tick to leave GivenUp (or Retrying) with a clean slate."""
        self._reset_requested.set()

    def next_delay(self) -> float:
        """Seconds until the next tick has something useful to do."""
        state = self._state
        settings = self._settings
        now = self.clock.now()
        probe_every = settings.probe_interval

        if state.phase is Phase.UNAUTHENTICATED and settings.auto_login:
            return 0.0
        if state.phase is Phase.AUTHENTICATED:
            wait = settings.interval
        elif state.phase is Phase.RETRYING and settings.auto_login:
            wait = self._policy.backoff(state.consecutive_failures)
        elif state.phase is Phase.GIVEN_UP and settings.give_up_cooldown and state.given_up_at is not None:
            return max(0.0, min(probe_every, state.given_up_at + settings.give_up_cooldown - now))
        else:
            return probe_every

        if state.last_action_at is None:
            return 0.0
        remaining = state.last_action_at + wait - now
        return max(0.0, min(probe_every, remaining))

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------
    def tick(self) -> TickResult:
        with self._tick_lock:
            settings = self._settings
            policy = self._policy
            reset = self._reset_requested.is_set()
            self._reset_requested.clear()

            previous = self._state
            now = self.clock.now()
            state, event = self._decide(previous, settings, policy, now, reset)
            self._state = state

            if state != previous:
                logger.debug("Tick: %s -> %s", previous.summary(), state.summary())
            if event is not None:
                self._emit(event)
            return TickResult(state, event)

    def _decide(
        self,
        state: ConnectionState,
        settings: SupervisorSettings,
        policy: RetryPolicy,
        now: float,
        reset: bool,
    ) -> Decision:
        if reset or state.phase is Phase.GIVEN_UP or state.given_up_at is not None:
            decision = self._maybe_reset(state, settings, now, reset)
            if decision is not None:
                return decision

        if not self._check_probe().ok:
            return self._lost_internet(state, now)

        if not state.internet_reachable:
            state = state.evolve(internet_reachable=True)

        phase = state.phase
        if phase is Phase.DISCONNECTED:
            if state.given_up_at is not None and policy.give_up(state.consecutive_failures):
                # The attempt budget survives a connectivity gap.
                return self._event(
                    state,
                    state.evolve(phase=Phase.GIVEN_UP),
                    EventReason.INTERNET_RESTORED,
                    "Internet connection is active; automatic login remains stopped.",
                    now,
                    state.last_error,
                )
            return self._event(
                state,
                state.evolve(phase=Phase.UNAUTHENTICATED, given_up_at=None),
                EventReason.INTERNET_RESTORED,
                "Internet connection is active.",
                now,
            )
        if phase is Phase.UNAUTHENTICATED:
            if not settings.auto_login:
                return state, None
            return self._login(state, policy, now)
        if phase is Phase.AUTHENTICATED:
            if not _due(state.last_action_at, settings.interval, now):
                return state, None
            return self._heartbeat(state, policy, now)
        if phase is Phase.RETRYING:
            if not settings.auto_login:
                return state, None
            if not _due(state.last_action_at, policy.backoff(state.consecutive_failures), now):
                return state, None
            return self._login(state, policy, now)
        if phase is Phase.GIVEN_UP:
            return state, None
        raise AssertionError(f"unhandled phase {phase!r}")

    def _maybe_reset(
        self,
        state: ConnectionState,
        settings: SupervisorSettings,
        now: float,
        reset: bool,
    ) -> Optional[Decision]:
        # A give-up that happened before the link dropped still counts.
        exhausted = state.phase is Phase.GIVEN_UP or (
            state.phase is Phase.DISCONNECTED and state.given_up_at is not None
        )
        if exhausted:
            cooled = (
                settings.give_up_cooldown > 0
                and state.given_up_at is not None
                and _due(state.given_up_at, settings.give_up_cooldown, now)
            )
            if not (reset or cooled):
                return None
            message = "Reset requested; retrying login." if reset else "Cool-down elapsed; retrying login."
        elif state.phase is Phase.RETRYING:
            message = "Reset requested; retrying login."
        else:
            logger.debug("Ignoring reset in phase %s", state.phase.value)
            return None

        fresh = state.evolve(
            phase=Phase.DISCONNECTED if state.phase is Phase.DISCONNECTED else Phase.UNAUTHENTICATED,
            consecutive_failures=0,
            last_error=None,
            given_up_at=None,
        )
        return self._event(state, fresh, EventReason.RESET, message, now)

    def _lost_internet(self, state: ConnectionState, now: float) -> Decision:
        if state.phase is Phase.DISCONNECTED:
            if state.internet_reachable:
                return state.evolve(internet_reachable=False), None
            return state, None
        # Failure count and given_up_at are kept so a flapping link cannot refill the budget.
        lost = state.evolve(phase=Phase.DISCONNECTED, internet_reachable=False)
        return self._event(state, lost, EventReason.INTERNET_LOST, "Internet connection lost.", now)

    # ------------------------------------------------------------------
    # Portal actions
    # ------------------------------------------------------------------
    def _login(self, state: ConnectionState, policy: RetryPolicy, now: float) -> Decision:
        try:
            credentials = self.credentials.get()
        except CredentialError as exc:
            return self._credentials_unavailable(state, exc, now)
        except Exception as exc:
            logger.warning("Credential source raised unexpectedly", exc_info=True)
            return self._credentials_unavailable(state, CredentialError(CredentialErrorKind.IO_ERROR, str(exc)), now)

        attempt = self._attempt(AttemptKind.LOGIN, self.portal.login, credentials)
        del credentials
        return self._apply(state, attempt, policy)

    def _heartbeat(self, state: ConnectionState, policy: RetryPolicy, now: float) -> Decision:
        attempt = self._attempt(AttemptKind.HEARTBEAT, self.portal.heartbeat)
        return self._apply(state, attempt, policy)

    def _attempt(self, kind: AttemptKind, call: Callable[..., Any], *args: Any) -> Attempt:
        try:
            outcome = call(*args)
        except TimeoutError:
            logger.warning("%s timed out", kind.value.capitalize())
            outcome = AuthOutcome.TIMEOUT
        except Exception:
            logger.warning("%s raised; treating as network failure", kind.value.capitalize(), exc_info=True)
            outcome = AuthOutcome.NETWORK_FAILURE
        if not isinstance(outcome, AuthOutcome):
            raise TypeError(f"portal {kind.value} returned {outcome!r}, expected AuthOutcome")
        return Attempt(kind=kind, outcome=outcome, timestamp=self.clock.now())

    def _apply(self, state: ConnectionState, attempt: Attempt, policy: RetryPolicy) -> Decision:
        at = attempt.timestamp
        error = attempt.error
        if error is None:
            ok = state.evolve(
                phase=Phase.AUTHENTICATED,
                consecutive_failures=0,
                last_action_at=at,
                last_error=None,
                given_up_at=None,
            )
            if state.phase is Phase.AUTHENTICATED:
                return ok, None
            return self._event(state, ok, EventReason.LOGGED_IN, "Logged in to the campus network.", at)

        failures = state.consecutive_failures + 1
        if policy.give_up(failures):
            exhausted = state.evolve(
                phase=Phase.GIVEN_UP,
                consecutive_failures=failures,
                last_action_at=at,
                last_error=error,
                given_up_at=at,
            )
            if error.is_network:
                message = f"Portal unreachable after {failures} attempts; automatic recovery stopped."
            else:
                message = f"Login rejected {failures} times; check your password. Automatic login stopped."
            return self._event(state, exhausted, EventReason.GIVEN_UP, message, at, error)

        retrying = state.evolve(
            phase=Phase.RETRYING,
            consecutive_failures=failures,
            last_action_at=at,
            last_error=error,
        )
        wait = policy.backoff(failures)
        if attempt.kind is AttemptKind.HEARTBEAT:
            reason = EventReason.SESSION_LOST
            message = f"Heartbeat failed; logging in again in {wait:.0f}s."
        elif error.is_network:
            reason = EventReason.NETWORK_ERROR
            message = f"Login failed ({error.value}); retry {failures} in {wait:.0f}s."
        else:
            reason = EventReason.LOGIN_REJECTED
            message = f"Login rejected; check your password. Retry {failures} in {wait:.0f}s."
        return self._event(state, retrying, reason, message, at, error)

    def _credentials_unavailable(self, state: ConnectionState, exc: CredentialError, now: float) -> Decision:
        logger.warning("Credentials unavailable (%s): %s", exc.kind.value, exc)
        if state.last_error is ErrorKind.CREDENTIAL_ERROR:
            return state, None
        flagged = state.evolve(last_error=ErrorKind.CREDENTIAL_ERROR)
        return self._event(
            state,
            flagged,
            EventReason.CREDENTIALS_UNAVAILABLE,
            f"Credentials unavailable ({exc.kind.value}); will try again.",
            now,
            ErrorKind.CREDENTIAL_ERROR,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _check_probe(self) -> Reachability:
        try:
            result = self.probe.check()
        except Exception:
            logger.warning("Connectivity probe raised; assuming unreachable", exc_info=True)
            return Reachability.UNREACHABLE
        if not isinstance(result, Reachability):
            raise TypeError(f"probe returned {result!r}, expected Reachability")
        return result

    @staticmethod
    def _event(
        previous: ConnectionState,
        current: ConnectionState,
        reason: EventReason,
        message: str,
        at: float,
        error: Optional[ErrorKind] = None,
    ) -> Decision:
        event = StatusEvent(
            previous=previous,
            current=current,
            reason=reason,
            message=message,
            timestamp=at,
            error=error,
        )
        return current, event

    def _emit(self, event: StatusEvent) -> None:
        if self.sink is None:
            return
        try:
            self.sink.notify(event)
        except Exception:
            logger.warning("Notification sink failed for %s", event.reason.value, exc_info=True)


__all__ = ["Supervisor", "SupervisorSettings"]
