"""Asyncio driver that ticks a Supervisor until asked to stop."""
from __future__ import annotations

import asyncio
import concurrent.futures
import logging
from time import monotonic
from typing import Optional

from netauth.clock import Clock
from netauth.config import Settings
from netauth.credentials import CredentialSource, JsonFileCredentialSource, SettingsCredentialSource
from netauth.journal import EventJournal
from netauth.models import ConnectionState, TickResult
from netauth.notify import FanoutNotifier, JournalNotifier, LoggingNotifier, NotificationSink
from netauth.portal import KmitlPortalClient, PortalConfig
from netauth.probe import ConnectivityProbe, HttpProbe, SocketProbe
from netauth.store import StateStore
from netauth.supervisor import Supervisor

logger = logging.getLogger(__name__)


class SupervisorRunner:
    """Call :meth:`Supervisor.tick` on a schedule, one tick at a time.

    Ticks block on network I/O, so they run on a single worker thread. Each
    tick gets an outer deadline; a tick that overruns it is left to finish
    in the background and no new tick is started until it has.
    """

    def __init__(
        self,
        supervisor: Supervisor,
        *,
        tick_deadline: float = 30.0,
        store: Optional[StateStore] = None,
        min_delay: float = 1.0,
    ) -> None:
        self.supervisor = supervisor
        self.tick_deadline = max(0.1, tick_deadline)
        self.store = store
        self.min_delay = max(0.0, min_delay)
        self.ticks = 0

        self._stop_event: Optional[asyncio.Event] = None
        self._executor: Optional[concurrent.futures.ThreadPoolExecutor] = None
        self._inflight: Optional[concurrent.futures.Future] = None
        self._saved: Optional[ConnectionState] = None

    @property
    def running(self) -> bool:
        return self._stop_event is not None and not self._stop_event.is_set()

    def snapshot(self) -> ConnectionState:
        return self.supervisor.snapshot()

    async def run(self, runtime: Optional[float] = None) -> None:
        """Tick until :meth:`request_stop` or until ``runtime`` seconds pass."""
        stop_event = asyncio.Event()
        self._stop_event = stop_event
        deadline = monotonic() + runtime if runtime else None
        self._executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=1,
            thread_name_prefix="netauth-tick",
        )
        self._saved = self.supervisor.snapshot()
        logger.info("Supervisor started in phase %s", self.supervisor.snapshot().summary())

        try:
            while not stop_event.is_set():
                if deadline and monotonic() >= deadline:
                    break

                if self._inflight is not None:
                    if not self._inflight.done():
                        # Previous tick overran its deadline and is still on the wire.
                        await self._sleep_with_stop(self.min_delay or 0.1, stop_event, deadline)
                        continue
                    self._inflight = None
                    self._persist_if_changed()

                await self._tick_once()

                if stop_event.is_set():
                    break
                delay = max(self.min_delay, self.supervisor.next_delay())
                await self._sleep_with_stop(delay, stop_event, deadline)
        except asyncio.CancelledError:
            logger.info("Supervisor runner cancelled")
            raise
        finally:
            stop_event.set()
            self._shutdown()
            logger.info("Supervisor stopped in phase %s", self.supervisor.snapshot().summary())

    def request_stop(self) -> None:
        """Stop after the current tick; an in-flight call is not awaited."""
        if self._stop_event:
            self._stop_event.set()

    def request_reset(self) -> None:
        self.supervisor.request_reset()

    async def _tick_once(self) -> Optional[TickResult]:
        assert self._executor is not None
        future = self._executor.submit(self.supervisor.tick)
        self._inflight = future
        wrapped = asyncio.wrap_future(future)
        try:
            result = await asyncio.wait_for(asyncio.shield(wrapped), timeout=self.tick_deadline)
        except asyncio.TimeoutError:
            logger.warning("Tick exceeded its %.1fs deadline; abandoning it", self.tick_deadline)
            wrapped.add_done_callback(self._late_tick_done)
            return None
        self.ticks += 1
        self._inflight = None
        self._persist_if_changed()
        return result

    @staticmethod
    def _late_tick_done(fut: "asyncio.Future[TickResult]") -> None:
        if fut.cancelled():
            return
        exc = fut.exception()
        if exc is not None:
            logger.error("Abandoned tick failed", exc_info=exc)

    def _persist_if_changed(self) -> None:
        if self.store is None:
            return
        state = self.supervisor.snapshot()
        if state != self._saved:
            self._save(state)

    def _save(self, state: ConnectionState) -> None:
        assert self.store is not None
        try:
            self.store.save(state)
        except OSError as exc:
            logger.warning("Could not persist state to %s: %s", self.store.path, exc)
            return
        self._saved = state

    def _shutdown(self) -> None:
        executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=False, cancel_futures=True)
        if self.store is not None:
            self._save(self.supervisor.snapshot())

    async def _sleep_with_stop(
        self,
        duration: float,
        stop_event: asyncio.Event,
        deadline: Optional[float],
    ) -> None:
        if duration <= 0:
            return
        wait_time = duration
        if deadline:
            wait_time = min(wait_time, max(0.0, deadline - monotonic()))
            if wait_time <= 0:
                return
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=wait_time)
        except asyncio.TimeoutError:
            pass


def build_probe(settings: Settings) -> ConnectivityProbe:
    if settings.probe_mode == "http":
        return HttpProbe(settings.probe_url, timeout=settings.probe_timeout)
    return SocketProbe(settings.probe_host, settings.probe_port, timeout=settings.probe_timeout)


def build_credentials(settings: Settings) -> CredentialSource:
    if settings.credentials_path:
        return JsonFileCredentialSource(settings.credentials_path)
    return SettingsCredentialSource(lambda: settings)


def build_runner(
    settings: Settings,
    *,
    journal: Optional[EventJournal] = None,
    clock: Optional[Clock] = None,
    persist: bool = True,
) -> SupervisorRunner:
    """Wire a Supervisor and its runner from loaded settings."""
    journal = journal or EventJournal(settings.resolved_journal_path())
    sinks: list[NotificationSink] = [LoggingNotifier(), JournalNotifier(journal)]
    store = StateStore(settings.resolved_state_path()) if persist else None

    portal = KmitlPortalClient(
        PortalConfig(
            username=settings.username,
            login_url=settings.login_url,
            heartbeat_url=settings.heartbeat_url,
            acip=settings.acip,
            timeout=settings.request_timeout,
            verify_tls=settings.verify_tls,
        )
    )
    supervisor = Supervisor(
        probe=build_probe(settings),
        portal=portal,
        credentials=build_credentials(settings),
        sink=FanoutNotifier(sinks),
        policy=settings.retry_policy(),
        settings=settings.supervisor_settings(),
        clock=clock,
        state=store.load() if store else None,
    )
    return SupervisorRunner(supervisor, tick_deadline=settings.tick_deadline, store=store)


__all__ = [
    "SupervisorRunner",
    "build_credentials",
    "build_probe",
    "build_runner",
]
