"""Poll loop and host lifecycle.

One worker thread runs the loop; device fetches are sequential, in device-list
order. The only cross-thread interaction is the stop flag (a threading.Event),
checked at the top of each cycle, between devices, and while sleeping.

Failure policy:
- device-list refresh fails -> log, keep polling the last known devices
- one device fails          -> log, skip it for this cycle, carry on
- remote errors never stop the loop; only `stop()` does

Schedule: each cycle sleeps until `cycle_start + interval`, so time spent
polling does not accumulate as drift. A cycle that overruns the interval is
followed immediately by the next one.
"""

from __future__ import annotations

import enum
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, List, Optional

import requests

from .api import ApiClient, http_session
from .auth import TokenCache
from .config import Settings
from .dedup import SampleDeduplicator
from .errors import PollerError
from .logging_setup import cycle_var
from .models import Credentials, Event, redact
from .registry import DeviceRegistry
from .sinks import Sink, build_envelope

logger = logging.getLogger(__name__)


class PollState(str, enum.Enum):
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"


@dataclass
class PollStats:
    cycles: int = 0
    events_emitted: int = 0
    device_errors: int = 0
    registry_errors: int = 0


class PollLoop:
    def __init__(
        self,
        client: ApiClient,
        registry: DeviceRegistry,
        dedup: SampleDeduplicator,
        *,
        interval: float = 60,
        stop_check_seconds: float = 1.0,
        clock: Callable[[], float] = time.time,
        monotonic: Callable[[], float] = time.monotonic,
        wait: Optional[Callable[[float], object]] = None,
    ):
        self._client = client
        self._registry = registry
        self._dedup = dedup
        self._interval = float(interval)
        self._stop_check = float(stop_check_seconds)
        self._clock = clock
        # Sleep deadlines use the monotonic clock so wall-clock steps cannot stall the loop.
        self._monotonic = monotonic
        self._stop_event = threading.Event()
        # Event.wait returns as soon as stop() is called.
        self._wait = wait or self._stop_event.wait
        self._state = PollState.RUNNING
        self._state_lock = threading.Lock()
        self.stats = PollStats()

    @property
    def state(self) -> PollState:
        return self._state

    @property
    def stop_requested(self) -> bool:
        return self._stop_event.is_set()

    def stop(self) -> None:
        """Request a stop. Safe from any thread or a signal handler."""

        self._stop_event.set()
        with self._state_lock:
            if self._state is PollState.RUNNING:
                self._state = PollState.STOPPING

    def run(self, emit: Callable[[Event], None]) -> PollStats:
        try:
            while not self.stop_requested:
                cycle_started = self._monotonic()
                self.poll_once(emit)
                if self.stop_requested:
                    break
                self._sleep_until(cycle_started + self._interval)
        finally:
            with self._state_lock:
                self._state = PollState.STOPPED
            logger.info(
                "Poll loop stopped after %d cycle(s), %d event(s) emitted",
                self.stats.cycles,
                self.stats.events_emitted,
            )
        return self.stats

    def poll_once(self, emit: Optional[Callable[[Event], None]] = None) -> List[Event]:
        """Run one cycle: refresh the registry if stale, then poll every device."""

        cycle = self.stats.cycles + 1
        ctx = cycle_var.set(cycle)
        try:
            try:
                devices = self._registry.refresh_if_stale(self._clock())
            except PollerError as exc:
                self.stats.registry_errors += 1
                devices = self._registry.devices
                logger.warning(
                    "Device list refresh failed; using %d known device(s)",
                    len(devices),
                    extra={"error": str(exc), "status": getattr(exc, "status", None)},
                )

            emitted: List[Event] = []
            device_errors = 0
            for device in devices:
                if self.stop_requested:
                    break

                logger.debug("Getting latest values from Airthings API", extra={"device_id": device.id})
                try:
                    sample = self._client.fetch_latest_sample(device.id)
                except PollerError as exc:
                    device_errors += 1
                    logger.warning(
                        "Failed to fetch latest values",
                        extra={"device_id": device.id, "error": str(exc), "status": getattr(exc, "status", None)},
                    )
                    continue

                if not self._dedup.is_novel_and_record(device.id, sample.time):
                    continue

                event = Event.build(device, sample)
                if emit is not None:
                    emit(event)
                emitted.append(event)

            self.stats.cycles = cycle
            self.stats.events_emitted += len(emitted)
            self.stats.device_errors += device_errors
            logger.info(
                "Poll cycle complete: %d device(s), %d new event(s), %d error(s)",
                len(devices),
                len(emitted),
                device_errors,
            )
            return emitted
        finally:
            cycle_var.reset(ctx)

    def _sleep_until(self, deadline: float) -> None:
        while not self.stop_requested:
            remaining = deadline - self._monotonic()
            if remaining <= 0:
                return
            self._wait(min(remaining, self._stop_check))


# ---------------------------------------------------------------------------
# Host lifecycle: start(settings) -> handle, run(handle, sink), stop(handle)
# ---------------------------------------------------------------------------


@dataclass
class PollerHandle:
    settings: Settings
    session: requests.Session
    client: ApiClient
    loop: PollLoop


def start(
    settings: Settings,
    *,
    session: Optional[requests.Session] = None,
    clock: Callable[[], float] = time.time,
) -> PollerHandle:
    logger.info("Connecting to Airthings API", extra={"client_id": redact(settings.client_id)})

    if session is None:
        session = http_session()
    credentials = Credentials(client_id=settings.client_id, client_secret=settings.client_secret)
    tokens = TokenCache(
        session,
        credentials,
        token_url=settings.token_url,
        scope=settings.scope,
        margin_seconds=settings.token_margin_seconds,
        timeout=settings.request_timeout_seconds,
        clock=clock,
    )
    client = ApiClient(
        session,
        tokens,
        base_url=settings.api_base_url,
        timeout=settings.request_timeout_seconds,
    )
    registry = DeviceRegistry(client, refresh_interval=settings.device_list_interval)
    loop = PollLoop(
        client,
        registry,
        SampleDeduplicator(),
        interval=settings.interval,
        stop_check_seconds=settings.stop_check_seconds,
        clock=clock,
    )
    return PollerHandle(settings=settings, session=session, client=client, loop=loop)


def _emitter(handle: PollerHandle, sink: Sink) -> Callable[[Event], None]:
    tags = handle.settings.tags
    add_field = handle.settings.add_field

    def emit(event: Event) -> None:
        sink.emit(build_envelope(event, tags=tags, add_field=add_field))

    return emit


def run(handle: PollerHandle, sink: Sink) -> PollStats:
    """Drive the loop until `stop(handle)`; closes the HTTP session on exit."""

    try:
        return handle.loop.run(_emitter(handle, sink))
    finally:
        handle.client.close()


def run_once(handle: PollerHandle, sink: Sink) -> List[Event]:
    try:
        return handle.loop.poll_once(_emitter(handle, sink))
    finally:
        handle.client.close()


def stop(handle: PollerHandle) -> None:
    handle.loop.stop()
