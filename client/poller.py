"""
client/poller.py -- Periodically re-checks the signed-in user's location with the server.

Control loop (one owned thread per signed-in view):
  - one check immediately on start(), then one every `interval` seconds
  - each check: sample the sensor (bounded by sample_timeout), POST the
    sample to /api/location/validate with the current token
  - 401/403 or {"isValid": false}: show a notice, wait notice_delay so it
    can be read, clear local session state, call on_signed_out, stop
  - sensor failure or transport failure: log and wait for the next tick;
    the server's verdict is the only thing that signs the user out

Ticks run back to back on the poller thread, so at most one validation
request is outstanding at any time. stop() sets the stop event and joins
the thread; using the poller as a context manager guarantees no periodic
work survives the view that started it.
"""

from __future__ import annotations

import enum
import logging
import threading
from collections.abc import Callable
from typing import Optional

import requests

from client.api import GeoGuardClient
from client.sensor import LocationSensor, SensorUnavailable
from client.session import ClientSession
from core.geo import Coordinate

logger = logging.getLogger("geoguard.poller")

DEFAULT_INTERVAL = 30.0
DEFAULT_SAMPLE_TIMEOUT = 10.0
DEFAULT_NOTICE_DELAY = 3.0
DEFAULT_NOTICE = "You have moved outside the allowed area"


class TickOutcome(enum.Enum):
    SKIPPED = "skipped"  # no token held
    SENSOR_FAILED = "sensor_failed"
    TRANSPORT_FAILED = "transport_failed"
    VALID = "valid"
    SIGNED_OUT = "signed_out"


class LocationPoller:
    def __init__(
        self,
        client: GeoGuardClient,
        session: ClientSession,
        sensor: LocationSensor,
        interval: float = DEFAULT_INTERVAL,
        sample_timeout: float = DEFAULT_SAMPLE_TIMEOUT,
        notice_delay: float = DEFAULT_NOTICE_DELAY,
        on_notice: Optional[Callable[[str], None]] = None,
        on_signed_out: Optional[Callable[[], None]] = None,
    ) -> None:
        self.client = client
        self.session = session
        self.sensor = sensor
        self.interval = interval
        self.sample_timeout = sample_timeout
        self.notice_delay = notice_delay
        self.on_notice = on_notice
        self.on_signed_out = on_signed_out
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> LocationPoller:
        """Start the polling thread. The first check runs immediately."""
        if self.running:
            raise RuntimeError("poller is already running")
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="geoguard-poller", daemon=True)
        self._thread.start()
        return self

    def stop(self, timeout: Optional[float] = None) -> None:
        """Cancel the timer and wait for an in-flight check to finish."""
        self._stop.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        self._thread = None

    def __enter__(self) -> LocationPoller:
        return self.start()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()

    def _run(self) -> None:
        while not self._stop.is_set():
            if self.tick() is TickOutcome.SIGNED_OUT:
                break
            if self._stop.wait(self.interval):
                break

    # ------------------------------------------------------------------
    # One check
    # ------------------------------------------------------------------

    def tick(self) -> TickOutcome:
        """Run a single location check and react to the verdict."""
        token = self.session.token
        if not token:
            return TickOutcome.SKIPPED

        try:
            location = self._sample()
        except SensorUnavailable as exc:
            logger.warning("Location sample unavailable: %s", exc)
            return TickOutcome.SENSOR_FAILED

        self.session.set_location(location)

        try:
            resp = self.client.validate_location(token, location)
        except requests.RequestException as exc:
            logger.warning("Location check failed: %s", exc)
            return TickOutcome.TRANSPORT_FAILED

        if resp.status_code in (401, 403) or (resp.ok and not resp.body.get("isValid", False)):
            self._sign_out(resp.error_message or DEFAULT_NOTICE)
            return TickOutcome.SIGNED_OUT
        if not resp.ok:
            # 400/404/5xx say nothing about where the user is.
            logger.warning("Location check returned %d: %s", resp.status_code, resp.error_message)
            return TickOutcome.TRANSPORT_FAILED
        return TickOutcome.VALID

    def _sample(self) -> Coordinate:
        """Sample the sensor on a helper thread, giving up after sample_timeout.

        A sensor that ignores its timeout leaves only the helper blocked, so a
        tick (and a stop() waiting on it) never outlasts sample_timeout.
        """
        result: dict = {}

        def run() -> None:
            try:
                result["location"] = self.sensor.sample(self.sample_timeout)
            except Exception as exc:
                result["error"] = exc

        worker = threading.Thread(target=run, name="geoguard-sensor", daemon=True)
        worker.start()
        worker.join(self.sample_timeout)
        if worker.is_alive():
            raise SensorUnavailable(f"no fix within {self.sample_timeout:g}s")
        if "error" in result:
            raise result["error"]
        return result["location"]

    def _sign_out(self, message: str) -> None:
        logger.warning("Signed out by location check: %s", message)
        if self.on_notice is not None:
            self.on_notice(message)
        # Let the notice render before the view goes away. stop() cuts the
        # wait short but the local session is cleared either way.
        self._stop.wait(self.notice_delay)
        self.session.clear()
        if self.on_signed_out is not None:
            self.on_signed_out()
