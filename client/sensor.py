"""
client/sensor.py -- Location sources for the poller.

A sensor produces one Coordinate per call to sample(timeout). Failing to get
a fix -- timeout, permission denied, exhausted recording -- raises
SensorUnavailable. The poller treats that as a soft failure: it skips the
tick without signing the user out.

Shipped sensors:
  StaticSensor  -- always reports the same point (fixed terminals, demos).
  ReplaySensor  -- steps through a recorded track, one point per sample;
                   load_track() reads one from a JSON-lines file.
"""

from __future__ import annotations

import json
import threading
from collections.abc import Iterable
from pathlib import Path
from typing import Protocol

from core.errors import ValidationError
from core.geo import Coordinate


class SensorUnavailable(Exception):
    """No location fix could be obtained for this sample."""


class LocationSensor(Protocol):
    def sample(self, timeout: float) -> Coordinate:
        """Return the current location or raise SensorUnavailable within timeout seconds.

        Implementations should honour timeout. LocationPoller also abandons a
        sample that overruns it and counts the tick as a sensor failure.
        """
        ...


class StaticSensor:
    def __init__(self, latitude: float, longitude: float) -> None:
        self.coordinate = Coordinate(latitude, longitude).validate()

    def sample(self, timeout: float) -> Coordinate:
        return self.coordinate


class ReplaySensor:
    """Replays a recorded track one point per sample.

    With loop=False the sensor raises SensorUnavailable once the track is
    exhausted, the same way a device that lost its fix would.
    """

    def __init__(self, points: Iterable[Coordinate], loop: bool = False) -> None:
        self.points = list(points)
        self.loop = loop
        self._index = 0
        self._lock = threading.Lock()

    def sample(self, timeout: float) -> Coordinate:
        with self._lock:
            if not self.points:
                raise SensorUnavailable("track is empty")
            if self._index >= len(self.points):
                if not self.loop:
                    raise SensorUnavailable("track exhausted")
                self._index = 0
            point = self.points[self._index]
            self._index += 1
            return point


def load_track(path: str | Path) -> list[Coordinate]:
    """Read a JSON-lines track: one {"latitude": .., "longitude": ..} object per line.

    Blank lines and lines starting with # are ignored. Raises ValueError on a
    line that is not a valid coordinate, naming the line number.
    """
    points: list[Coordinate] = []
    for lineno, raw in enumerate(Path(path).read_text().splitlines(), start=1):
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        try:
            record = json.loads(line)
            points.append(Coordinate(float(record["latitude"]), float(record["longitude"])).validate())
        except (ValueError, KeyError, TypeError, ValidationError) as exc:
            raise ValueError(f"{path}:{lineno}: not a coordinate record ({exc})") from exc
    return points
