"""Mission configuration parsing and validation.

Waypoints arrive as ROS string/array parameters and are accepted in three
layouts:

* a list of pairs: ``[[1.0, 1.0], [2.0, 2.0]]``
* a list of objects: ``[{"x": 1.0, "y": 1.0}, ...]``
* a lookup-location mapping keyed ``target_<n>``:
  ``{"target_1": [1.0, 1.0], "target_2": [2.0, 2.0]}`` (visited in ``n`` order)

Anything else raises ``MissionConfigError`` naming the offending parameter.
"""

from __future__ import annotations

from dataclasses import dataclass
import json
import math
import re
from typing import Sequence

from .errors import MissionConfigError
from .frame_relay import (
    DEFAULT_CAMERA_FRAME,
    DEFAULT_MARKER_FRAME,
    DEFAULT_STANDOFF_FRAME,
    DEFAULT_STANDOFF_OFFSET_M,
)
from .mission_types import Waypoint

DEFAULT_SCAN_WAYPOINTS: tuple[Waypoint, ...] = (
    Waypoint(1.0, 1.0),
    Waypoint(2.0, 2.0),
    Waypoint(3.0, 3.0),
    Waypoint(4.0, 4.0),
)
DEFAULT_SCOUT_HOME = Waypoint(-4.0, 2.5)
DEFAULT_FOLLOWER_HOME = Waypoint(-4.0, 3.5)

_TARGET_KEY_PATTERN = re.compile(r"^target_(\d+)$")


@dataclass(frozen=True)
class MissionConfig:
    scan_waypoints: tuple[Waypoint, ...] = DEFAULT_SCAN_WAYPOINTS
    scout_home: Waypoint = DEFAULT_SCOUT_HOME
    follower_home: Waypoint = DEFAULT_FOLLOWER_HOME
    return_scout_home: bool = True
    control_rate_hz: float = 10.0
    scan_angular_speed: float = 0.1
    localization_retry_interval_sec: float = 1.0
    localization_max_attempts: int | None = None
    max_goal_retries: int = 3
    detection_queue_depth: int = 5
    map_frame: str = "map"
    camera_frame: str = DEFAULT_CAMERA_FRAME
    marker_frame: str = DEFAULT_MARKER_FRAME
    standoff_frame: str = DEFAULT_STANDOFF_FRAME
    standoff_offset_m: float = DEFAULT_STANDOFF_OFFSET_M
    loop_budget_ms: float = 20.0

    @property
    def location_capacity(self) -> int:
        """Marker slots plus the trailing follower-home slot."""
        return len(self.scan_waypoints) + 1

    def validate(self) -> "MissionConfig":
        if not self.scan_waypoints:
            raise MissionConfigError("scan_waypoints must contain at least one waypoint")
        if not math.isfinite(self.control_rate_hz) or self.control_rate_hz <= 0.0:
            raise MissionConfigError("control_rate_hz must be a positive number")
        if self.localization_retry_interval_sec < 0.0:
            raise MissionConfigError("localization_retry_interval_sec must be >= 0")
        if self.localization_max_attempts is not None and self.localization_max_attempts < 1:
            raise MissionConfigError("localization_max_attempts must be >= 1 when set")
        if self.max_goal_retries < 0:
            raise MissionConfigError("max_goal_retries must be >= 0")
        if self.detection_queue_depth < 1:
            raise MissionConfigError("detection_queue_depth must be >= 1")
        if len({self.camera_frame, self.marker_frame, self.standoff_frame, self.map_frame}) != 4:
            raise MissionConfigError(
                "map_frame, camera_frame, marker_frame and standoff_frame must be distinct"
            )
        return self


def _finite_pair(raw: object, parameter: str) -> Waypoint:
    if isinstance(raw, dict):
        values: Sequence[object] = (raw.get("x"), raw.get("y"))
    elif isinstance(raw, (list, tuple)):
        values = raw
    else:
        raise MissionConfigError(f"{parameter}: expected [x, y] or {{'x', 'y'}}, got {raw!r}")

    if len(values) != 2:
        raise MissionConfigError(f"{parameter}: expected exactly two coordinates, got {raw!r}")
    try:
        x, y = (float(value) for value in values)
    except (TypeError, ValueError) as error:
        raise MissionConfigError(f"{parameter}: non-numeric coordinate in {raw!r}") from error
    if not (math.isfinite(x) and math.isfinite(y)):
        raise MissionConfigError(f"{parameter}: coordinates must be finite, got {raw!r}")
    return Waypoint(x, y)


def parse_waypoint(raw: object, parameter: str = "waypoint") -> Waypoint:
    if isinstance(raw, str):
        raw = _load_json(raw, parameter)
    return _finite_pair(raw, parameter)


def parse_waypoints(raw: object, parameter: str = "scan_waypoints_json") -> tuple[Waypoint, ...]:
    payload = _load_json(raw, parameter) if isinstance(raw, str) else raw

    if isinstance(payload, dict):
        ordered: list[tuple[int, object]] = []
        for key, value in payload.items():
            match = _TARGET_KEY_PATTERN.match(str(key).strip())
            if match is None:
                raise MissionConfigError(f"{parameter}: unexpected key '{key}'")
            ordered.append((int(match.group(1)), value))
        payload = [value for _, value in sorted(ordered, key=lambda item: item[0])]

    if not isinstance(payload, (list, tuple)):
        raise MissionConfigError(f"{parameter}: expected a list of waypoints")
    waypoints = tuple(
        _finite_pair(item, f"{parameter}[{index}]") for index, item in enumerate(payload)
    )
    if not waypoints:
        raise MissionConfigError(f"{parameter}: at least one waypoint is required")
    return waypoints


def _load_json(raw: str, parameter: str) -> object:
    try:
        return json.loads(raw)
    except json.JSONDecodeError as error:
        raise MissionConfigError(f"{parameter}: invalid JSON ({error.msg})") from error


def optional_attempts(value: int) -> int | None:
    """ROS parameters cannot be None; zero or less means unbounded."""
    value = int(value)
    return value if value > 0 else None
