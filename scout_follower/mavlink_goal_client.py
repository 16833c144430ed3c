"""MAVLink navigation backend for agents driven by a PX4/ArduPilot autopilot.

Implements the navigation client contract over pymavlink: a goal becomes a
SET_POSITION_TARGET_LOCAL_NED setpoint, re-sent on every status poll so the
autopilot keeps receiving the offboard stream at the coordinator rate, and
arrival is judged from LOCAL_POSITION_NED against a distance threshold.
"""

from __future__ import annotations

import math
import threading
import time
from typing import Callable

from pymavlink import mavutil

from .mission_types import GoalStatus, Waypoint

_POSITION_POLL_LIMIT = 32
_HEARTBEAT_POLL_SLICE_SEC = 0.25


class MavlinkGoalClient:
    """Navigation client sending local-frame position goals over UDP.

    Attributes:
        _host: Target MAVLink endpoint hostname or IP address.
        _port: MAVLink UDP port of the vehicle.
        _arrival_threshold_m: Horizontal distance counted as goal reached.
        _altitude_m: Altitude held while driving to goals (0 for ground robots).
        _target_system: MAVLink target system ID.
        _target_component: MAVLink target component ID.
        _goal: Active goal waypoint, None when idle.
        _position: Latest (x, y) map position decoded from LOCAL_POSITION_NED.
    """

    def __init__(
        self,
        *,
        host: str = "127.0.0.1",
        port: int = 14540,
        arrival_threshold_m: float = 0.3,
        altitude_m: float = 0.0,
        target_system: int = 1,
        target_component: int = 1,
        source_system: int = 245,
        source_component: int = 190,
        logger: Callable[[str], None] | None = None,
    ) -> None:
        self._host = host.strip() or "127.0.0.1"
        self._port = int(port)
        self._arrival_threshold_m = max(0.0, float(arrival_threshold_m))
        self._altitude_m = float(altitude_m)
        self._target_system = int(target_system)
        self._target_component = int(target_component)
        self._source_system = source_system
        self._source_component = source_component
        self._logger = logger or (lambda _: None)

        self._connection = mavutil.mavlink_connection(
            f"udpout:{self._host}:{self._port}",
            source_system=self._source_system,
            source_component=self._source_component,
        )
        self._connection_lock = threading.Lock()
        self._goal: Waypoint | None = None
        self._position: tuple[float, float] | None = None

    @property
    def endpoint(self) -> tuple[str, int]:
        return self._host, self._port

    def wait_for_availability(self, timeout_sec: float) -> bool:
        """Wait for a HEARTBEAT from the target system."""
        deadline = time.monotonic() + max(timeout_sec, 0.0)
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0.0:
                return False
            try:
                with self._connection_lock:
                    heartbeat = self._connection.recv_match(
                        type="HEARTBEAT",
                        blocking=True,
                        timeout=min(_HEARTBEAT_POLL_SLICE_SEC, remaining),
                    )
            except OSError as error:
                self._logger(f"MAVLink heartbeat wait failed: {error}")
                return False
            if heartbeat is not None and self._message_matches_target(heartbeat):
                return True

    def send_goal(self, waypoint: Waypoint) -> None:
        self._goal = waypoint
        self._logger(
            f"MAVLink goal to {self._host}:{self._port}: x={waypoint.x:.3f} y={waypoint.y:.3f}"
        )
        self._send_local_ned_setpoint(waypoint)

    def poll_status(self) -> GoalStatus:
        if self._goal is None:
            return GoalStatus.IDLE
        self._drain_position_updates()
        if self._position is None:
            self._send_local_ned_setpoint(self._goal)
            return GoalStatus.PENDING

        distance = math.hypot(self._position[0] - self._goal.x, self._position[1] - self._goal.y)
        if distance <= self._arrival_threshold_m:
            self._goal = None
            return GoalStatus.SUCCEEDED
        self._send_local_ned_setpoint(self._goal)
        return GoalStatus.ACTIVE

    def close(self) -> None:
        with self._connection_lock:
            self._connection.close()

    def _drain_position_updates(self) -> None:
        for _ in range(_POSITION_POLL_LIMIT):
            try:
                with self._connection_lock:
                    message = self._connection.recv_match(
                        type="LOCAL_POSITION_NED", blocking=False
                    )
            except OSError as error:
                self._logger(f"MAVLink position read failed: {error}")
                return
            if message is None:
                return
            if not self._message_matches_target(message):
                continue
            # LOCAL_NED x=north, y=east; the map frame is x=east, y=north.
            self._position = (float(message.y), float(message.x))

    def _send_local_ned_setpoint(self, waypoint: Waypoint) -> None:
        north_m = float(waypoint.y)
        east_m = float(waypoint.x)
        down_m = -self._altitude_m

        type_mask = (
            mavutil.mavlink.POSITION_TARGET_TYPEMASK_VX_IGNORE
            | mavutil.mavlink.POSITION_TARGET_TYPEMASK_VY_IGNORE
            | mavutil.mavlink.POSITION_TARGET_TYPEMASK_VZ_IGNORE
            | mavutil.mavlink.POSITION_TARGET_TYPEMASK_AX_IGNORE
            | mavutil.mavlink.POSITION_TARGET_TYPEMASK_AY_IGNORE
            | mavutil.mavlink.POSITION_TARGET_TYPEMASK_AZ_IGNORE
            | mavutil.mavlink.POSITION_TARGET_TYPEMASK_YAW_IGNORE
            | mavutil.mavlink.POSITION_TARGET_TYPEMASK_YAW_RATE_IGNORE
        )

        time_boot_ms = int(time.time() * 1000.0) & 0xFFFFFFFF
        try:
            with self._connection_lock:
                self._connection.mav.set_position_target_local_ned_send(
                    time_boot_ms,
                    self._target_system,
                    self._target_component,
                    mavutil.mavlink.MAV_FRAME_LOCAL_NED,
                    type_mask,
                    north_m,
                    east_m,
                    down_m,
                    0.0,
                    0.0,
                    0.0,
                    0.0,
                    0.0,
                    0.0,
                    0.0,
                    0.0,
                )
        except OSError as error:
            self._logger(f"MAVLink setpoint send failed: {error}")

    def _message_matches_target(self, message) -> bool:
        get_system = getattr(message, "get_srcSystem", None)
        if callable(get_system):
            try:
                if int(self._target_system) > 0 and int(get_system()) != int(
                    self._target_system
                ):
                    return False
            except (TypeError, ValueError):
                return False
        return True
