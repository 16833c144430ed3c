"""Goal sequencing state machines for the scout and the follower.

Both sequencers are driven by the coordinator tick and hold only their own
sub-state. Mission progress (target indices) and the location table are
passed in on every step and never retained.
"""

from __future__ import annotations

from enum import Enum
import logging
from typing import Protocol, Sequence

from .location_table import LocationTable
from .localizer import LocalizationOutcome
from .mission_types import GoalStatus, MissionState, Waypoint


class NavigationClient(Protocol):
    def send_goal(self, waypoint: Waypoint) -> None:
        ...

    def poll_status(self) -> GoalStatus:
        ...

    def wait_for_availability(self, timeout_sec: float) -> bool:
        ...


class VelocityCommander(Protocol):
    def publish(self, linear_x: float, angular_z: float) -> None:
        ...


class SequencerState(str, Enum):
    IDLE = "IDLE"
    GOAL_SENT = "GOAL_SENT"
    SUCCEEDED = "SUCCEEDED"
    SCANNING = "SCANNING"
    FINISHED = "FINISHED"
    FAILED = "FAILED"


class _GoalTracker:
    """Shared goal dispatch and failure-retry bookkeeping."""

    def __init__(self, client: NavigationClient, agent: str, max_goal_retries: int, logger) -> None:
        self._client = client
        self._agent = agent
        self._max_goal_retries = max(0, int(max_goal_retries))
        self._logger = logger
        self._retries_used = 0
        self._goal: Waypoint | None = None

    def dispatch(self, index: int, waypoint: Waypoint) -> None:
        self._goal = waypoint
        self._retries_used = 0
        self._logger.info(
            "Sending goal #%d to %s: x=%.3f y=%.3f" % (index, self._agent, waypoint.x, waypoint.y)
        )
        self._client.send_goal(waypoint)

    def poll(self, index: int) -> SequencerState:
        """Return SUCCEEDED, GOAL_SENT (still running or re-sent) or FAILED."""
        status = self._client.poll_status()
        if status == GoalStatus.SUCCEEDED:
            self._logger.info("%s reached goal #%d" % (self._agent.capitalize(), index))
            return SequencerState.SUCCEEDED
        if not status.is_failure:
            return SequencerState.GOAL_SENT

        if self._goal is None or self._retries_used >= self._max_goal_retries:
            self._logger.error(
                "%s goal #%d finished with %s; no retries left"
                % (self._agent.capitalize(), index, status.value)
            )
            return SequencerState.FAILED
        self._retries_used += 1
        self._logger.error(
            "%s goal #%d finished with %s; re-sending (retry %d/%d)"
            % (
                self._agent.capitalize(),
                index,
                status.value,
                self._retries_used,
                self._max_goal_retries,
            )
        )
        self._client.send_goal(self._goal)
        return SequencerState.GOAL_SENT


class ScoutSequencer:
    """Visit each scan waypoint, rotate in place until a marker is localized.

    The route is the scan waypoints followed by the scout home. Exploration
    finishes when the scout reaches home, or right after the last scan
    waypoint when ``return_home`` is disabled.
    """

    def __init__(
        self,
        client: NavigationClient,
        velocity: VelocityCommander,
        scan_waypoints: Sequence[Waypoint],
        home: Waypoint,
        *,
        return_home: bool = True,
        scan_angular_speed: float = 0.1,
        max_goal_retries: int = 3,
        logger=None,
    ) -> None:
        if not scan_waypoints:
            raise ValueError("scout needs at least one scan waypoint")
        self._velocity = velocity
        self._route: tuple[Waypoint, ...] = tuple(scan_waypoints) + (home,)
        self._last_scan_index = len(scan_waypoints) - 1
        self._return_home = bool(return_home)
        self._scan_angular_speed = abs(float(scan_angular_speed))
        self._logger = logger or logging.getLogger(__name__)
        self._goals = _GoalTracker(client, "explorer", max_goal_retries, self._logger)
        self._state = SequencerState.IDLE

    @property
    def state(self) -> SequencerState:
        return self._state

    @property
    def route(self) -> tuple[Waypoint, ...]:
        return self._route

    @property
    def is_scanning(self) -> bool:
        return self._state == SequencerState.SCANNING

    @property
    def final_index(self) -> int:
        return len(self._route) - 1 if self._return_home else self._last_scan_index

    def step(
        self,
        mission: MissionState,
        localization: LocalizationOutcome | None = None,
    ) -> SequencerState:
        if self._state == SequencerState.IDLE:
            self._dispatch_next(mission)
        elif self._state == SequencerState.GOAL_SENT:
            self._state = self._goals.poll(mission.scout_target_index)

        if self._state == SequencerState.SUCCEEDED:
            self._on_goal_reached(mission)
        elif self._state == SequencerState.SCANNING:
            self._scan(localization)
        elif self._state == SequencerState.FAILED:
            self._velocity.publish(0.0, 0.0)
        return self._state

    def _dispatch_next(self, mission: MissionState) -> None:
        mission.scout_target_index += 1
        index = mission.scout_target_index
        self._goals.dispatch(index, self._route[index])
        self._state = SequencerState.GOAL_SENT

    def _on_goal_reached(self, mission: MissionState) -> None:
        if mission.scout_target_index >= self.final_index:
            self._velocity.publish(0.0, 0.0)
            self._logger.info("EXPLORER JOB DONE!")
            self._state = SequencerState.FINISHED
            return
        self._velocity.publish(0.0, self._scan_angular_speed)
        self._state = SequencerState.SCANNING

    def _scan(self, localization: LocalizationOutcome | None) -> None:
        if localization in (LocalizationOutcome.LOCALIZED, LocalizationOutcome.GAVE_UP):
            self._velocity.publish(0.0, 0.0)
            self._state = SequencerState.IDLE
            return
        self._velocity.publish(0.0, self._scan_angular_speed)


class FollowerSequencer:
    """Visit discovered locations in marker-identity order, home last."""

    def __init__(
        self,
        client: NavigationClient,
        *,
        max_goal_retries: int = 3,
        logger=None,
    ) -> None:
        self._logger = logger or logging.getLogger(__name__)
        self._goals = _GoalTracker(client, "follower", max_goal_retries, self._logger)
        self._state = SequencerState.IDLE

    @property
    def state(self) -> SequencerState:
        return self._state

    def step(self, mission: MissionState, table: LocationTable) -> SequencerState:
        if self._state == SequencerState.IDLE:
            self._dispatch_next(mission, table)
        elif self._state == SequencerState.GOAL_SENT:
            self._state = self._goals.poll(mission.follower_target_index)

        if self._state == SequencerState.SUCCEEDED:
            if mission.follower_target_index >= table.home_index:
                self._logger.info("Follower reached home; mission finished")
                self._state = SequencerState.FINISHED
            else:
                self._state = SequencerState.IDLE
        return self._state

    def _dispatch_next(self, mission: MissionState, table: LocationTable) -> None:
        while mission.follower_target_index < table.home_index:
            mission.follower_target_index += 1
            location = table.get(mission.follower_target_index)
            if location is not None:
                self._goals.dispatch(
                    mission.follower_target_index, Waypoint(location.x, location.y)
                )
                self._state = SequencerState.GOAL_SENT
                return
            self._logger.warning(
                "No location recorded for marker %d; skipping"
                % mission.follower_target_index
            )
        self._state = SequencerState.FINISHED
