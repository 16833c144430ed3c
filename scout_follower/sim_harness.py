#!/usr/bin/env python3
"""Run a full scout/follower mission against simulated agents, no ROS graph needed.

Navigation goals succeed after a fixed number of status polls, the scout
camera pose is published into an ``InMemoryFrameRegistry`` whenever the scout
starts scanning, and a simulated detector reports the marker placed at each
scan waypoint after the scout has rotated for a few ticks.
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass, field
import json
import logging
import sys
from typing import Sequence

from .coordinator import MissionCoordinator, build_coordinator
from .errors import MissionConfigError
from .frame_registry import InMemoryFrameRegistry, RigidTransform
from .mission_config import MissionConfig, parse_waypoint, parse_waypoints
from .mission_types import (
    DetectionEvent,
    DiscoveredLocation,
    GoalStatus,
    MarkerObservation,
    MissionPhase,
    Waypoint,
)

_CAMERA_HEIGHT_M = 0.3


class SimulatedNavigationClient:
    """Goal client that arrives after ``polls_to_arrive`` status polls.

    Goal numbers listed in ``failing_goals`` (1-based, counting every
    ``send_goal`` including re-sends) end ABORTED instead.
    """

    def __init__(
        self,
        *,
        polls_to_arrive: int = 3,
        failing_goals: Sequence[int] = (),
        available: bool = True,
    ) -> None:
        self._polls_to_arrive = max(1, int(polls_to_arrive))
        self._failing_goals = set(int(number) for number in failing_goals)
        self._available = available
        self._polls = 0
        self._goal: Waypoint | None = None
        self._status = GoalStatus.IDLE
        self.goals: list[Waypoint] = []
        self.position: Waypoint | None = None

    def wait_for_availability(self, timeout_sec: float) -> bool:
        return self._available

    def send_goal(self, waypoint: Waypoint) -> None:
        self.goals.append(waypoint)
        self._goal = waypoint
        self._polls = 0
        self._status = GoalStatus.PENDING

    def poll_status(self) -> GoalStatus:
        if self._goal is None or self._status.is_terminal:
            return self._status
        self._polls += 1
        if self._polls < self._polls_to_arrive:
            self._status = GoalStatus.ACTIVE
        elif len(self.goals) in self._failing_goals:
            self._status = GoalStatus.ABORTED
        else:
            self.position = self._goal
            self._status = GoalStatus.SUCCEEDED
        return self._status


class RecordingVelocityCommander:
    def __init__(self) -> None:
        self.commands: list[tuple[float, float]] = []

    def publish(self, linear_x: float, angular_z: float) -> None:
        self.commands.append((float(linear_x), float(angular_z)))


@dataclass(frozen=True)
class PlacedMarker:
    marker_id: int
    x: float
    y: float


@dataclass
class SimulatedScene:
    """Markers in the map frame, keyed by the scan waypoint that sees them."""

    markers: dict[int, PlacedMarker] = field(default_factory=dict)
    scan_ticks_before_detection: int = 2

    @classmethod
    def beside_waypoints(
        cls, waypoints: Sequence[Waypoint], offset: tuple[float, float] = (0.8, 0.0)
    ) -> "SimulatedScene":
        return cls(
            markers={
                index: PlacedMarker(index, waypoint.x + offset[0], waypoint.y + offset[1])
                for index, waypoint in enumerate(waypoints)
            }
        )


class SimulatedDetector:
    """Publish the scout camera pose and emit detections while scanning."""

    def __init__(
        self,
        scene: SimulatedScene,
        registry: InMemoryFrameRegistry,
        *,
        map_frame: str,
        camera_frame: str,
    ) -> None:
        self._scene = scene
        self._registry = registry
        self._map_frame = map_frame
        self._camera_frame = camera_frame
        self._scan_ticks = 0
        self._stamp = 0.0

    def observe(self, coordinator: MissionCoordinator, scout_position: Waypoint | None) -> None:
        if not coordinator.scout_scanning or scout_position is None:
            self._scan_ticks = 0
            return
        self._stamp += 0.1
        if self._scan_ticks == 0:
            self._registry.publish_frame(
                self._camera_frame,
                self._map_frame,
                RigidTransform(translation=(scout_position.x, scout_position.y, _CAMERA_HEIGHT_M)),
                self._stamp,
            )
        self._scan_ticks += 1
        if self._scan_ticks < self._scene.scan_ticks_before_detection:
            return

        marker = self._scene.markers.get(coordinator.mission.scout_target_index)
        if marker is None:
            coordinator.enqueue_detection(DetectionEvent(stamp_sec=self._stamp))
            return
        in_camera = RigidTransform(
            translation=(
                marker.x - scout_position.x,
                marker.y - scout_position.y,
                -_CAMERA_HEIGHT_M,
            )
        )
        coordinator.enqueue_detection(
            DetectionEvent(
                markers=(MarkerObservation(marker.marker_id, in_camera),),
                stamp_sec=self._stamp,
            )
        )


@dataclass
class SimulationResult:
    phase: MissionPhase
    ticks: int
    discovered: list[DiscoveredLocation]
    scout_goals: list[Waypoint]
    follower_goals: list[Waypoint]

    def as_payload(self) -> dict[str, object]:
        return {
            "phase": self.phase.value,
            "ticks": self.ticks,
            "discovered": [
                {"markerId": location.marker_id, "x": location.x, "y": location.y}
                for location in self.discovered
            ],
            "scoutGoals": [goal.as_tuple() for goal in self.scout_goals],
            "followerGoals": [goal.as_tuple() for goal in self.follower_goals],
        }


def run_simulation(
    config: MissionConfig,
    scene: SimulatedScene | None = None,
    *,
    polls_to_arrive: int = 3,
    scout_failing_goals: Sequence[int] = (),
    follower_failing_goals: Sequence[int] = (),
    max_ticks: int = 2000,
    logger=None,
) -> SimulationResult:
    """Tick a mission to completion (or ``max_ticks``) with simulated agents."""
    scene = scene or SimulatedScene.beside_waypoints(config.scan_waypoints)
    registry = InMemoryFrameRegistry()
    scout_client = SimulatedNavigationClient(
        polls_to_arrive=polls_to_arrive, failing_goals=scout_failing_goals
    )
    follower_client = SimulatedNavigationClient(
        polls_to_arrive=polls_to_arrive, failing_goals=follower_failing_goals
    )
    coordinator = build_coordinator(
        config,
        scout_client=scout_client,
        follower_client=follower_client,
        velocity=RecordingVelocityCommander(),
        registry=registry,
        logger=logger,
        sleep=lambda _: None,
    )
    detector = SimulatedDetector(
        scene, registry, map_frame=config.map_frame, camera_frame=config.camera_frame
    )

    while not coordinator.is_finished and coordinator.tick_count < max_ticks:
        coordinator.tick()
        detector.observe(coordinator, scout_client.position)

    return SimulationResult(
        phase=coordinator.phase,
        ticks=coordinator.tick_count,
        discovered=coordinator.table.discovered(),
        scout_goals=list(scout_client.goals),
        follower_goals=list(follower_client.goals),
    )


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Run a scout/follower mission against simulated navigation and detection."
    )
    parser.add_argument(
        "--scan-waypoints",
        default="[[1.0, 1.0], [2.0, 2.0], [3.0, 3.0], [4.0, 4.0]]",
        help="JSON list of [x, y] scan waypoints (or a target_<n> mapping)",
    )
    parser.add_argument("--scout-home", default="[-4.0, 2.5]", help="JSON [x, y]")
    parser.add_argument("--follower-home", default="[-4.0, 3.5]", help="JSON [x, y]")
    parser.add_argument(
        "--no-return-home",
        action="store_true",
        help="Finish exploration at the last scan waypoint",
    )
    parser.add_argument("--polls-to-arrive", type=int, default=3)
    parser.add_argument("--max-ticks", type=int, default=2000)
    parser.add_argument(
        "--scout-failing-goals",
        type=int,
        nargs="*",
        default=[],
        help="1-based scout goal numbers that end ABORTED",
    )
    parser.add_argument("--max-goal-retries", type=int, default=3)
    parser.add_argument("--log-level", default="INFO")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="[%(levelname)s] %(name)s: %(message)s",
    )
    logger = logging.getLogger("scout_follower.sim")

    try:
        config = MissionConfig(
            scan_waypoints=parse_waypoints(args.scan_waypoints, "--scan-waypoints"),
            scout_home=parse_waypoint(args.scout_home, "--scout-home"),
            follower_home=parse_waypoint(args.follower_home, "--follower-home"),
            return_scout_home=not args.no_return_home,
            max_goal_retries=args.max_goal_retries,
        ).validate()
    except MissionConfigError as error:
        logger.error("Invalid mission configuration: %s", error)
        return 2

    result = run_simulation(
        config,
        polls_to_arrive=args.polls_to_arrive,
        scout_failing_goals=args.scout_failing_goals,
        max_ticks=args.max_ticks,
        logger=logger,
    )
    print(json.dumps(result.as_payload(), indent=2))
    return 0 if result.phase == MissionPhase.DONE else 1


if __name__ == "__main__":
    sys.exit(main())
