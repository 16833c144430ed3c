"""Plain data types shared by the mission core and its adapters."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Final

from .frame_registry import RigidTransform


@dataclass(frozen=True)
class Waypoint:
    x: float
    y: float

    def as_tuple(self) -> tuple[float, float]:
        return self.x, self.y


@dataclass(frozen=True)
class DiscoveredLocation:
    marker_id: int
    x: float
    y: float


class MissionPhase(str, Enum):
    EXPLORING = "EXPLORING"
    FOLLOWING = "FOLLOWING"
    DONE = "DONE"
    ABORTED = "ABORTED"


_PHASE_ORDER: Final[dict[MissionPhase, int]] = {
    MissionPhase.EXPLORING: 0,
    MissionPhase.FOLLOWING: 1,
    MissionPhase.DONE: 2,
    MissionPhase.ABORTED: 2,
}

TERMINAL_PHASES: Final[frozenset[MissionPhase]] = frozenset(
    {MissionPhase.DONE, MissionPhase.ABORTED}
)


def is_forward_transition(current: MissionPhase, new: MissionPhase) -> bool:
    """Phases only move forward; the two terminal phases never change."""
    if current in TERMINAL_PHASES:
        return False
    return _PHASE_ORDER[new] > _PHASE_ORDER[current]


@dataclass
class MissionState:
    """Mutable mission progress owned by the coordinator.

    Target indices start at -1 (no goal dispatched yet) and advance by one
    for every goal handed to the navigation service.
    """

    scout_target_index: int = -1
    follower_target_index: int = -1
    last_detected_marker_id: int = -1
    phase: MissionPhase = MissionPhase.EXPLORING
    shutdown_requested: bool = False


class GoalStatus(str, Enum):
    IDLE = "IDLE"
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    SUCCEEDED = "SUCCEEDED"
    ABORTED = "ABORTED"
    REJECTED = "REJECTED"
    CANCELED = "CANCELED"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_GOAL_STATUSES

    @property
    def is_failure(self) -> bool:
        return self in _FAILED_GOAL_STATUSES


_FAILED_GOAL_STATUSES: Final[frozenset[GoalStatus]] = frozenset(
    {GoalStatus.ABORTED, GoalStatus.REJECTED, GoalStatus.CANCELED}
)
_TERMINAL_GOAL_STATUSES: Final[frozenset[GoalStatus]] = _FAILED_GOAL_STATUSES | {
    GoalStatus.SUCCEEDED
}


@dataclass(frozen=True)
class MarkerObservation:
    """One detected marker with its pose in the detecting sensor frame."""

    marker_id: int
    transform: RigidTransform


@dataclass(frozen=True)
class DetectionEvent:
    markers: tuple[MarkerObservation, ...] = field(default_factory=tuple)
    stamp_sec: float | None = None

    @property
    def first(self) -> MarkerObservation | None:
        return self.markers[0] if self.markers else None
