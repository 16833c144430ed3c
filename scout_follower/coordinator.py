"""Fixed-rate mission coordinator for the scout/follower relay.

The coordinator owns the mission state and the location table. Every tick it
steps whichever sequencer the current phase allows, feeds queued marker
detections through the frame relay while the scout is scanning, and moves
the mission forward through EXPLORING -> FOLLOWING -> DONE.
"""

from __future__ import annotations

from collections import deque
import logging
import threading
import time
from typing import Callable

from .frame_registry import FrameRegistry
from .frame_relay import FrameRelay
from .localizer import LocalizationOutcome, Localizer, RetryPolicy
from .location_table import LocationTable
from .mission_config import MissionConfig
from .mission_types import (
    TERMINAL_PHASES,
    DetectionEvent,
    MissionPhase,
    MissionState,
    Waypoint,
    is_forward_transition,
)
from .sequencers import (
    FollowerSequencer,
    NavigationClient,
    ScoutSequencer,
    SequencerState,
    VelocityCommander,
)

DEFAULT_DETECTION_QUEUE_DEPTH = 5


class MissionCoordinator:
    def __init__(
        self,
        *,
        scout: ScoutSequencer,
        follower: FollowerSequencer,
        frame_relay: FrameRelay,
        localizer: Localizer,
        table: LocationTable,
        follower_home: Waypoint,
        detection_queue_depth: int = DEFAULT_DETECTION_QUEUE_DEPTH,
        loop_budget_ms: float = 20.0,
        timing_log_interval_sec: float = 5.0,
        on_phase_change: Callable[[MissionPhase, MissionPhase], None] | None = None,
        logger=None,
    ) -> None:
        self._scout = scout
        self._follower = follower
        self._frame_relay = frame_relay
        self._localizer = localizer
        self._table = table
        self._follower_home = follower_home
        self._mission = MissionState()
        self._detections: deque[DetectionEvent] = deque(
            maxlen=max(1, int(detection_queue_depth))
        )
        self._detections_lock = threading.Lock()
        self._pending_localization: LocalizationOutcome | None = None
        self._on_phase_change = on_phase_change
        self._logger = logger or logging.getLogger(__name__)

        self._loop_budget_ms = float(loop_budget_ms)
        self._timing_log_interval_sec = float(timing_log_interval_sec)
        self._tick_count = 0
        self._ticks_since_log = 0
        self._elapsed_total_ms = 0.0
        self._elapsed_max_ms = 0.0
        self._last_timing_log = time.perf_counter()

    @property
    def phase(self) -> MissionPhase:
        return self._mission.phase

    @property
    def mission(self) -> MissionState:
        """Live mission state; callers outside ``tick`` should only read it."""
        return self._mission

    @property
    def table(self) -> LocationTable:
        return self._table

    @property
    def is_finished(self) -> bool:
        return self._mission.phase in TERMINAL_PHASES

    @property
    def tick_count(self) -> int:
        return self._tick_count

    @property
    def scout_scanning(self) -> bool:
        return self._mission.phase == MissionPhase.EXPLORING and self._scout.is_scanning

    def enqueue_detection(self, event: DetectionEvent) -> None:
        """Queue a detection for the next tick; safe to call from any thread."""
        with self._detections_lock:
            if len(self._detections) == self._detections.maxlen:
                self._logger.debug("Detection queue full; dropping oldest event")
            self._detections.append(event)

    def pending_detections(self) -> int:
        with self._detections_lock:
            return len(self._detections)

    def tick(self) -> MissionPhase:
        start = time.perf_counter()
        mission = self._mission

        if mission.phase == MissionPhase.EXPLORING:
            was_scanning = self._scout.is_scanning
            localization = self._pending_localization
            self._pending_localization = None
            state = self._scout.step(mission, localization)
            if state == SequencerState.FINISHED:
                self._finish_exploration()
            elif state == SequencerState.FAILED:
                self._abort("explorer goal failed")
            elif state == SequencerState.SCANNING and not was_scanning:
                self._localizer.reset()
        elif mission.phase == MissionPhase.FOLLOWING:
            state = self._follower.step(mission, self._table)
            if state == SequencerState.FINISHED:
                self._logger.info("PROJECT FINISHED!!!")
                self._transition_to(MissionPhase.DONE)
                mission.shutdown_requested = True
            elif state == SequencerState.FAILED:
                self._abort("follower goal failed")

        if self.scout_scanning:
            self._drain_detections()
            self._pending_localization = self._localizer.localize(mission, self._table)

        self._record_timing((time.perf_counter() - start) * 1000.0)
        return mission.phase

    def run(
        self,
        *,
        rate_hz: float = 10.0,
        should_continue: Callable[[], bool] = lambda: True,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> MissionPhase:
        """Tick at ``rate_hz`` until the mission ends or ``should_continue`` is False."""
        period = 1.0 / max(float(rate_hz), 1e-3)
        next_tick = clock()
        while should_continue() and not self.is_finished:
            self.tick()
            next_tick += period
            sleep_for = next_tick - clock()
            if sleep_for > 0:
                sleep(sleep_for)
            else:
                next_tick = clock()
        return self._mission.phase

    def exploration_summary(self) -> list[str]:
        lines = ["============="]
        for marker_id, slot in enumerate(list(self._table)[: self._table.home_index]):
            if slot is None:
                lines.append("follower goals: %d  unset" % marker_id)
                continue
            lines.append("follower goals: %d  %.3f  %.3f" % (slot.marker_id, slot.x, slot.y))
        lines.append("=============")
        return lines

    def status_payload(self) -> dict[str, object]:
        return {
            "phase": self._mission.phase.value,
            "scoutTargetIndex": self._mission.scout_target_index,
            "followerTargetIndex": self._mission.follower_target_index,
            "lastDetectedMarkerId": self._mission.last_detected_marker_id,
            "scoutState": self._scout.state.value,
            "followerState": self._follower.state.value,
            "locations": self._table.as_payload(),
        }

    def _drain_detections(self) -> None:
        with self._detections_lock:
            events = list(self._detections)
            self._detections.clear()

        for event in events:
            marker = event.first
            if marker is not None and not self._table.is_discoverable(marker.marker_id):
                self._logger.error(
                    "Marker id %d is outside the discoverable range [0, %d]; dropping detection"
                    % (marker.marker_id, self._table.home_index - 1)
                )
                continue
            marker_id = self._frame_relay.relay(event)
            if marker_id is not None:
                self._mission.last_detected_marker_id = marker_id

    def _finish_exploration(self) -> None:
        self._table.record_home(self._follower_home)
        for line in self.exploration_summary():
            self._logger.info(line)
        self._transition_to(MissionPhase.FOLLOWING)

    def _abort(self, reason: str) -> None:
        self._logger.error("Mission aborted: %s" % reason)
        self._transition_to(MissionPhase.ABORTED)
        self._mission.shutdown_requested = True

    def _transition_to(self, new_phase: MissionPhase) -> None:
        previous = self._mission.phase
        if not is_forward_transition(previous, new_phase):
            return
        self._mission.phase = new_phase
        self._logger.info("Mission phase transition: %s -> %s" % (previous.value, new_phase.value))
        if self._on_phase_change is not None:
            self._on_phase_change(previous, new_phase)

    def _record_timing(self, elapsed_ms: float) -> None:
        self._tick_count += 1
        self._ticks_since_log += 1
        self._elapsed_total_ms += elapsed_ms
        self._elapsed_max_ms = max(self._elapsed_max_ms, elapsed_ms)

        now = time.perf_counter()
        if now - self._last_timing_log >= self._timing_log_interval_sec:
            average_ms = self._elapsed_total_ms / max(self._ticks_since_log, 1)
            self._logger.debug(
                "coordinator timing: ticks=%d avg=%.3fms max=%.3fms budget=%.3fms"
                % (self._ticks_since_log, average_ms, self._elapsed_max_ms, self._loop_budget_ms)
            )
            self._ticks_since_log = 0
            self._elapsed_total_ms = 0.0
            self._elapsed_max_ms = 0.0
            self._last_timing_log = now

        # The localizer backoff sleeps inside the tick; only warn for other overruns.
        if (
            elapsed_ms > self._loop_budget_ms
            and self._pending_localization != LocalizationOutcome.NOT_LOCALIZED
        ):
            self._logger.warning(
                "coordinator tick budget exceeded: %.3fms > %.3fms"
                % (elapsed_ms, self._loop_budget_ms)
            )


def build_coordinator(
    config: MissionConfig,
    *,
    scout_client: NavigationClient,
    follower_client: NavigationClient,
    velocity: VelocityCommander,
    registry: FrameRegistry,
    logger=None,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.time,
    on_phase_change: Callable[[MissionPhase, MissionPhase], None] | None = None,
) -> MissionCoordinator:
    """Wire sequencers, relay and localizer for ``config`` into a coordinator."""
    config.validate()
    frame_relay = FrameRelay(
        registry,
        camera_frame=config.camera_frame,
        marker_frame=config.marker_frame,
        standoff_frame=config.standoff_frame,
        standoff_offset_m=config.standoff_offset_m,
        clock=clock,
        logger=logger,
    )
    localizer = Localizer(
        registry,
        standoff_frame=config.standoff_frame,
        map_frame=config.map_frame,
        retry_policy=RetryPolicy(
            interval_sec=config.localization_retry_interval_sec,
            max_attempts=config.localization_max_attempts,
            sleep=sleep,
        ),
        logger=logger,
    )
    scout = ScoutSequencer(
        scout_client,
        velocity,
        config.scan_waypoints,
        config.scout_home,
        return_home=config.return_scout_home,
        scan_angular_speed=config.scan_angular_speed,
        max_goal_retries=config.max_goal_retries,
        logger=logger,
    )
    follower = FollowerSequencer(
        follower_client,
        max_goal_retries=config.max_goal_retries,
        logger=logger,
    )
    return MissionCoordinator(
        scout=scout,
        follower=follower,
        frame_relay=frame_relay,
        localizer=localizer,
        table=LocationTable(config.location_capacity),
        follower_home=config.follower_home,
        detection_queue_depth=config.detection_queue_depth,
        loop_budget_ms=config.loop_budget_ms,
        on_phase_change=on_phase_change,
        logger=logger,
    )


def wait_for_navigation(
    client: NavigationClient,
    agent: str,
    *,
    timeout_sec: float = 5.0,
    should_continue: Callable[[], bool] = lambda: True,
    logger=None,
) -> bool:
    """Block until ``client`` reports its navigation server available.

    Returns False only when ``should_continue`` stops the wait.
    """
    logger = logger or logging.getLogger(__name__)
    while should_continue():
        if client.wait_for_availability(timeout_sec):
            logger.info("Navigation server for %s is available" % agent)
            return True
        logger.info("Waiting for the navigation server to come up for %s" % agent)
    return False
