"""Marker localization against the map frame with fixed-interval retries."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import logging
import time
from typing import Callable

from .errors import TransformLookupError
from .frame_registry import FrameRegistry
from .location_table import LocationTable
from .mission_types import MissionState


class LocalizationOutcome(str, Enum):
    LOCALIZED = "LOCALIZED"
    NOT_LOCALIZED = "NOT_LOCALIZED"
    GAVE_UP = "GAVE_UP"


@dataclass(frozen=True)
class RetryPolicy:
    """Backoff between failed transform lookups.

    ``max_attempts`` of None retries until the lookup succeeds.
    """

    interval_sec: float = 1.0
    max_attempts: int | None = None
    sleep: Callable[[float], None] = time.sleep

    def exhausted(self, failed_attempts: int) -> bool:
        return self.max_attempts is not None and failed_attempts >= self.max_attempts

    def backoff(self) -> None:
        if self.interval_sec > 0.0:
            self.sleep(self.interval_sec)


class Localizer:
    """Resolve the standoff frame in the map frame and record the result."""

    def __init__(
        self,
        registry: FrameRegistry,
        *,
        standoff_frame: str,
        map_frame: str = "map",
        retry_policy: RetryPolicy | None = None,
        logger=None,
    ) -> None:
        self._registry = registry
        self._standoff_frame = standoff_frame
        self._map_frame = map_frame
        self._retry_policy = retry_policy or RetryPolicy()
        self._logger = logger or logging.getLogger(__name__)
        self._failed_attempts = 0

    @property
    def failed_attempts(self) -> int:
        return self._failed_attempts

    def reset(self) -> None:
        self._failed_attempts = 0

    def localize(self, mission: MissionState, table: LocationTable) -> LocalizationOutcome:
        marker_id = mission.last_detected_marker_id
        if marker_id < 0:
            return self._record_failure("no marker detected yet")
        if table.is_set(marker_id):
            # Frames left over from an earlier waypoint; keep scanning for a new marker.
            return self._record_failure(
                "Marker %d already localized; waiting for a new marker" % marker_id,
                backoff=False,
            )

        try:
            transform = self._registry.query_transform(
                self._map_frame, self._standoff_frame
            )
        except TransformLookupError as error:
            return self._record_failure(str(error))

        x, y, _ = transform.translation
        location = table.record(marker_id, x, y)
        self._failed_attempts = 0
        self._logger.info(
            "Marker %d position in %s frame: [%.3f, %.3f]"
            % (location.marker_id, self._map_frame, location.x, location.y)
        )
        return LocalizationOutcome.LOCALIZED

    def _record_failure(self, reason: str, *, backoff: bool = True) -> LocalizationOutcome:
        self._failed_attempts += 1
        if self._retry_policy.exhausted(self._failed_attempts):
            self._logger.error(
                "Marker localization gave up after %d attempts: %s"
                % (self._failed_attempts, reason)
            )
            return LocalizationOutcome.GAVE_UP
        if not backoff:
            self._logger.debug(reason)
            return LocalizationOutcome.NOT_LOCALIZED
        self._logger.warning("Marker localization failed: %s" % reason)
        self._retry_policy.backoff()
        return LocalizationOutcome.NOT_LOCALIZED
