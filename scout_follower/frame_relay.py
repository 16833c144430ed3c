"""Relay marker detections into the shared frame registry.

For the first marker of each detection event two frames are published: the
marker frame anchored to the detecting camera, and a standoff frame at a
fixed offset above the marker. The standoff frame is what gets localized
into the map.
"""

from __future__ import annotations

import logging
import time
from typing import Callable

from .frame_registry import FrameRegistry, RigidTransform
from .mission_types import DetectionEvent

DEFAULT_CAMERA_FRAME = "explorer_tf/camera_rgb_optical_frame"
DEFAULT_MARKER_FRAME = "marker_frame"
DEFAULT_STANDOFF_FRAME = "marker_standoff_frame"
DEFAULT_STANDOFF_OFFSET_M = 0.4


class FrameRelay:
    def __init__(
        self,
        registry: FrameRegistry,
        *,
        camera_frame: str = DEFAULT_CAMERA_FRAME,
        marker_frame: str = DEFAULT_MARKER_FRAME,
        standoff_frame: str = DEFAULT_STANDOFF_FRAME,
        standoff_offset_m: float = DEFAULT_STANDOFF_OFFSET_M,
        clock: Callable[[], float] = time.time,
        logger=None,
    ) -> None:
        self._registry = registry
        self._camera_frame = camera_frame
        self._marker_frame = marker_frame
        self._standoff_frame = standoff_frame
        self._standoff = RigidTransform(translation=(0.0, 0.0, float(standoff_offset_m)))
        self._clock = clock
        self._logger = logger or logging.getLogger(__name__)

    @property
    def standoff_frame(self) -> str:
        return self._standoff_frame

    def relay(self, event: DetectionEvent) -> int | None:
        """Publish the marker and standoff frames for ``event``.

        Returns:
            The relayed marker identity, or None for an event without markers.
        """
        marker = event.first
        if marker is None:
            self._logger.debug("Detection event carried no markers; ignoring")
            return None

        stamp_sec = event.stamp_sec if event.stamp_sec is not None else self._clock()
        self._registry.publish_frame(
            self._marker_frame, self._camera_frame, marker.transform, stamp_sec
        )
        self._registry.publish_frame(
            self._standoff_frame, self._marker_frame, self._standoff, stamp_sec
        )
        return marker.marker_id
