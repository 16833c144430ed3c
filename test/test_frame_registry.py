import math

import numpy as np
import pytest

from scout_follower.errors import TransformLookupError
from scout_follower.frame_registry import (
    InMemoryFrameRegistry,
    RigidTransform,
)
from scout_follower.frame_relay import FrameRelay
from scout_follower.mission_types import DetectionEvent, MarkerObservation


def _yaw(yaw_rad: float) -> tuple[float, float, float, float]:
    return 0.0, 0.0, math.sin(0.5 * yaw_rad), math.cos(0.5 * yaw_rad)


def _assert_translation(transform: RigidTransform, expected: tuple[float, float, float]) -> None:
    assert transform.translation == pytest.approx(expected, abs=1e-9)


def test_rigid_transform_matrix_round_trip_keeps_rotation() -> None:
    transform = RigidTransform(translation=(1.0, -2.0, 0.5), rotation=_yaw(0.7))

    restored = RigidTransform.from_matrix(transform.to_matrix())

    _assert_translation(restored, (1.0, -2.0, 0.5))
    assert restored.rotation == pytest.approx(transform.rotation, abs=1e-9)


def test_compose_applies_child_in_parent_rotation() -> None:
    parent = RigidTransform(translation=(1.0, 0.0, 0.0), rotation=_yaw(math.pi / 2))
    child = RigidTransform(translation=(1.0, 0.0, 0.0))

    _assert_translation(parent.compose(child), (1.0, 1.0, 0.0))
    assert np.allclose(parent.compose(parent.inverse()).to_matrix(), np.eye(4))


def test_zero_quaternion_is_treated_as_identity() -> None:
    transform = RigidTransform(rotation=(0.0, 0.0, 0.0, 0.0))

    assert np.allclose(transform.to_matrix(), np.eye(4))


def test_query_walks_chain_to_common_root() -> None:
    registry = InMemoryFrameRegistry()
    registry.publish_frame(
        "camera", "map", RigidTransform(translation=(2.0, 3.0, 0.3)), 1.0
    )
    registry.publish_frame(
        "marker", "camera", RigidTransform(translation=(0.5, 0.0, -0.3)), 1.0
    )

    _assert_translation(registry.query_transform("map", "marker"), (2.5, 3.0, 0.0))
    _assert_translation(registry.query_transform("camera", "map"), (-2.0, -3.0, -0.3))
    _assert_translation(registry.query_transform("map", "map"), (0.0, 0.0, 0.0))


def test_query_composes_rotated_frames_along_the_chain() -> None:
    registry = InMemoryFrameRegistry()
    registry.publish_frame(
        "camera", "map", RigidTransform(translation=(2.0, 0.0, 0.0), rotation=_yaw(math.pi / 2)), 1.0
    )
    registry.publish_frame("marker", "camera", RigidTransform(translation=(1.0, 0.0, 0.0)), 1.0)

    _assert_translation(registry.query_transform("map", "marker"), (2.0, 1.0, 0.0))
    _assert_translation(registry.query_transform("marker", "map"), (-1.0, 2.0, 0.0))


def test_query_unknown_or_disconnected_frames_raise() -> None:
    registry = InMemoryFrameRegistry()
    registry.publish_frame("camera", "odom", RigidTransform(), 0.0)

    with pytest.raises(TransformLookupError):
        registry.query_transform("map", "missing")
    with pytest.raises(TransformLookupError):
        registry.query_transform("map", "camera")


def test_republished_frame_replaces_previous_transform() -> None:
    registry = InMemoryFrameRegistry()
    registry.publish_frame("marker", "map", RigidTransform(translation=(1.0, 0.0, 0.0)), 1.0)
    registry.publish_frame("marker", "map", RigidTransform(translation=(4.0, 0.0, 0.0)), 2.0)

    _assert_translation(registry.query_transform("map", "marker"), (4.0, 0.0, 0.0))
    assert [stamp for _, _, _, stamp in registry.published] == [1.0, 2.0]
    assert len(registry.published) == 2


def test_frame_cannot_be_its_own_parent() -> None:
    registry = InMemoryFrameRegistry()

    with pytest.raises(ValueError):
        registry.publish_frame("map", "map", RigidTransform(), 0.0)


def test_relay_publishes_marker_and_standoff_frames() -> None:
    registry = InMemoryFrameRegistry()
    relay = FrameRelay(
        registry,
        camera_frame="camera",
        marker_frame="marker",
        standoff_frame="standoff",
        standoff_offset_m=0.4,
        clock=lambda: 42.0,
    )
    marker_pose = RigidTransform(translation=(0.2, 0.1, 1.5))

    relayed = relay.relay(DetectionEvent(markers=(MarkerObservation(3, marker_pose),)))

    assert relayed == 3
    assert [(name, parent, stamp) for name, parent, _, stamp in registry.published] == [
        ("marker", "camera", 42.0),
        ("standoff", "marker", 42.0),
    ]
    _assert_translation(registry.query_transform("camera", "standoff"), (0.2, 0.1, 1.9))


def test_relay_uses_first_marker_and_event_stamp() -> None:
    registry = InMemoryFrameRegistry()
    relay = FrameRelay(registry, clock=lambda: 99.0)
    event = DetectionEvent(
        markers=(
            MarkerObservation(1, RigidTransform(translation=(1.0, 0.0, 0.0))),
            MarkerObservation(2, RigidTransform(translation=(9.0, 0.0, 0.0))),
        ),
        stamp_sec=12.5,
    )

    assert relay.relay(event) == 1
    assert [stamp for _, _, _, stamp in registry.published] == [12.5, 12.5]
    _assert_translation(
        registry.query_transform("explorer_tf/camera_rgb_optical_frame", "marker_frame"),
        (1.0, 0.0, 0.0),
    )


def test_relay_ignores_empty_detection() -> None:
    registry = InMemoryFrameRegistry()
    relay = FrameRelay(registry)

    assert relay.relay(DetectionEvent()) is None
    assert registry.published == []
