"""Coordinate-frame registry contract and an in-process implementation.

The mission only talks to the frame registry through two operations:
publishing a named frame relative to a parent and querying the pose of one
frame relative to another at the latest available time. The tf2-backed
registry lives in ``ros_adapters``; ``InMemoryFrameRegistry`` composes the
same tree with numpy so the simulator and the tests can exercise the
localization chain without a ROS graph.
"""

from __future__ import annotations

from dataclasses import dataclass
import math
from typing import Protocol

import numpy as np

from .errors import TransformLookupError

Vector3 = tuple[float, float, float]
Quaternion = tuple[float, float, float, float]

_IDENTITY_ROTATION: Quaternion = (0.0, 0.0, 0.0, 1.0)


@dataclass(frozen=True)
class RigidTransform:
    """Translation plus unit quaternion rotation (x, y, z, w)."""

    translation: Vector3 = (0.0, 0.0, 0.0)
    rotation: Quaternion = _IDENTITY_ROTATION

    @classmethod
    def identity(cls) -> "RigidTransform":
        return cls()

    @classmethod
    def from_matrix(cls, matrix: np.ndarray) -> "RigidTransform":
        translation = tuple(float(value) for value in matrix[:3, 3])
        return cls(translation=translation, rotation=_matrix_to_quaternion(matrix[:3, :3]))

    def to_matrix(self) -> np.ndarray:
        """Return the 4x4 homogeneous matrix for this transform."""
        x, y, z, w = _normalized_quaternion(self.rotation)
        matrix = np.eye(4)
        matrix[:3, :3] = np.array(
            [
                [1.0 - 2.0 * (y * y + z * z), 2.0 * (x * y - z * w), 2.0 * (x * z + y * w)],
                [2.0 * (x * y + z * w), 1.0 - 2.0 * (x * x + z * z), 2.0 * (y * z - x * w)],
                [2.0 * (x * z - y * w), 2.0 * (y * z + x * w), 1.0 - 2.0 * (x * x + y * y)],
            ]
        )
        matrix[:3, 3] = np.asarray(self.translation, dtype=float)
        return matrix

    def compose(self, child: "RigidTransform") -> "RigidTransform":
        """Return ``self * child``: the child transform expressed in this frame's parent."""
        return RigidTransform.from_matrix(self.to_matrix() @ child.to_matrix())

    def inverse(self) -> "RigidTransform":
        return RigidTransform.from_matrix(np.linalg.inv(self.to_matrix()))


def _normalized_quaternion(rotation: Quaternion) -> Quaternion:
    x, y, z, w = (float(value) for value in rotation)
    norm = math.sqrt(x * x + y * y + z * z + w * w)
    if norm == 0.0 or not math.isfinite(norm):
        return _IDENTITY_ROTATION
    return x / norm, y / norm, z / norm, w / norm


def _matrix_to_quaternion(rotation: np.ndarray) -> Quaternion:
    trace = float(np.trace(rotation))
    if trace > 0.0:
        scale = math.sqrt(trace + 1.0) * 2.0
        w = 0.25 * scale
        x = (rotation[2, 1] - rotation[1, 2]) / scale
        y = (rotation[0, 2] - rotation[2, 0]) / scale
        z = (rotation[1, 0] - rotation[0, 1]) / scale
    elif rotation[0, 0] > rotation[1, 1] and rotation[0, 0] > rotation[2, 2]:
        scale = math.sqrt(1.0 + rotation[0, 0] - rotation[1, 1] - rotation[2, 2]) * 2.0
        w = (rotation[2, 1] - rotation[1, 2]) / scale
        x = 0.25 * scale
        y = (rotation[0, 1] + rotation[1, 0]) / scale
        z = (rotation[0, 2] + rotation[2, 0]) / scale
    elif rotation[1, 1] > rotation[2, 2]:
        scale = math.sqrt(1.0 + rotation[1, 1] - rotation[0, 0] - rotation[2, 2]) * 2.0
        w = (rotation[0, 2] - rotation[2, 0]) / scale
        x = (rotation[0, 1] + rotation[1, 0]) / scale
        y = 0.25 * scale
        z = (rotation[1, 2] + rotation[2, 1]) / scale
    else:
        scale = math.sqrt(1.0 + rotation[2, 2] - rotation[0, 0] - rotation[1, 1]) * 2.0
        w = (rotation[1, 0] - rotation[0, 1]) / scale
        x = (rotation[0, 2] + rotation[2, 0]) / scale
        y = (rotation[1, 2] + rotation[2, 1]) / scale
        z = 0.25 * scale
    return _normalized_quaternion((float(x), float(y), float(z), float(w)))


class FrameRegistry(Protocol):
    def publish_frame(
        self,
        name: str,
        parent: str,
        transform: RigidTransform,
        stamp_sec: float,
    ) -> None:
        ...

    def query_transform(self, target_frame: str, source_frame: str) -> RigidTransform:
        """Return the pose of ``source_frame`` in ``target_frame`` at the latest time.

        Raises:
            TransformLookupError: if the frames are not connected yet.
        """
        ...


@dataclass(frozen=True)
class _FrameEntry:
    parent: str
    transform: RigidTransform
    stamp_sec: float


class InMemoryFrameRegistry:
    """Frame tree kept in process; each frame stores its latest parent transform."""

    _MAX_CHAIN_DEPTH = 64

    def __init__(self) -> None:
        self._frames: dict[str, _FrameEntry] = {}
        self.published: list[tuple[str, str, RigidTransform, float]] = []

    def publish_frame(
        self,
        name: str,
        parent: str,
        transform: RigidTransform,
        stamp_sec: float,
    ) -> None:
        if name == parent:
            raise ValueError(f"frame '{name}' cannot be its own parent")
        self._frames[name] = _FrameEntry(
            parent=parent, transform=transform, stamp_sec=float(stamp_sec)
        )
        self.published.append((name, parent, transform, float(stamp_sec)))

    def has_frame(self, name: str) -> bool:
        return name in self._frames

    def query_transform(self, target_frame: str, source_frame: str) -> RigidTransform:
        if target_frame == source_frame:
            return RigidTransform.identity()
        source_root, root_from_source = self._chain_to_root(source_frame)
        target_root, root_from_target = self._chain_to_root(target_frame)
        if source_root != target_root:
            raise TransformLookupError(
                f"Could not find a connection between '{target_frame}' and "
                f"'{source_frame}' because they are not part of the same tree"
            )
        return root_from_target.inverse().compose(root_from_source)

    def _chain_to_root(self, frame: str) -> tuple[str, RigidTransform]:
        root_from_frame = RigidTransform.identity()
        current = frame
        for _ in range(self._MAX_CHAIN_DEPTH):
            entry = self._frames.get(current)
            if entry is None:
                if current == frame and not self._is_known_parent(frame):
                    raise TransformLookupError(
                        f"\"{frame}\" passed to lookupTransform does not exist"
                    )
                return current, root_from_frame
            root_from_frame = entry.transform.compose(root_from_frame)
            current = entry.parent
        raise TransformLookupError(f"frame chain from '{frame}' exceeds depth limit")

    def _is_known_parent(self, frame: str) -> bool:
        return any(entry.parent == frame for entry in self._frames.values())
