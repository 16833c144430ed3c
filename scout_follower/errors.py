"""Exception types raised by the scout/follower mission core."""

from __future__ import annotations


class ScoutFollowerError(Exception):
    """Base class for mission errors."""


class MissionConfigError(ScoutFollowerError, ValueError):
    """Raised when startup parameters cannot be turned into a mission."""


class MarkerIdOutOfRangeError(ScoutFollowerError, IndexError):
    """Raised when a marker identity has no slot in the location table."""

    def __init__(self, marker_id: int, capacity: int) -> None:
        super().__init__(
            f"marker id {marker_id} outside location table range [0, {capacity - 1}]"
        )
        self.marker_id = marker_id
        self.capacity = capacity


class LocationAlreadySetError(ScoutFollowerError):
    """Raised on a second write to a location table slot."""

    def __init__(self, marker_id: int) -> None:
        super().__init__(f"location for marker id {marker_id} is already set")
        self.marker_id = marker_id


class TransformLookupError(ScoutFollowerError):
    """Transient failure resolving a transform between two frames."""
