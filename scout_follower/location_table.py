"""Fixed-capacity, write-once table of discovered marker locations."""

from __future__ import annotations

from collections.abc import Iterator

from .errors import LocationAlreadySetError, MarkerIdOutOfRangeError
from .mission_types import DiscoveredLocation, Waypoint


class LocationTable:
    """One slot per marker identity plus a trailing home slot.

    Identities ``0 .. capacity - 2`` are discoverable by the scout. The last
    slot is reserved for the follower home and is written once when
    exploration ends. Every slot is written at most once.
    """

    def __init__(self, capacity: int) -> None:
        if capacity < 2:
            raise ValueError("capacity must leave room for a marker and the home slot")
        self._capacity = int(capacity)
        self._slots: list[DiscoveredLocation | None] = [None] * self._capacity

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def home_index(self) -> int:
        return self._capacity - 1

    def is_discoverable(self, marker_id: int) -> bool:
        return 0 <= int(marker_id) < self.home_index

    def is_set(self, marker_id: int) -> bool:
        return self._slots[self._checked_index(marker_id)] is not None

    def get(self, marker_id: int) -> DiscoveredLocation | None:
        return self._slots[self._checked_index(marker_id)]

    def record(self, marker_id: int, x: float, y: float) -> DiscoveredLocation:
        """Store a discovered marker location.

        Raises:
            MarkerIdOutOfRangeError: if ``marker_id`` is not discoverable.
            LocationAlreadySetError: if the slot was written before.
        """
        if not self.is_discoverable(marker_id):
            raise MarkerIdOutOfRangeError(int(marker_id), self.home_index)
        return self._write(int(marker_id), x, y)

    def record_home(self, home: Waypoint) -> DiscoveredLocation:
        return self._write(self.home_index, home.x, home.y)

    def _write(self, index: int, x: float, y: float) -> DiscoveredLocation:
        if self._slots[index] is not None:
            raise LocationAlreadySetError(index)
        location = DiscoveredLocation(marker_id=index, x=float(x), y=float(y))
        self._slots[index] = location
        return location

    def _checked_index(self, marker_id: int) -> int:
        index = int(marker_id)
        if not 0 <= index < self._capacity:
            raise MarkerIdOutOfRangeError(index, self._capacity)
        return index

    def discovered(self) -> list[DiscoveredLocation]:
        """Written marker slots, home excluded, in identity order."""
        return [slot for slot in self._slots[: self.home_index] if slot is not None]

    def __iter__(self) -> Iterator[DiscoveredLocation | None]:
        return iter(list(self._slots))

    def __len__(self) -> int:
        return self._capacity

    def as_payload(self) -> list[dict[str, float | int | None]]:
        payload: list[dict[str, float | int | None]] = []
        for index, slot in enumerate(self._slots):
            if slot is None:
                payload.append({"markerId": index, "x": None, "y": None})
            else:
                payload.append({"markerId": slot.marker_id, "x": slot.x, "y": slot.y})
        return payload
