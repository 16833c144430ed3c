import pytest

from scout_follower.errors import LocationAlreadySetError, MarkerIdOutOfRangeError
from scout_follower.location_table import LocationTable
from scout_follower.mission_types import DiscoveredLocation, Waypoint


def test_capacity_reserves_trailing_home_slot() -> None:
    table = LocationTable(5)

    assert table.capacity == 5
    assert len(table) == 5
    assert table.home_index == 4
    assert [table.is_discoverable(marker_id) for marker_id in range(-1, 6)] == [
        False,
        True,
        True,
        True,
        True,
        False,
        False,
    ]


def test_capacity_below_two_is_rejected() -> None:
    with pytest.raises(ValueError):
        LocationTable(1)


def test_record_is_write_once() -> None:
    table = LocationTable(5)

    location = table.record(2, 3.4, 2.9)

    assert location == DiscoveredLocation(marker_id=2, x=3.4, y=2.9)
    assert table.is_set(2)
    assert table.get(2) == location
    with pytest.raises(LocationAlreadySetError):
        table.record(2, 0.0, 0.0)
    assert table.get(2) == location


@pytest.mark.parametrize("marker_id", [-1, 4, 99])
def test_record_rejects_ids_outside_discoverable_range(marker_id: int) -> None:
    table = LocationTable(5)

    with pytest.raises(MarkerIdOutOfRangeError) as excinfo:
        table.record(marker_id, 1.0, 1.0)

    assert excinfo.value.marker_id == marker_id
    assert isinstance(excinfo.value, IndexError)
    assert all(slot is None for slot in table)


def test_lookup_out_of_range_raises() -> None:
    table = LocationTable(5)

    with pytest.raises(MarkerIdOutOfRangeError):
        table.get(5)
    with pytest.raises(MarkerIdOutOfRangeError):
        table.is_set(-1)


def test_home_slot_written_once_and_excluded_from_discovered() -> None:
    table = LocationTable(3)
    table.record(1, 2.0, 2.0)

    home = table.record_home(Waypoint(-4.0, 3.5))

    assert home == DiscoveredLocation(marker_id=2, x=-4.0, y=3.5)
    assert table.discovered() == [DiscoveredLocation(marker_id=1, x=2.0, y=2.0)]
    with pytest.raises(LocationAlreadySetError):
        table.record_home(Waypoint(0.0, 0.0))


def test_payload_lists_every_slot_in_identity_order() -> None:
    table = LocationTable(3)
    table.record(0, 1.5, -0.5)

    assert table.as_payload() == [
        {"markerId": 0, "x": 1.5, "y": -0.5},
        {"markerId": 1, "x": None, "y": None},
        {"markerId": 2, "x": None, "y": None},
    ]
