import pytest

from scout_follower.localizer import LocalizationOutcome
from scout_follower.location_table import LocationTable
from scout_follower.mission_types import GoalStatus, MissionState, Waypoint
from scout_follower.sequencers import FollowerSequencer, ScoutSequencer, SequencerState


class _ScriptedClient:
    """Returns queued statuses per poll; ACTIVE once the script runs out."""

    def __init__(self, *statuses: GoalStatus) -> None:
        self.statuses = list(statuses)
        self.goals: list[Waypoint] = []

    def wait_for_availability(self, timeout_sec: float) -> bool:
        return True

    def send_goal(self, waypoint: Waypoint) -> None:
        self.goals.append(waypoint)

    def poll_status(self) -> GoalStatus:
        if self.statuses:
            return self.statuses.pop(0)
        return GoalStatus.ACTIVE


class _Velocity:
    def __init__(self) -> None:
        self.commands: list[tuple[float, float]] = []

    def publish(self, linear_x: float, angular_z: float) -> None:
        self.commands.append((linear_x, angular_z))


SCAN = (Waypoint(1.0, 1.0), Waypoint(2.0, 2.0))
HOME = Waypoint(-4.0, 2.5)


def test_scout_dispatches_first_waypoint_and_waits() -> None:
    client = _ScriptedClient()
    scout = ScoutSequencer(client, _Velocity(), SCAN, HOME)
    mission = MissionState()

    assert scout.step(mission) == SequencerState.GOAL_SENT
    assert scout.step(mission) == SequencerState.GOAL_SENT
    assert mission.scout_target_index == 0
    assert client.goals == [Waypoint(1.0, 1.0)]
    assert scout.route == SCAN + (HOME,)


def test_scout_rotates_until_localized_then_advances() -> None:
    client = _ScriptedClient(GoalStatus.SUCCEEDED)
    velocity = _Velocity()
    scout = ScoutSequencer(client, velocity, SCAN, HOME, scan_angular_speed=0.1)
    mission = MissionState()

    scout.step(mission)
    assert scout.step(mission) == SequencerState.SCANNING
    assert scout.step(mission, LocalizationOutcome.NOT_LOCALIZED) == SequencerState.SCANNING
    assert velocity.commands == [(0.0, 0.1), (0.0, 0.1)]

    assert scout.step(mission, LocalizationOutcome.LOCALIZED) == SequencerState.IDLE
    assert velocity.commands[-1] == (0.0, 0.0)
    assert scout.step(mission) == SequencerState.GOAL_SENT
    assert client.goals[-1] == Waypoint(2.0, 2.0)
    assert mission.scout_target_index == 1


def test_scout_gives_up_scanning_and_moves_on() -> None:
    client = _ScriptedClient(GoalStatus.SUCCEEDED)
    scout = ScoutSequencer(client, _Velocity(), SCAN, HOME)
    mission = MissionState()
    scout.step(mission)
    scout.step(mission)

    assert scout.step(mission, LocalizationOutcome.GAVE_UP) == SequencerState.IDLE


def test_scout_finishes_when_home_is_reached() -> None:
    client = _ScriptedClient(GoalStatus.SUCCEEDED)
    velocity = _Velocity()
    scout = ScoutSequencer(client, velocity, SCAN, HOME)
    mission = MissionState(scout_target_index=1)

    scout.step(mission)
    assert client.goals == [HOME]
    assert scout.step(mission) == SequencerState.FINISHED
    assert velocity.commands == [(0.0, 0.0)]
    assert scout.final_index == 2


def test_scout_without_home_return_finishes_at_last_scan_waypoint() -> None:
    client = _ScriptedClient(GoalStatus.SUCCEEDED)
    scout = ScoutSequencer(client, _Velocity(), SCAN, HOME, return_home=False)
    mission = MissionState(scout_target_index=0)

    scout.step(mission)
    assert scout.step(mission) == SequencerState.FINISHED
    assert client.goals == [Waypoint(2.0, 2.0)]


def test_scout_resends_failed_goal_then_fails_when_retries_run_out() -> None:
    client = _ScriptedClient(GoalStatus.ABORTED, GoalStatus.REJECTED)
    velocity = _Velocity()
    scout = ScoutSequencer(client, velocity, SCAN, HOME, max_goal_retries=1)
    mission = MissionState()

    scout.step(mission)
    assert scout.step(mission) == SequencerState.GOAL_SENT
    assert client.goals == [Waypoint(1.0, 1.0), Waypoint(1.0, 1.0)]
    assert scout.step(mission) == SequencerState.FAILED
    assert velocity.commands[-1] == (0.0, 0.0)
    assert mission.scout_target_index == 0


def test_scout_requires_scan_waypoints() -> None:
    with pytest.raises(ValueError):
        ScoutSequencer(_ScriptedClient(), _Velocity(), (), HOME)


def test_follower_visits_locations_in_identity_order_then_home() -> None:
    table = LocationTable(3)
    table.record(1, 2.5, 2.0)
    table.record(0, 1.5, 1.0)
    table.record_home(Waypoint(-4.0, 3.5))
    client = _ScriptedClient(*([GoalStatus.SUCCEEDED] * 3))
    follower = FollowerSequencer(client)
    mission = MissionState()

    states = [follower.step(mission, table) for _ in range(6)]

    assert client.goals == [Waypoint(1.5, 1.0), Waypoint(2.5, 2.0), Waypoint(-4.0, 3.5)]
    assert states[-1] == SequencerState.FINISHED
    assert mission.follower_target_index == 2


def test_follower_skips_slots_that_were_never_localized(caplog) -> None:
    table = LocationTable(4)
    table.record(2, 3.0, 3.0)
    table.record_home(Waypoint(-4.0, 3.5))
    client = _ScriptedClient()
    follower = FollowerSequencer(client)
    mission = MissionState()

    assert follower.step(mission, table) == SequencerState.GOAL_SENT

    assert client.goals == [Waypoint(3.0, 3.0)]
    assert mission.follower_target_index == 2
    assert "No location recorded for marker 0" in caplog.text
