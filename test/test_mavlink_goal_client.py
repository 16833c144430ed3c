from pymavlink import mavutil

from scout_follower.mavlink_goal_client import MavlinkGoalClient
from scout_follower.mission_types import GoalStatus, Waypoint


class _FakeMav:
    def __init__(self) -> None:
        self.set_position_calls: list[tuple] = []

    def set_position_target_local_ned_send(self, *args) -> None:
        self.set_position_calls.append(args)


class _FakeMessage:
    def __init__(self, src_system: int = 1, **fields) -> None:
        self._src_system = src_system
        for name, value in fields.items():
            setattr(self, name, value)

    def get_srcSystem(self) -> int:
        return self._src_system


class _FakeConnection:
    def __init__(self, endpoint: str) -> None:
        self.endpoint = endpoint
        self.mav = _FakeMav()
        self.closed = False
        self.messages_by_type: dict[str, list[object]] = {}
        self.recv_match_calls: list[tuple[str, bool, float | None]] = []

    def close(self) -> None:
        self.closed = True

    def recv_match(self, type: str, blocking: bool, timeout: float | None = None):
        self.recv_match_calls.append((type, blocking, timeout))
        queue = self.messages_by_type.get(type, [])
        if queue:
            return queue.pop(0)
        return None

    def queue_position(self, north: float, east: float, src_system: int = 1) -> None:
        self.messages_by_type.setdefault("LOCAL_POSITION_NED", []).append(
            _FakeMessage(src_system, x=north, y=east, z=0.0)
        )


def _patched_client(monkeypatch, **kwargs) -> tuple[MavlinkGoalClient, _FakeConnection]:
    connections: list[_FakeConnection] = []

    def _fake_connection(endpoint: str, source_system: int, source_component: int):
        del source_system, source_component
        conn = _FakeConnection(endpoint)
        connections.append(conn)
        return conn

    monkeypatch.setattr(
        "scout_follower.mavlink_goal_client.mavutil.mavlink_connection",
        _fake_connection,
    )
    client = MavlinkGoalClient(host="127.0.0.1", port=14541, **kwargs)
    return client, connections[0]


def test_send_goal_streams_local_ned_setpoint(monkeypatch) -> None:
    client, connection = _patched_client(monkeypatch)

    client.send_goal(Waypoint(x=2.0, y=5.0))

    assert connection.endpoint == "udpout:127.0.0.1:14541"
    assert client.endpoint == ("127.0.0.1", 14541)
    call = connection.mav.set_position_calls[0]
    assert call[3] == mavutil.mavlink.MAV_FRAME_LOCAL_NED
    assert call[4] & mavutil.mavlink.POSITION_TARGET_TYPEMASK_VX_IGNORE
    # north, east, down
    assert call[5:8] == (5.0, 2.0, -0.0)


def test_poll_without_goal_is_idle(monkeypatch) -> None:
    client, connection = _patched_client(monkeypatch)

    assert client.poll_status() == GoalStatus.IDLE
    assert connection.recv_match_calls == []


def test_poll_pending_until_position_known_then_active(monkeypatch) -> None:
    client, connection = _patched_client(monkeypatch, arrival_threshold_m=0.3)
    client.send_goal(Waypoint(x=2.0, y=5.0))

    assert client.poll_status() == GoalStatus.PENDING
    connection.queue_position(north=1.0, east=0.0)
    assert client.poll_status() == GoalStatus.ACTIVE
    assert len(connection.mav.set_position_calls) == 3
    assert all(
        call == ("LOCAL_POSITION_NED", False, None)
        for call in connection.recv_match_calls
    )


def test_poll_succeeds_within_threshold_and_clears_goal(monkeypatch) -> None:
    client, connection = _patched_client(monkeypatch, arrival_threshold_m=0.3)
    client.send_goal(Waypoint(x=2.0, y=5.0))
    connection.queue_position(north=1.0, east=0.0)
    connection.queue_position(north=4.9, east=2.1)

    assert client.poll_status() == GoalStatus.SUCCEEDED
    assert client.poll_status() == GoalStatus.IDLE


def test_positions_from_other_systems_are_ignored(monkeypatch) -> None:
    client, connection = _patched_client(monkeypatch, target_system=2)
    client.send_goal(Waypoint(x=0.0, y=0.0))
    connection.queue_position(north=0.0, east=0.0, src_system=1)

    assert client.poll_status() == GoalStatus.PENDING
    assert client.poll_status() == GoalStatus.PENDING
    assert len(connection.mav.set_position_calls) == 3


def test_wait_for_availability_matches_target_heartbeat(monkeypatch) -> None:
    client, connection = _patched_client(monkeypatch, target_system=3)
    connection.messages_by_type["HEARTBEAT"] = [_FakeMessage(1), _FakeMessage(3)]

    assert client.wait_for_availability(timeout_sec=5.0)
    assert [call[:2] for call in connection.recv_match_calls] == [
        ("HEARTBEAT", True),
        ("HEARTBEAT", True),
    ]


def test_wait_for_availability_times_out(monkeypatch) -> None:
    client, _ = _patched_client(monkeypatch)

    assert not client.wait_for_availability(timeout_sec=0.0)


def test_send_errors_are_logged_not_raised(monkeypatch) -> None:
    messages: list[str] = []
    client, connection = _patched_client(monkeypatch, logger=messages.append)

    def _boom(*args) -> None:
        raise OSError("network unreachable")

    connection.mav.set_position_target_local_ned_send = _boom
    client.send_goal(Waypoint(x=1.0, y=1.0))

    assert any("setpoint send failed" in message for message in messages)


def test_close_closes_connection(monkeypatch) -> None:
    client, connection = _patched_client(monkeypatch)

    client.close()

    assert connection.closed
