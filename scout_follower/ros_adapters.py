"""rclpy-backed implementations of the mission collaborator contracts.

- ``Nav2GoalClient``: NavigateToPose action client with pollable status.
- ``Tf2FrameRegistry``: tf2 broadcaster plus buffer/listener lookups.
- ``TwistVelocityCommander``: scout in-place rotation commands.
- ``detection_event_from_markers``: ArucoMarkers message conversion.
"""

from __future__ import annotations

import threading

from action_msgs.msg import GoalStatus as ActionGoalStatus
from geometry_msgs.msg import PoseStamped, TransformStamped, Twist
from nav2_msgs.action import NavigateToPose
from rclpy.action import ActionClient
from rclpy.node import Node
from rclpy.time import Time
from tf2_ros import Buffer, TransformBroadcaster, TransformException, TransformListener

from .errors import TransformLookupError
from .frame_registry import RigidTransform
from .mission_types import DetectionEvent, GoalStatus, MarkerObservation, Waypoint

_ACTION_STATUS_MAP: dict[int, GoalStatus] = {
    ActionGoalStatus.STATUS_UNKNOWN: GoalStatus.PENDING,
    ActionGoalStatus.STATUS_ACCEPTED: GoalStatus.ACTIVE,
    ActionGoalStatus.STATUS_EXECUTING: GoalStatus.ACTIVE,
    ActionGoalStatus.STATUS_CANCELING: GoalStatus.ACTIVE,
    ActionGoalStatus.STATUS_SUCCEEDED: GoalStatus.SUCCEEDED,
    ActionGoalStatus.STATUS_CANCELED: GoalStatus.CANCELED,
    ActionGoalStatus.STATUS_ABORTED: GoalStatus.ABORTED,
}


def _stamp_to_seconds(stamp) -> float:
    return float(stamp.sec) + float(stamp.nanosec) / 1e9


def _seconds_to_stamp(stamp_sec: float):
    return Time(nanoseconds=int(round(stamp_sec * 1e9))).to_msg()


class Nav2GoalClient:
    """Send one NavigateToPose goal at a time and expose its latest status."""

    def __init__(
        self,
        node: Node,
        action_name: str,
        *,
        map_frame: str = "map",
        callback_group=None,
    ) -> None:
        self._node = node
        self._action_name = action_name
        self._map_frame = map_frame
        self._client = ActionClient(
            node, NavigateToPose, action_name, callback_group=callback_group
        )
        self._status_lock = threading.Lock()
        self._status = GoalStatus.IDLE
        self._goal_sequence = 0

    @property
    def action_name(self) -> str:
        return self._action_name

    def wait_for_availability(self, timeout_sec: float) -> bool:
        return bool(self._client.wait_for_server(timeout_sec=timeout_sec))

    def send_goal(self, waypoint: Waypoint) -> None:
        pose = PoseStamped()
        pose.header.frame_id = self._map_frame
        pose.header.stamp = self._node.get_clock().now().to_msg()
        pose.pose.position.x = float(waypoint.x)
        pose.pose.position.y = float(waypoint.y)
        pose.pose.orientation.w = 1.0

        goal = NavigateToPose.Goal()
        goal.pose = pose

        with self._status_lock:
            self._goal_sequence += 1
            sequence = self._goal_sequence
            self._status = GoalStatus.PENDING
        future = self._client.send_goal_async(goal)
        future.add_done_callback(
            lambda done, goal_sequence=sequence: self._on_goal_response(goal_sequence, done)
        )

    def poll_status(self) -> GoalStatus:
        with self._status_lock:
            return self._status

    def _set_status(self, goal_sequence: int, status: GoalStatus) -> None:
        with self._status_lock:
            if goal_sequence == self._goal_sequence:
                self._status = status

    def _on_goal_response(self, goal_sequence: int, future) -> None:
        goal_handle = future.result()
        if goal_handle is None or not goal_handle.accepted:
            self._node.get_logger().error(f"Goal rejected by {self._action_name}")
            self._set_status(goal_sequence, GoalStatus.REJECTED)
            return
        self._set_status(goal_sequence, GoalStatus.ACTIVE)
        result_future = goal_handle.get_result_async()
        result_future.add_done_callback(
            lambda done: self._on_result(goal_sequence, done)
        )

    def _on_result(self, goal_sequence: int, future) -> None:
        result = future.result()
        status = _ACTION_STATUS_MAP.get(int(result.status), GoalStatus.ABORTED)
        self._set_status(goal_sequence, status)


class Tf2FrameRegistry:
    """Frame registry over tf2.

    Published frames are broadcast on /tf and also inserted into the local
    buffer, so a lookup on the same tick already sees them.
    """

    _AUTHORITY = "scout_follower"

    def __init__(self, node: Node) -> None:
        self._node = node
        self._broadcaster = TransformBroadcaster(node)
        self._buffer = Buffer()
        self._listener = TransformListener(self._buffer, node)

    def publish_frame(
        self,
        name: str,
        parent: str,
        transform: RigidTransform,
        stamp_sec: float,
    ) -> None:
        message = TransformStamped()
        message.header.stamp = _seconds_to_stamp(stamp_sec)
        message.header.frame_id = parent
        message.child_frame_id = name
        tx, ty, tz = transform.translation
        qx, qy, qz, qw = transform.rotation
        message.transform.translation.x = float(tx)
        message.transform.translation.y = float(ty)
        message.transform.translation.z = float(tz)
        message.transform.rotation.x = float(qx)
        message.transform.rotation.y = float(qy)
        message.transform.rotation.z = float(qz)
        message.transform.rotation.w = float(qw)
        self._broadcaster.sendTransform(message)
        self._buffer.set_transform(message, self._AUTHORITY)

    def query_transform(self, target_frame: str, source_frame: str) -> RigidTransform:
        try:
            stamped = self._buffer.lookup_transform(target_frame, source_frame, Time())
        except TransformException as error:
            raise TransformLookupError(str(error)) from error
        translation = stamped.transform.translation
        rotation = stamped.transform.rotation
        return RigidTransform(
            translation=(translation.x, translation.y, translation.z),
            rotation=(rotation.x, rotation.y, rotation.z, rotation.w),
        )


class TwistVelocityCommander:
    def __init__(self, node: Node, topic: str, queue_depth: int = 5) -> None:
        self._publisher = node.create_publisher(Twist, topic, queue_depth)

    def publish(self, linear_x: float, angular_z: float) -> None:
        message = Twist()
        message.linear.x = float(linear_x)
        message.angular.z = float(angular_z)
        self._publisher.publish(message)


def detection_event_from_markers(message) -> DetectionEvent:
    """Convert a ros2_aruco_interfaces/ArucoMarkers message.

    Marker poses are expressed in the camera frame named by the header.
    A zero header stamp leaves the event unstamped.
    """
    markers = []
    for marker_id, pose in zip(message.marker_ids, message.poses):
        markers.append(
            MarkerObservation(
                marker_id=int(marker_id),
                transform=RigidTransform(
                    translation=(pose.position.x, pose.position.y, pose.position.z),
                    rotation=(
                        pose.orientation.x,
                        pose.orientation.y,
                        pose.orientation.z,
                        pose.orientation.w,
                    ),
                ),
            )
        )
    stamp_sec = _stamp_to_seconds(message.header.stamp)
    return DetectionEvent(
        markers=tuple(markers),
        stamp_sec=stamp_sec if stamp_sec > 0.0 else None,
    )
