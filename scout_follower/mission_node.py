import json
import time
from typing import Final

import rclpy
from rclpy.callback_groups import MutuallyExclusiveCallbackGroup
from rclpy.node import Node
from rclpy.parameter import Parameter
from ros2_aruco_interfaces.msg import ArucoMarkers
from std_msgs.msg import String

from .agent_names import agent_endpoint, normalize_agent_namespace
from .coordinator import MissionCoordinator, build_coordinator, wait_for_navigation
from .errors import MissionConfigError
from .frame_relay import (
    DEFAULT_CAMERA_FRAME,
    DEFAULT_MARKER_FRAME,
    DEFAULT_STANDOFF_FRAME,
    DEFAULT_STANDOFF_OFFSET_M,
)
from .mavlink_goal_client import MavlinkGoalClient
from .mission_config import (
    MissionConfig,
    optional_attempts,
    parse_waypoint,
    parse_waypoints,
)
from .mission_types import MissionPhase
from .ros_adapters import (
    Nav2GoalClient,
    Tf2FrameRegistry,
    TwistVelocityCommander,
    detection_event_from_markers,
)
from .sequencers import NavigationClient


class MissionNode(Node):
    """Two-agent scout/follower mission orchestrator.

    The scout visits the configured scan waypoints and rotates in place at
    each until a marker is localized into the map frame; the follower then
    visits every discovered marker location in identity order and finishes
    at its home position. Phases: EXPLORING -> FOLLOWING -> DONE (or ABORTED
    when a navigation goal keeps failing).
    """

    _BACKEND_NAV2: Final[str] = "nav2"
    _BACKEND_MAVLINK: Final[str] = "mavlink"
    _SUPPORTED_BACKENDS: Final[set[str]] = {_BACKEND_NAV2, _BACKEND_MAVLINK}

    def __init__(self, *, parameter_overrides: list[Parameter] | None = None) -> None:
        super().__init__("scout_follower_mission", parameter_overrides=parameter_overrides)

        queue_depth = int(self.declare_parameter("queue_depth", 5).value)
        self._status_period = float(
            self.declare_parameter("status_publish_period_sec", 1.0).value
        )
        self._server_wait_timeout_sec = float(
            self.declare_parameter("server_wait_timeout_sec", 5.0).value
        )
        self._scout_namespace = normalize_agent_namespace(
            str(self.declare_parameter("scout_namespace", "explorer").value)
        )
        self._follower_namespace = normalize_agent_namespace(
            str(self.declare_parameter("follower_namespace", "follower").value)
        )
        self._detection_topic = str(
            self.declare_parameter("detection_topic", "/aruco_markers").value
        )
        self._navigation_backend = str(
            self.declare_parameter("navigation_backend", self._BACKEND_NAV2).value
        ).strip().lower()
        if self._navigation_backend not in self._SUPPORTED_BACKENDS:
            self.get_logger().warning(
                "Invalid navigation_backend '%s'; falling back to '%s'"
                % (self._navigation_backend, self._BACKEND_NAV2)
            )
            self._navigation_backend = self._BACKEND_NAV2

        self.declare_parameter("mavlink_arrival_threshold_m", 0.3)
        self._config = self._load_mission_config()

        self._serialized_callback_group = MutuallyExclusiveCallbackGroup()
        self._phase_pub = self.create_publisher(String, "/mission/phase", queue_depth)
        self._status_pub = self.create_publisher(
            String, "/mission/discovered_locations", queue_depth
        )
        self._registry = Tf2FrameRegistry(self)
        self._velocity = TwistVelocityCommander(
            self, agent_endpoint(self._scout_namespace, "cmd_vel"), queue_depth
        )
        self._scout_client = self._build_navigation_client(self._scout_namespace, "scout")
        self._follower_client = self._build_navigation_client(
            self._follower_namespace, "follower"
        )
        self._coordinator: MissionCoordinator = build_coordinator(
            self._config,
            scout_client=self._scout_client,
            follower_client=self._follower_client,
            velocity=self._velocity,
            registry=self._registry,
            logger=self.get_logger(),
            sleep=time.sleep,
            clock=self._now_seconds,
            on_phase_change=self._on_phase_change,
        )

        self._detection_subscription = self.create_subscription(
            ArucoMarkers,
            self._detection_topic,
            self._handle_markers,
            queue_depth,
            callback_group=self._serialized_callback_group,
        )
        self._control_timer = None
        self._status_timer = None

        self._publish_phase()
        self.get_logger().info(
            "Mission node ready: "
            f"scan_waypoints={len(self._config.scan_waypoints)} "
            f"backend={self._navigation_backend} "
            f"scout={self._scout_namespace} follower={self._follower_namespace} "
            f"rate={self._config.control_rate_hz:.1f}Hz detections={self._detection_topic}"
        )

    @property
    def coordinator(self) -> MissionCoordinator:
        return self._coordinator

    @property
    def mission_finished(self) -> bool:
        return self._coordinator.mission.shutdown_requested

    def _now_seconds(self) -> float:
        return self.get_clock().now().nanoseconds / 1e9

    def _load_mission_config(self) -> MissionConfig:
        scan_waypoints = parse_waypoints(
            str(
                self.declare_parameter(
                    "scan_waypoints_json", "[[1.0, 1.0], [2.0, 2.0], [3.0, 3.0], [4.0, 4.0]]"
                ).value
            ),
            "scan_waypoints_json",
        )
        scout_home = parse_waypoint(
            list(self.declare_parameter("scout_home", [-4.0, 2.5]).value), "scout_home"
        )
        follower_home = parse_waypoint(
            list(self.declare_parameter("follower_home", [-4.0, 3.5]).value), "follower_home"
        )
        config = MissionConfig(
            scan_waypoints=scan_waypoints,
            scout_home=scout_home,
            follower_home=follower_home,
            return_scout_home=bool(self.declare_parameter("return_scout_home", True).value),
            control_rate_hz=float(self.declare_parameter("control_rate_hz", 10.0).value),
            scan_angular_speed=float(self.declare_parameter("scan_angular_speed", 0.1).value),
            localization_retry_interval_sec=float(
                self.declare_parameter("localization_retry_interval_sec", 1.0).value
            ),
            localization_max_attempts=optional_attempts(
                self.declare_parameter("localization_max_attempts", 0).value
            ),
            max_goal_retries=int(self.declare_parameter("max_goal_retries", 3).value),
            detection_queue_depth=int(self.declare_parameter("detection_queue_depth", 5).value),
            map_frame=str(self.declare_parameter("map_frame", "map").value),
            camera_frame=str(self.declare_parameter("camera_frame", DEFAULT_CAMERA_FRAME).value),
            marker_frame=str(self.declare_parameter("marker_frame", DEFAULT_MARKER_FRAME).value),
            standoff_frame=str(
                self.declare_parameter("standoff_frame", DEFAULT_STANDOFF_FRAME).value
            ),
            standoff_offset_m=float(
                self.declare_parameter("standoff_offset_m", DEFAULT_STANDOFF_OFFSET_M).value
            ),
            loop_budget_ms=float(self.declare_parameter("loop_budget_ms", 20.0).value),
        )
        return config.validate()

    def _build_navigation_client(self, namespace: str, role: str) -> NavigationClient:
        if self._navigation_backend == self._BACKEND_MAVLINK:
            default_port = 14540 if role == "scout" else 14541
            host = str(self.declare_parameter(f"{role}_mavlink_host", "127.0.0.1").value)
            port = int(self.declare_parameter(f"{role}_mavlink_port", default_port).value)
            target_system = int(
                self.declare_parameter(f"{role}_mavlink_target_system", 1).value
            )
            threshold_m = float(self.get_parameter("mavlink_arrival_threshold_m").value)
            client = MavlinkGoalClient(
                host=host,
                port=port,
                target_system=target_system,
                arrival_threshold_m=threshold_m,
                logger=lambda message: self.get_logger().info(message),
            )
            endpoint_host, endpoint_port = client.endpoint
            self.get_logger().info(
                "MAVLink %s backend for %s at %s:%d (target_system=%d)"
                % (role, namespace, endpoint_host, endpoint_port, target_system)
            )
            return client
        return Nav2GoalClient(
            self,
            agent_endpoint(namespace, "navigate_to_pose"),
            map_frame=self._config.map_frame,
        )

    def wait_for_navigation_servers(self) -> bool:
        for agent, client in (
            (self._scout_namespace, self._scout_client),
            (self._follower_namespace, self._follower_client),
        ):
            if not wait_for_navigation(
                client,
                agent,
                timeout_sec=self._server_wait_timeout_sec,
                should_continue=rclpy.ok,
                logger=self.get_logger(),
            ):
                return False
        return True

    def start(self) -> None:
        if self._control_timer is not None:
            return
        self._control_timer = self.create_timer(
            1.0 / self._config.control_rate_hz,
            self._control_loop,
            callback_group=self._serialized_callback_group,
        )
        self._status_timer = self.create_timer(
            self._status_period,
            self._publish_status,
            callback_group=self._serialized_callback_group,
        )
        self.get_logger().info("Mission started")

    def destroy_node(self) -> bool:
        for client in (self._scout_client, self._follower_client):
            if isinstance(client, MavlinkGoalClient):
                client.close()
        return super().destroy_node()

    def _handle_markers(self, message: ArucoMarkers) -> None:
        self._coordinator.enqueue_detection(detection_event_from_markers(message))

    def _control_loop(self) -> None:
        if self._coordinator.is_finished:
            return
        self._coordinator.tick()
        if self._coordinator.is_finished:
            self._publish_status()
            if self._control_timer is not None:
                self._control_timer.cancel()

    def _on_phase_change(self, previous: MissionPhase, current: MissionPhase) -> None:
        self._publish_phase()

    def _publish_phase(self) -> None:
        message = String()
        message.data = self._coordinator.phase.value
        self._phase_pub.publish(message)

    def _publish_status(self) -> None:
        message = String()
        message.data = json.dumps(self._coordinator.status_payload())
        self._status_pub.publish(message)


def main(args=None) -> None:
    rclpy.init(args=args)
    try:
        node = MissionNode()
    except MissionConfigError as error:
        rclpy.logging.get_logger("scout_follower_mission").error(
            f"Invalid mission configuration: {error}"
        )
        rclpy.shutdown()
        raise SystemExit(2) from error

    try:
        if node.wait_for_navigation_servers():
            node.start()
            while rclpy.ok() and not node.mission_finished:
                rclpy.spin_once(node, timeout_sec=0.1)
    except KeyboardInterrupt:
        node.get_logger().info("Mission node shutdown requested.")
    finally:
        node.destroy_node()
        if rclpy.ok():
            rclpy.shutdown()


if __name__ == "__main__":
    main()
