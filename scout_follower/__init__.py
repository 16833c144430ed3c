"""Scout/follower mission ROS 2 package.

A scout robot visits a list of scan waypoints and rotates in place at each
until a fiducial marker is seen and localized into the map frame. Once the
scout is home, a follower robot visits every discovered marker location in
identity order and finishes at its own home position.

Modules:
    agent_names: Namespace normalization for per-agent action and topic names.
    coordinator: Fixed-rate mission tick driving both sequencers.
    errors: Exception types raised by the mission core.
    frame_registry: Rigid transforms and the in-process frame tree.
    frame_relay: Marker and standoff frame publication from detections.
    localizer: Standoff frame lookup in the map frame with retries.
    location_table: Write-once table of discovered marker locations.
    mavlink_goal_client: MAVLink position-target navigation backend.
    mission_config: Parameter parsing and validation.
    mission_node: rclpy node hosting the coordinator.
    mission_types: Shared data types and phase rules.
    ros_adapters: Nav2, tf2 and Twist implementations of the agent contracts.
    sequencers: Scout and follower goal state machines.
    sim_harness: Offline mission run against simulated agents.
"""
