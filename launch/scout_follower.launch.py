"""Launch the scout/follower mission node with its default parameter file."""

from pathlib import Path

from launch import LaunchDescription
from launch.actions import DeclareLaunchArgument
from launch.substitutions import LaunchConfiguration
from launch_ros.actions import Node


def generate_launch_description() -> LaunchDescription:
    package_root = Path(__file__).resolve().parents[1]
    params_default = str(package_root / 'config' / 'scout_follower.yaml')

    params_file = LaunchConfiguration('params_file')
    use_sim_time = LaunchConfiguration('use_sim_time')
    navigation_backend = LaunchConfiguration('navigation_backend')

    mission_node = Node(
        package='scout_follower',
        executable='mission',
        name='scout_follower_mission',
        output='screen',
        parameters=[
            params_file,
            {
                'use_sim_time': use_sim_time,
                'navigation_backend': navigation_backend,
            },
        ],
    )

    return LaunchDescription([
        DeclareLaunchArgument('params_file', default_value=params_default),
        DeclareLaunchArgument('use_sim_time', default_value='true'),
        DeclareLaunchArgument('navigation_backend', default_value='nav2'),
        mission_node,
    ])
