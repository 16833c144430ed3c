"""Scout/follower mission ROS 2 package setup configuration.

Defines package metadata, entry points, and installation requirements for
the two-agent marker relay mission: a scout robot explores scan waypoints
and localizes fiducial markers, a follower robot then visits every
discovered location and returns home.
"""

from glob import glob

from setuptools import setup


package_name = "scout_follower"


setup(
    name=package_name,
    version="0.1.0",
    packages=[package_name],
    data_files=[
        ("share/ament_index/resource_index/packages", [f"resource/{package_name}"]),
        (f"share/{package_name}", ["package.xml"]),
        (f"share/{package_name}/launch", glob("launch/*.launch.py")),
        (f"share/{package_name}/config", glob("config/*.yaml")),
    ],
    install_requires=["setuptools", "pymavlink", "numpy"],
    extras_require={"test": ["pytest"]},
    zip_safe=True,
    maintainer="Scout Follower Developers",
    maintainer_email="dev@scout-follower.local",
    description="Scout/follower mission coordination for marker discovery and relay.",
    license="proprietary",
    tests_require=["pytest"],
    entry_points={
        "console_scripts": [
            "mission = scout_follower.mission_node:main",
            "scout_follower_sim = scout_follower.sim_harness:main",
        ],
    },
)
