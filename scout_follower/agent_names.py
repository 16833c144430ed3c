"""Agent namespace normalization for action and topic names.

The scout and follower run under their own ROS namespaces. Parameters coming
from launch files, YAML and the command line spell them inconsistently
("Explorer", "/explorer/", "FOLLOWER-1"); every name is normalized here before
it is joined into an action or topic path.
"""

from __future__ import annotations

import re


def normalize_agent_namespace(value: str) -> str:
    """Normalize an agent namespace to ``lower_snake`` without slashes.

    Examples:
        >>> normalize_agent_namespace(" /Explorer/ ")
        'explorer'
        >>> normalize_agent_namespace("FOLLOWER-1")
        'follower_1'
        >>> normalize_agent_namespace("scout2")
        'scout_2'
        >>> normalize_agent_namespace("//")
        ''
    """
    normalized = value.strip().strip("/").lower().replace("-", "_")
    if not normalized:
        return ""
    normalized = re.sub(r"([a-z]+)(\d+)", r"\1_\2", normalized)
    normalized = re.sub(r"_+", "_", normalized).strip("_")
    return normalized


def agent_endpoint(namespace: str, leaf: str) -> str:
    """Join an agent namespace and a leaf name into an absolute ROS name.

    Examples:
        >>> agent_endpoint("Explorer", "navigate_to_pose")
        '/explorer/navigate_to_pose'
        >>> agent_endpoint("", "/cmd_vel")
        '/cmd_vel'
    """
    token = normalize_agent_namespace(namespace)
    leaf_clean = leaf.strip().strip("/")
    if not leaf_clean:
        raise ValueError("leaf name must not be empty")
    if not token:
        return f"/{leaf_clean}"
    return f"/{token}/{leaf_clean}"
