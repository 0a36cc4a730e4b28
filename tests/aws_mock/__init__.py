"""In-memory fakes for the cloud and cluster collaborators.

Usage:
    from aws_mock import MockHookStore, MockControlPlaneSource, control_plane

    store = MockHookStore()
    store.seed("asg-1", [hook])
    store.fail_on("put", "asg-1", "hook-b", message="Throttling")

    source = MockControlPlaneSource()
    source.add(control_plane("ns1", "cp1").with_version("v1.26.2").build())
"""

from .control_plane import ControlPlaneBuilder, MockControlPlaneSource, control_plane
from .hooks import MockHookStore, StoreCall

__all__ = [
    "ControlPlaneBuilder",
    "MockControlPlaneSource",
    "MockHookStore",
    "StoreCall",
    "control_plane",
]
