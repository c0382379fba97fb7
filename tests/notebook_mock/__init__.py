"""In-memory notebook control plane for testing.

Key Features:
- Scripted status transitions, advanced one step per describe() call
- Ordered log of every mutating call for choreography assertions
- Error injection per operation
- Fake monotonic clock so timeout tests never sleep

Usage:
    from notebook_mock import FakeClock, MockControlPlane

    plane = MockControlPlane()
    clock = FakeClock()
    poller = StatusPoller(plane, interval_seconds=10, clock=clock.monotonic, sleep=clock.sleep)
"""

from .clock import FakeClock
from .control_plane import MockControlPlane, MockInstance

__all__ = [
    "FakeClock",
    "MockControlPlane",
    "MockInstance",
]
