"""Pytest configuration and fixtures."""

import sys
from pathlib import Path

import pytest

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

# Add tests to path for notebook_mock imports
tests_path = Path(__file__).parent
sys.path.insert(0, str(tests_path))

from notebook_controller.models import NotebookSpec  # noqa: E402
from notebook_mock import FakeClock, MockControlPlane  # noqa: E402


@pytest.fixture
def plane() -> MockControlPlane:
    """Empty in-memory control plane."""
    return MockControlPlane()


@pytest.fixture
def clock() -> FakeClock:
    """Fake monotonic clock advanced by poller sleeps."""
    return FakeClock()


@pytest.fixture
def spec() -> NotebookSpec:
    """Minimal desired configuration for notebook instance nb-1."""
    return NotebookSpec(
        name="nb-1",
        role_arn="/subscriptions/0000/identities/nb-role",
        instance_type="small",
    )
