"""Tests for the nbctl command line interface."""

from __future__ import annotations

import os
from collections.abc import Iterator
from pathlib import Path
from unittest.mock import patch

import pytest
from click.testing import CliRunner
from notebook_mock import FakeClock, MockControlPlane

from notebook_controller.cli import SECURITY_VIOLATION_EXIT_CODE, CliState, cli
from notebook_controller.client import RemoteError
from notebook_controller.lifecycle import LifecycleOrchestrator
from notebook_controller.models import LifecycleStatus, NotebookSpec
from notebook_controller.poller import StatusPoller
from notebook_controller.reconciler import NotebookReconciler
from notebook_controller.tags import TagSynchronizer

S = LifecycleStatus

SPEC_YAML = """\
name: nb-1
roleArn: /subscriptions/0000/identities/nb-role
instanceType: {instance_type}
"""

VALID_ENV = {
    "AZURE_SUBSCRIPTION_ID": "12345678-1234-1234-1234-123456789012",
    "AZURE_RESOURCE_GROUP": "rg-ml",
    "AZURE_ML_WORKSPACE": "ws-1",
    "AZURE_LOCATION": "westeurope",
}


@pytest.fixture(autouse=True)
def no_logging_setup() -> Iterator[None]:
    """Keep the CLI from installing handlers on the captured streams."""
    with patch("notebook_controller.cli.setup_logging"):
        yield


@pytest.fixture
def state(plane: MockControlPlane, clock: FakeClock) -> CliState:
    poller = StatusPoller(plane, interval_seconds=10, clock=clock.monotonic, sleep=clock.sleep)
    reconciler = NotebookReconciler(plane, poller, timeout_seconds=600)
    return CliState(orchestrator=LifecycleOrchestrator(plane, reconciler, TagSynchronizer(plane)))


def write_spec(tmp_path: Path, instance_type: str = "small") -> str:
    path = tmp_path / "notebook.yaml"
    path.write_text(SPEC_YAML.format(instance_type=instance_type), encoding="utf-8")
    return str(path)


class TestCommands:
    """Tests for the lifecycle commands against the in-memory control plane."""

    def test_create(self, state: CliState, plane: MockControlPlane, tmp_path: Path) -> None:
        result = CliRunner().invoke(cli, ["create", write_spec(tmp_path)], obj=state)

        assert result.exit_code == 0, result.output
        assert '"status": "InService"' in result.output
        assert plane.operations() == ["create"]

    def test_read_existing(
        self, state: CliState, plane: MockControlPlane, spec: NotebookSpec
    ) -> None:
        plane.add_instance(spec, S.STOPPED)

        result = CliRunner().invoke(cli, ["read", "nb-1"], obj=state)

        assert result.exit_code == 0, result.output
        assert '"status": "Stopped"' in result.output
        assert '"instanceType": "small"' in result.output

    def test_read_missing_reports_absent(self, state: CliState) -> None:
        """Test that a missing instance is not an error."""
        result = CliRunner().invoke(cli, ["read", "nb-1"], obj=state)

        assert result.exit_code == 0, result.output
        assert '"status": "Absent"' in result.output

    def test_update(
        self, state: CliState, plane: MockControlPlane, spec: NotebookSpec, tmp_path: Path
    ) -> None:
        plane.add_instance(spec, S.IN_SERVICE)

        result = CliRunner().invoke(cli, ["update", write_spec(tmp_path, "large")], obj=state)

        assert result.exit_code == 0, result.output
        assert '"instanceType": "large"' in result.output
        assert plane.operations() == ["stop", "update", "start"]

    def test_delete(self, state: CliState, plane: MockControlPlane, spec: NotebookSpec) -> None:
        plane.add_instance(spec, S.IN_SERVICE)

        result = CliRunner().invoke(cli, ["delete", "nb-1"], obj=state)

        assert result.exit_code == 0, result.output
        assert '"status": "Absent"' in result.output
        assert plane.get_instance("nb-1") is None

    def test_apply_creates(
        self, state: CliState, plane: MockControlPlane, tmp_path: Path
    ) -> None:
        result = CliRunner().invoke(cli, ["apply", write_spec(tmp_path)], obj=state)

        assert result.exit_code == 0, result.output
        assert plane.operations() == ["create"]

    def test_operation_error_exits_nonzero(
        self, state: CliState, plane: MockControlPlane, tmp_path: Path
    ) -> None:
        plane.fail("create", RemoteError("quota exceeded", status_code=400))

        result = CliRunner().invoke(cli, ["create", write_spec(tmp_path)], obj=state)

        assert result.exit_code == 1
        assert "create of notebook instance 'nb-1' failed" in result.output

    def test_invalid_spec_file(self, state: CliState, tmp_path: Path) -> None:
        path = tmp_path / "bad.yaml"
        path.write_text("name: nb-1\n", encoding="utf-8")

        result = CliRunner().invoke(cli, ["create", str(path)], obj=state)

        assert result.exit_code == 1
        assert "Validation failed" in result.output


class TestEnvironment:
    """Tests for building the orchestrator from the environment."""

    def test_missing_configuration(self) -> None:
        with patch.dict(os.environ, {}, clear=True):
            result = CliRunner().invoke(cli, ["read", "nb-1"], obj=CliState())

        assert result.exit_code == 1
        assert "AZURE_SUBSCRIPTION_ID is required" in result.output

    def test_secret_in_environment_is_security_violation(self) -> None:
        env = {**VALID_ENV, "AZURE_CLIENT_SECRET": "secret"}
        with patch.dict(os.environ, env, clear=True):
            result = CliRunner().invoke(cli, ["read", "nb-1"], obj=CliState())

        assert result.exit_code == SECURITY_VIOLATION_EXIT_CODE
        assert "SECURITY VIOLATION" in result.output

    def test_builds_orchestrator_once(self, state: CliState) -> None:
        orchestrator = state.orchestrator
        with (
            patch.dict(os.environ, VALID_ENV, clear=True),
            patch("notebook_controller.cli.build_orchestrator", return_value=orchestrator) as build,
        ):
            result = CliRunner().invoke(cli, ["read", "nb-1"], obj=CliState())

        assert result.exit_code == 0, result.output
        build.assert_called_once()


class TestLogging:
    """Tests for logging setup from the command line."""

    def test_verbose_flag_enables_debug(self, state: CliState) -> None:
        with patch("notebook_controller.cli.setup_logging") as setup:
            CliRunner().invoke(cli, ["--verbose", "read", "nb-1"], obj=state)

        setup.assert_called_once_with(verbose=True)
