"""Tests for bounded status polling."""

from __future__ import annotations

import threading

import pytest
from notebook_mock import FakeClock, MockControlPlane

from notebook_controller.client import NotebookNotFoundError, RemoteError
from notebook_controller.models import LifecycleStatus, NotebookSpec
from notebook_controller.poller import (
    StatusPoller,
    UnexpectedStatusError,
    WaitCancelledError,
    WaitTimeoutError,
)

S = LifecycleStatus


def make_poller(plane: MockControlPlane, clock: FakeClock, interval: float = 10) -> StatusPoller:
    return StatusPoller(plane, interval_seconds=interval, clock=clock.monotonic, sleep=clock.sleep)


class TestWaitFor:
    """Tests for StatusPoller.wait_for."""

    def test_returns_when_status_accepted(
        self, plane: MockControlPlane, clock: FakeClock, spec: NotebookSpec
    ) -> None:
        """Test that polling stops at the first accepted status."""
        plane.add_instance(spec, S.PENDING, queued=[S.PENDING, S.PENDING, S.IN_SERVICE])

        state = make_poller(plane, clock).wait_for("nb-1", {S.IN_SERVICE}, timeout_seconds=600)

        assert state.status is S.IN_SERVICE
        assert plane.describe_count == 3
        assert clock.sleeps == [10, 10]

    def test_uses_fixed_interval(
        self, plane: MockControlPlane, clock: FakeClock, spec: NotebookSpec
    ) -> None:
        """Test that the delay between polls does not grow."""
        plane.add_instance(spec, S.PENDING, queued=[S.PENDING] * 5 + [S.IN_SERVICE])

        make_poller(plane, clock, interval=7).wait_for("nb-1", {S.IN_SERVICE}, timeout_seconds=600)

        assert clock.sleeps == [7] * 5

    def test_times_out(self, plane: MockControlPlane, clock: FakeClock, spec: NotebookSpec) -> None:
        """Test that a status that never arrives raises WaitTimeoutError."""
        plane.add_instance(spec, S.STOPPING)

        with pytest.raises(WaitTimeoutError) as exc_info:
            make_poller(plane, clock).wait_for("nb-1", {S.STOPPED}, timeout_seconds=60)

        assert exc_info.value.last_status is S.STOPPING
        assert exc_info.value.name == "nb-1"
        assert clock.elapsed == pytest.approx(60)

    def test_last_sleep_is_clamped_to_deadline(
        self, plane: MockControlPlane, clock: FakeClock, spec: NotebookSpec
    ) -> None:
        """Test that the poller never sleeps past its deadline."""
        plane.add_instance(spec, S.STOPPING)

        with pytest.raises(WaitTimeoutError):
            make_poller(plane, clock).wait_for("nb-1", {S.STOPPED}, timeout_seconds=25)

        assert clock.sleeps == [10, 10, 5]

    def test_not_found_while_waiting_for_presence(
        self, plane: MockControlPlane, clock: FakeClock
    ) -> None:
        """Test that absence ends a wait for presence immediately."""
        with pytest.raises(NotebookNotFoundError):
            make_poller(plane, clock).wait_for("nb-1", {S.IN_SERVICE}, timeout_seconds=600)

        assert plane.describe_count == 1
        assert clock.sleeps == []

    def test_remote_error_is_not_retried(
        self, plane: MockControlPlane, clock: FakeClock, spec: NotebookSpec
    ) -> None:
        """Test that a describe failure other than not found fails the wait."""
        plane.add_instance(spec, S.PENDING)
        plane.fail("describe", RemoteError("throttled", status_code=429))

        with pytest.raises(RemoteError):
            make_poller(plane, clock).wait_for("nb-1", {S.IN_SERVICE}, timeout_seconds=600)

        assert plane.describe_count == 1

    def test_fail_status_raises(
        self, plane: MockControlPlane, clock: FakeClock, spec: NotebookSpec
    ) -> None:
        """Test that a fail_on status ends the wait with UnexpectedStatusError."""
        plane.add_instance(spec, S.PENDING, queued=[S.PENDING, S.FAILED])

        with pytest.raises(UnexpectedStatusError) as exc_info:
            make_poller(plane, clock).wait_for(
                "nb-1", {S.IN_SERVICE}, timeout_seconds=600, fail_on={S.FAILED}
            )

        assert exc_info.value.state.status is S.FAILED

    def test_failed_without_fail_on_keeps_polling(
        self, plane: MockControlPlane, clock: FakeClock, spec: NotebookSpec
    ) -> None:
        """Test that statuses outside both sets are treated as still pending."""
        plane.add_instance(spec, S.FAILED)

        with pytest.raises(WaitTimeoutError):
            make_poller(plane, clock).wait_for("nb-1", {S.IN_SERVICE}, timeout_seconds=30)


class TestWaitForAbsence:
    """Tests for waiting until an instance is gone."""

    def test_empty_accept_set_means_absence(
        self, plane: MockControlPlane, clock: FakeClock, spec: NotebookSpec
    ) -> None:
        """Test that an empty accept set succeeds exactly on not found."""
        plane.add_instance(spec, S.DELETING, queued=[S.DELETING, S.ABSENT])

        state = make_poller(plane, clock).wait_for("nb-1", set(), timeout_seconds=600)

        assert state.status is S.ABSENT
        assert not state.exists
        assert plane.describe_count == 2

    def test_absence_never_reached_times_out(
        self, plane: MockControlPlane, clock: FakeClock, spec: NotebookSpec
    ) -> None:
        """Test that an instance that never disappears times out."""
        plane.add_instance(spec, S.DELETING)

        with pytest.raises(WaitTimeoutError) as exc_info:
            make_poller(plane, clock).wait_for_absence("nb-1", timeout_seconds=600)

        assert exc_info.value.last_status is S.DELETING

    def test_already_absent(self, plane: MockControlPlane, clock: FakeClock) -> None:
        """Test that a missing instance satisfies the wait on the first poll."""
        state = make_poller(plane, clock).wait_for_absence("nb-1")

        assert state.status is S.ABSENT
        assert clock.sleeps == []


class TestCancellation:
    """Tests for cancel tokens."""

    def test_cancel_before_first_poll(self, plane: MockControlPlane, clock: FakeClock) -> None:
        """Test that a set token stops the wait before any describe."""
        cancel = threading.Event()
        cancel.set()

        with pytest.raises(WaitCancelledError):
            make_poller(plane, clock).wait_for("nb-1", {S.IN_SERVICE}, cancel=cancel)

        assert plane.describe_count == 0

    def test_cancel_during_sleep(
        self, plane: MockControlPlane, clock: FakeClock, spec: NotebookSpec
    ) -> None:
        """Test that a token set while sleeping stops the wait after that sleep."""
        plane.add_instance(spec, S.PENDING)
        cancel = threading.Event()

        def sleep_then_cancel(seconds: float) -> None:
            clock.sleep(seconds)
            cancel.set()

        poller = StatusPoller(plane, interval_seconds=10, clock=clock.monotonic, sleep=sleep_then_cancel)

        with pytest.raises(WaitCancelledError):
            poller.wait_for("nb-1", {S.IN_SERVICE}, timeout_seconds=600, cancel=cancel)

        assert plane.describe_count == 1

    def test_cancel_token_interrupts_real_wait(
        self, plane: MockControlPlane, spec: NotebookSpec
    ) -> None:
        """Test that the default sleep wakes up when the token is set."""
        plane.add_instance(spec, S.PENDING)
        cancel = threading.Event()
        timer = threading.Timer(0.05, cancel.set)
        timer.start()
        try:
            with pytest.raises(WaitCancelledError):
                StatusPoller(plane, interval_seconds=30).wait_for(
                    "nb-1", {S.IN_SERVICE}, timeout_seconds=600, cancel=cancel
                )
        finally:
            timer.cancel()
