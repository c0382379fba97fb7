"""Bounded status polling for lifecycle transitions.

The poller calls describe() at a fixed interval until the observed status is
one of the accepted statuses, the instance disappears, the deadline passes,
or a caller-supplied cancel token is set. Errors other than "not found" are
never retried: a transient-looking failure is still a failure.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterable

from .client import NotebookNotFoundError, ResourceClient
from .config import DEFAULT_POLL_INTERVAL_SECONDS, DEFAULT_WAIT_TIMEOUT_SECONDS
from .models import LifecycleStatus, ObservedState

logger = logging.getLogger(__name__)


class WaitTimeoutError(Exception):
    """Raised when the accepted status is not reached before the deadline."""

    def __init__(
        self,
        name: str,
        accept: Iterable[LifecycleStatus],
        timeout_seconds: float,
        last_status: LifecycleStatus | None = None,
    ) -> None:
        wanted = ", ".join(sorted(s.value for s in accept))
        super().__init__(
            f"Timed out after {timeout_seconds:g}s waiting for notebook instance "
            f"'{name}' to be {wanted} (last status: "
            f"{last_status.value if last_status else 'unknown'})"
        )
        self.name = name
        self.timeout_seconds = timeout_seconds
        self.last_status = last_status


class WaitCancelledError(Exception):
    """Raised when the cancel token is set while waiting."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Wait for notebook instance '{name}' was cancelled")
        self.name = name


class UnexpectedStatusError(Exception):
    """Raised when the instance settles in a status the caller cannot accept."""

    def __init__(self, state: ObservedState, accept: Iterable[LifecycleStatus]) -> None:
        wanted = ", ".join(sorted(s.value for s in accept))
        super().__init__(
            f"Notebook instance '{state.name}' reached {state.status.value} "
            f"while waiting for {wanted}"
        )
        self.state = state


class StatusPoller:
    """Wait until the observed status satisfies a predicate, or time out.

    An empty accept set means "wait for absence". When the instance is
    reported as not found while waiting for any other status, the poller
    raises NotebookNotFoundError immediately since absence never turns
    back into presence.
    """

    def __init__(
        self,
        client: ResourceClient,
        *,
        interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        """Initialize the poller.

        Args:
            client: Control plane used for describe() calls.
            interval_seconds: Fixed delay between two describe() calls.
            clock: Monotonic clock, replaceable in tests.
            sleep: Optional sleep function, replaceable in tests. When unset
                the poller sleeps on the cancel token so a cancel wakes it.
        """
        self._client = client
        self._interval = interval_seconds
        self._clock = clock
        self._sleep = sleep

    def wait_for(
        self,
        name: str,
        accept: Iterable[LifecycleStatus],
        *,
        timeout_seconds: float = DEFAULT_WAIT_TIMEOUT_SECONDS,
        fail_on: Iterable[LifecycleStatus] = (),
        cancel: threading.Event | None = None,
    ) -> ObservedState:
        """Poll until the instance reaches one of the accepted statuses.

        Args:
            name: Instance to observe.
            accept: Statuses that end the wait successfully. Empty means absence.
            timeout_seconds: Deadline measured from the start of this call.
            fail_on: Statuses that end the wait with UnexpectedStatusError.
            cancel: Optional token; setting it interrupts the wait.

        Returns:
            The snapshot that satisfied the wait.

        Raises:
            NotebookNotFoundError: Instance disappeared while waiting for presence.
            UnexpectedStatusError: A fail_on status was observed.
            WaitTimeoutError: The deadline passed first.
            WaitCancelledError: The cancel token was set.
            RemoteError: describe() failed for any other reason.
        """
        accepted = frozenset(accept) or frozenset({LifecycleStatus.ABSENT})
        failing = frozenset(fail_on) - accepted
        deadline = self._clock() + timeout_seconds
        last_status: LifecycleStatus | None = None

        while True:
            if cancel is not None and cancel.is_set():
                raise WaitCancelledError(name)

            try:
                state = self._client.describe(name)
            except NotebookNotFoundError:
                if LifecycleStatus.ABSENT in accepted:
                    logger.debug(f"Notebook instance '{name}' not found", extra={"notebook": name})
                    return ObservedState.absent(name)
                raise

            last_status = state.status
            if state.status in accepted:
                logger.debug(
                    f"Notebook instance '{name}' is {state.status.value}",
                    extra={"notebook": name, "status": state.status.value},
                )
                return state
            if state.status in failing:
                raise UnexpectedStatusError(state, accepted)

            remaining = deadline - self._clock()
            if remaining <= 0:
                raise WaitTimeoutError(name, accepted, timeout_seconds, last_status)

            logger.debug(
                f"Waiting for notebook instance '{name}' "
                f"({state.status.value}, {remaining:.0f}s left)",
                extra={"notebook": name, "status": state.status.value},
            )
            self._pause(min(self._interval, remaining), name, cancel)

    def wait_for_absence(
        self,
        name: str,
        *,
        timeout_seconds: float = DEFAULT_WAIT_TIMEOUT_SECONDS,
        cancel: threading.Event | None = None,
    ) -> ObservedState:
        """Poll until describe() reports the instance as not found."""
        return self.wait_for(name, (), timeout_seconds=timeout_seconds, cancel=cancel)

    def _pause(self, delay: float, name: str, cancel: threading.Event | None) -> None:
        if self._sleep is not None:
            self._sleep(delay)
        elif cancel is not None:
            cancel.wait(delay)
        else:
            time.sleep(delay)

        if cancel is not None and cancel.is_set():
            raise WaitCancelledError(name)
