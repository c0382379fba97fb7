"""Reconciliation state machine for a single notebook instance.

Lifecycle paths driven here:
1. Create: Pending -> InService (best-effort wait, a slow start is not fatal)
2. Update: InService -> Stopping -> Stopped -> Updating -> Stopped [-> InService]
3. Delete: InService|Stopped -> Stopping -> Stopped -> Deleting -> Absent

Restart-class fields can only be changed while the instance is stopped, so
an update stops the instance, applies the change and starts it again only if
it was running before. Every wait is bounded and every failure other than
"not found" is fatal, except the post-create wait.
"""

from __future__ import annotations

import logging
import threading

from .client import NotebookNotFoundError, RemoteError, ResourceClient
from .config import DEFAULT_WAIT_TIMEOUT_SECONDS
from .models import (
    LifecycleStatus,
    NotebookSpec,
    ObservedState,
    diff_config,
    restart_changes,
)
from .poller import StatusPoller, UnexpectedStatusError, WaitTimeoutError

logger = logging.getLogger(__name__)

# Statuses from which a mutation can safely begin
SETTLED_STATUSES = frozenset(
    {LifecycleStatus.IN_SERVICE, LifecycleStatus.STOPPED, LifecycleStatus.FAILED}
)


class PreconditionError(Exception):
    """Raised when an operation cannot start from the observed state."""

    pass


class RetryExhaustedError(WaitTimeoutError):
    """Raised when a deleted instance is still present after the deadline."""

    pass


class ResourceLeftStoppedError(Exception):
    """Raised when an update failed after a running instance was stopped.

    The instance is not restarted automatically; the caller decides whether
    to retry the update or start it again.
    """

    def __init__(self, name: str, step: str, cause: Exception) -> None:
        super().__init__(
            f"Notebook instance '{name}' was left stopped after a failed {step}: {cause}"
        )
        self.name = name
        self.step = step
        self.cause = cause


class NotebookReconciler:
    """Drive one notebook instance through create, update and delete.

    The reconciler holds no state between calls. Callers must not run
    overlapping operations against the same instance.
    """

    def __init__(
        self,
        client: ResourceClient,
        poller: StatusPoller | None = None,
        *,
        timeout_seconds: float = DEFAULT_WAIT_TIMEOUT_SECONDS,
    ) -> None:
        """Initialize the reconciler.

        Args:
            client: Control plane client, owned by the caller.
            poller: Status poller; defaults to one over the same client.
            timeout_seconds: Deadline applied to every lifecycle wait.
        """
        self._client = client
        self._poller = poller or StatusPoller(client)
        self._timeout = timeout_seconds

    def create(self, spec: NotebookSpec, *, cancel: threading.Event | None = None) -> str:
        """Create the instance and wait (best effort) for it to be InService.

        Returns:
            The instance name, valid even if the instance is still converging.

        Raises:
            RemoteError: The create call itself failed.
            WaitCancelledError: The cancel token was set during the wait.
        """
        name = self._client.create(spec)
        logger.info(f"Notebook instance '{name}' creation started", extra={"notebook": name})

        try:
            self._poller.wait_for(
                name,
                {LifecycleStatus.IN_SERVICE},
                timeout_seconds=self._timeout,
                fail_on={LifecycleStatus.FAILED},
                cancel=cancel,
            )
        except (WaitTimeoutError, UnexpectedStatusError, NotebookNotFoundError, RemoteError) as e:
            # The instance exists and the name stays valid; the caller reads back
            # whatever state the control plane reports.
            logger.error(
                f"Notebook instance '{name}' did not start: {e}",
                extra={"notebook": name, "error_type": type(e).__name__},
            )
        return name

    def update(
        self,
        name: str,
        current: NotebookSpec,
        desired: NotebookSpec,
        *,
        cancel: threading.Event | None = None,
    ) -> None:
        """Apply restart-class changes with the stop/update/start choreography.

        Changes confined to in-place fields are a no-op here; tags are applied
        by tag synchronization before this call.

        Raises:
            PreconditionError: A force-new field changed, or the instance is deleting.
            ResourceLeftStoppedError: A running instance was stopped and then
                the update call, its wait for Stopped or the restart failed.
            WaitTimeoutError: A wait exceeded its deadline.
            NotebookNotFoundError: The instance does not exist.
            RemoteError: Any other control plane failure.
        """
        diff = diff_config(current, desired)
        if diff.requires_replacement:
            raise PreconditionError(
                f"Notebook instance '{name}' cannot change {', '.join(diff.force_new)} "
                "in place; it must be replaced"
            )
        if not diff.requires_restart:
            logger.debug(
                f"No restart-class changes for notebook instance '{name}'",
                extra={"notebook": name, "in_place": list(diff.in_place)},
            )
            return

        changes = restart_changes(diff, desired)
        previous = self._settle(name, self._client.describe(name), cancel).status
        if previous is LifecycleStatus.FAILED:
            raise PreconditionError(f"Notebook instance '{name}' is Failed and cannot be updated")

        logger.info(
            f"Updating notebook instance '{name}'",
            extra={"notebook": name, "fields": sorted(changes), "previous_status": previous.value},
        )
        self._stop(name, cancel)

        try:
            self._client.update(name, changes)
            self._poller.wait_for(
                name,
                {LifecycleStatus.STOPPED},
                timeout_seconds=self._timeout,
                fail_on={LifecycleStatus.FAILED},
                cancel=cancel,
            )
        except (RemoteError, WaitTimeoutError, UnexpectedStatusError) as e:
            if previous is LifecycleStatus.IN_SERVICE:
                raise ResourceLeftStoppedError(name, "update", e) from e
            raise

        if previous is not LifecycleStatus.IN_SERVICE:
            logger.info(f"Notebook instance '{name}' updated, left stopped as before")
            return

        try:
            self._client.start(name)
        except RemoteError as e:
            raise ResourceLeftStoppedError(name, "restart", e) from e

        self._poller.wait_for(
            name,
            {LifecycleStatus.IN_SERVICE},
            timeout_seconds=self._timeout,
            fail_on={LifecycleStatus.FAILED},
            cancel=cancel,
        )
        logger.info(f"Notebook instance '{name}' updated and restarted", extra={"notebook": name})

    def delete(self, name: str, *, cancel: threading.Event | None = None) -> None:
        """Stop, delete and wait until the instance is gone.

        Deleting an instance that is already absent succeeds without calling
        delete again.

        Raises:
            RetryExhaustedError: The instance is still present after the deadline.
            WaitTimeoutError: The stop did not complete in time.
            RemoteError: Stop or delete failed.
        """
        try:
            state = self._client.describe(name)
            if state.status is not LifecycleStatus.DELETING:
                state = self._settle(name, state, cancel)
                if state.status is LifecycleStatus.IN_SERVICE:
                    self._stop(name, cancel)
                self._client.delete(name)
                logger.info(f"Notebook instance '{name}' deletion started", extra={"notebook": name})
        except NotebookNotFoundError:
            logger.info(f"Notebook instance '{name}' already deleted", extra={"notebook": name})
            return

        try:
            self._poller.wait_for_absence(name, timeout_seconds=self._timeout, cancel=cancel)
        except WaitTimeoutError as e:
            raise RetryExhaustedError(
                name, {LifecycleStatus.ABSENT}, self._timeout, e.last_status
            ) from e
        logger.info(f"Notebook instance '{name}' deleted", extra={"notebook": name})

    def _settle(
        self,
        name: str,
        state: ObservedState,
        cancel: threading.Event | None,
    ) -> ObservedState:
        """Wait for an in-flight transition to finish before mutating."""
        if state.status is LifecycleStatus.DELETING:
            raise PreconditionError(f"Notebook instance '{name}' is being deleted")
        if state.status in SETTLED_STATUSES:
            return state
        logger.info(
            f"Notebook instance '{name}' is {state.status.value}, waiting for it to settle",
            extra={"notebook": name, "status": state.status.value},
        )
        return self._poller.wait_for(
            name, SETTLED_STATUSES, timeout_seconds=self._timeout, cancel=cancel
        )

    def _stop(self, name: str, cancel: threading.Event | None) -> ObservedState:
        """Stop the instance and wait for Stopped.

        A rejected stop is tolerated only when the instance is already
        stopped; any other outcome is a real error.
        """
        try:
            self._client.stop(name)
        except RemoteError as e:
            state = self._client.describe(name)
            if state.status is LifecycleStatus.STOPPED:
                logger.info(
                    f"Notebook instance '{name}' already stopped",
                    extra={"notebook": name, "error": str(e)},
                )
                return state
            raise

        return self._poller.wait_for(
            name,
            {LifecycleStatus.STOPPED},
            timeout_seconds=self._timeout,
            fail_on={LifecycleStatus.FAILED},
            cancel=cancel,
        )
