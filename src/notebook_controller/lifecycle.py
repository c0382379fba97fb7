"""Create/Read/Update/Delete entrypoints for the declarative front end.

Maps reconciler outcomes to the caller contract:
- success returns a fresh ObservedState for the caller to persist
- "not found" on read returns None so the caller can forget the instance
- every other failure becomes an OperationError naming the instance
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager

from .client import NotebookNotFoundError, RemoteError, ResourceClient
from .models import NotebookSpec, ObservedState, diff_config
from .poller import UnexpectedStatusError, WaitCancelledError, WaitTimeoutError
from .reconciler import NotebookReconciler, PreconditionError, ResourceLeftStoppedError
from .tags import TagSynchronizer

logger = logging.getLogger(__name__)

# Failures reported to the caller as OperationError
OPERATION_FAILURES: tuple[type[Exception], ...] = (
    NotebookNotFoundError,
    RemoteError,
    WaitTimeoutError,
    WaitCancelledError,
    UnexpectedStatusError,
    PreconditionError,
    ResourceLeftStoppedError,
)


class OperationError(Exception):
    """A lifecycle operation failed for one notebook instance."""

    def __init__(self, operation: str, name: str, cause: Exception) -> None:
        super().__init__(f"{operation} of notebook instance '{name}' failed: {cause}")
        self.operation = operation
        self.name = name
        self.cause = cause


class LifecycleOrchestrator:
    """The four lifecycle operations plus declarative apply.

    Args:
        client: Control plane client, owned by the caller.
        reconciler: Reconciler over the same client.
        tag_synchronizer: Optional tag sync run before every update.
    """

    def __init__(
        self,
        client: ResourceClient,
        reconciler: NotebookReconciler,
        tag_synchronizer: TagSynchronizer | None = None,
    ) -> None:
        self._client = client
        self._reconciler = reconciler
        self._tags = tag_synchronizer

    def create(self, spec: NotebookSpec, *, cancel: threading.Event | None = None) -> ObservedState:
        with self._operation("create", spec.name):
            name = self._reconciler.create(spec, cancel=cancel)
            return self._client.describe(name)

    def read(self, name: str) -> ObservedState | None:
        """Return the instance state, or None when it does not exist.

        Also used to import an existing instance by name.
        """
        with self._operation("read", name):
            try:
                return self._client.describe(name)
            except NotebookNotFoundError:
                logger.info(
                    f"Notebook instance '{name}' not found, removing from state",
                    extra={"notebook": name},
                )
                return None

    def update(
        self,
        spec: NotebookSpec,
        current: NotebookSpec | None = None,
        *,
        cancel: threading.Event | None = None,
    ) -> ObservedState:
        """Update an existing instance toward the desired spec.

        Args:
            spec: Desired configuration.
            current: Last known configuration; read from the control plane if omitted.
            cancel: Optional token interrupting every wait.
        """
        name = spec.name
        with self._operation("update", name):
            if current is None:
                current = self._client.describe(name).to_spec()

            if self._tags is not None:
                self._tags.sync(name, current.tags, spec.tags)

            self._reconciler.update(name, current, spec, cancel=cancel)
            return self._client.describe(name)

    def delete(self, name: str, *, cancel: threading.Event | None = None) -> None:
        with self._operation("delete", name):
            self._reconciler.delete(name, cancel=cancel)

    def apply(self, spec: NotebookSpec, *, cancel: threading.Event | None = None) -> ObservedState:
        """Converge one instance on the desired spec.

        Absent instances are created, instances whose force-new fields
        changed are replaced, and everything else is updated.
        """
        observed = self.read(spec.name)
        if observed is None:
            logger.info(f"Notebook instance '{spec.name}' does not exist, creating")
            return self.create(spec, cancel=cancel)

        current = observed.to_spec()
        diff = diff_config(current, spec)
        if diff.requires_replacement:
            logger.info(
                f"Replacing notebook instance '{spec.name}'",
                extra={"notebook": spec.name, "fields": list(diff.force_new)},
            )
            self.delete(spec.name, cancel=cancel)
            return self.create(spec, cancel=cancel)

        if diff.is_empty:
            logger.info(f"Notebook instance '{spec.name}' is up to date")
            return observed
        return self.update(spec, current, cancel=cancel)

    @contextmanager
    def _operation(self, operation: str, name: str) -> Iterator[None]:
        try:
            yield
        except OPERATION_FAILURES as e:
            logger.error(
                f"Notebook instance {operation} failed: {e}",
                extra={"notebook": name, "operation": operation, "error_type": type(e).__name__},
            )
            raise OperationError(operation, name, e) from e
