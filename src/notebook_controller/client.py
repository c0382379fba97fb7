"""Control plane capability used by the reconciler.

Each operation is a single blocking request/response with no built-in retry.
Start, Stop and Delete only begin an asynchronous transition; completion is
observed through describe().
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from .models import NotebookSpec, ObservedState


class RemoteError(Exception):
    """Raised for any control plane failure other than "not found"."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        error_code: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.error_code = error_code


class NotebookNotFoundError(Exception):
    """Raised when the control plane reports that the instance does not exist."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Notebook instance '{name}' not found")
        self.name = name


class ResourceClient(ABC):
    """Abstract capability over the notebook control plane.

    Implementations raise NotebookNotFoundError when the instance does not
    exist and RemoteError for every other failure. Every poll loop depends
    on that distinction.
    """

    @abstractmethod
    def create(self, spec: NotebookSpec) -> str:
        """Begin provisioning and return the instance name used for lookups."""

    @abstractmethod
    def describe(self, name: str) -> ObservedState:
        """Return a fresh snapshot of the instance."""

    @abstractmethod
    def update(self, name: str, changes: dict[str, Any]) -> None:
        """Apply restart-class field changes. The instance must be stopped."""

    @abstractmethod
    def start(self, name: str) -> None:
        """Begin starting the instance."""

    @abstractmethod
    def stop(self, name: str) -> None:
        """Begin stopping the instance."""

    @abstractmethod
    def delete(self, name: str) -> None:
        """Begin deleting the instance."""
