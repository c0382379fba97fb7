"""Configuration management with validation.

All settings are validated at load time so a misconfigured operator fails
before it touches the control plane.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass


class ConfigurationError(Exception):
    """Raised when configuration validation fails."""

    pass


# Configuration constants with documented bounds
DEFAULT_WAIT_TIMEOUT_SECONDS = 600  # 10 minutes per lifecycle wait
MIN_WAIT_TIMEOUT_SECONDS = 30
MAX_WAIT_TIMEOUT_SECONDS = 3600

DEFAULT_POLL_INTERVAL_SECONDS = 10  # Fixed interval, no backoff
MIN_POLL_INTERVAL_SECONDS = 1
MAX_POLL_INTERVAL_SECONDS = 300

DEFAULT_ARM_API_VERSION = "2024-04-01"

MAX_SPEC_FILE_SIZE_BYTES = 1024 * 1024  # 1MB max spec file
MAX_RESOURCE_GROUP_NAME_LENGTH = 90
MAX_WORKSPACE_NAME_LENGTH = 33

# Input validation patterns
VALID_SUBSCRIPTION_ID_PATTERN = r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$"
VALID_LOCATION_PATTERN = r"^[a-z]{2,}[a-z0-9]*$"
VALID_API_VERSION_PATTERN = r"^\d{4}-\d{2}-\d{2}(-preview)?$"


@dataclass(frozen=True)
class Config:
    """Operator configuration loaded from environment variables.

    All fields are validated at construction time. Invalid configurations
    raise ConfigurationError immediately rather than failing mid-operation.
    """

    # Required fields
    subscription_id: str
    resource_group_name: str
    workspace_name: str
    location: str

    # Identity used against the control plane (None = system-assigned)
    client_id: str | None = None

    # Timing
    wait_timeout_seconds: int = DEFAULT_WAIT_TIMEOUT_SECONDS
    poll_interval_seconds: int = DEFAULT_POLL_INTERVAL_SECONDS

    api_version: str = DEFAULT_ARM_API_VERSION

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        errors: list[str] = []

        if not self.subscription_id:
            errors.append("AZURE_SUBSCRIPTION_ID is required")
        elif not re.match(VALID_SUBSCRIPTION_ID_PATTERN, self.subscription_id.lower()):
            errors.append(f"AZURE_SUBSCRIPTION_ID must be a valid GUID: {self.subscription_id}")

        if not self.resource_group_name:
            errors.append("AZURE_RESOURCE_GROUP is required")
        elif len(self.resource_group_name) > MAX_RESOURCE_GROUP_NAME_LENGTH:
            errors.append(
                f"AZURE_RESOURCE_GROUP exceeds maximum length of {MAX_RESOURCE_GROUP_NAME_LENGTH}"
            )

        if not self.workspace_name:
            errors.append("AZURE_ML_WORKSPACE is required")
        elif len(self.workspace_name) > MAX_WORKSPACE_NAME_LENGTH:
            errors.append(f"AZURE_ML_WORKSPACE exceeds maximum length of {MAX_WORKSPACE_NAME_LENGTH}")

        if not self.location:
            errors.append("AZURE_LOCATION is required")
        elif not re.match(VALID_LOCATION_PATTERN, self.location.lower()):
            errors.append(f"AZURE_LOCATION must be a valid Azure region: {self.location}")

        if not (MIN_WAIT_TIMEOUT_SECONDS <= self.wait_timeout_seconds <= MAX_WAIT_TIMEOUT_SECONDS):
            errors.append(
                f"WAIT_TIMEOUT must be between {MIN_WAIT_TIMEOUT_SECONDS} "
                f"and {MAX_WAIT_TIMEOUT_SECONDS} seconds"
            )

        if not (
            MIN_POLL_INTERVAL_SECONDS <= self.poll_interval_seconds <= MAX_POLL_INTERVAL_SECONDS
        ):
            errors.append(
                f"POLL_INTERVAL must be between {MIN_POLL_INTERVAL_SECONDS} "
                f"and {MAX_POLL_INTERVAL_SECONDS} seconds"
            )
        elif self.poll_interval_seconds >= self.wait_timeout_seconds:
            errors.append("POLL_INTERVAL must be shorter than WAIT_TIMEOUT")

        if not re.match(VALID_API_VERSION_PATTERN, self.api_version):
            errors.append(f"ARM_API_VERSION must look like YYYY-MM-DD: {self.api_version}")

        if errors:
            error_msg = "Configuration validation failed:\n  - " + "\n  - ".join(errors)
            raise ConfigurationError(error_msg)

    @classmethod
    def from_env(cls) -> Config:
        """Load configuration from environment variables.

        Environment Variables:
            AZURE_SUBSCRIPTION_ID: Subscription holding the workspace
            AZURE_RESOURCE_GROUP: Resource group of the workspace
            AZURE_ML_WORKSPACE: Workspace that owns the notebook instances
            AZURE_LOCATION: Region for new notebook instances
            AZURE_CLIENT_ID: Optional user-assigned managed identity client ID
            WAIT_TIMEOUT: Deadline for each lifecycle wait in seconds (default: 600)
            POLL_INTERVAL: Seconds between status checks (default: 10)
            ARM_API_VERSION: API version used for the compute resources
        """

        def get_int(key: str, default: int) -> int:
            value = os.environ.get(key)
            if value is None:
                return default
            try:
                return int(value)
            except ValueError as e:
                raise ConfigurationError(f"{key} must be an integer: {value}") from e

        return cls(
            subscription_id=os.environ.get("AZURE_SUBSCRIPTION_ID", ""),
            resource_group_name=os.environ.get("AZURE_RESOURCE_GROUP", ""),
            workspace_name=os.environ.get("AZURE_ML_WORKSPACE", ""),
            location=os.environ.get("AZURE_LOCATION", ""),
            client_id=os.environ.get("AZURE_CLIENT_ID") or None,
            wait_timeout_seconds=get_int("WAIT_TIMEOUT", DEFAULT_WAIT_TIMEOUT_SECONDS),
            poll_interval_seconds=get_int("POLL_INTERVAL", DEFAULT_POLL_INTERVAL_SECONDS),
            api_version=os.environ.get("ARM_API_VERSION", DEFAULT_ARM_API_VERSION),
        )
