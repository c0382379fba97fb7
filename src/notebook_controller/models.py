"""Notebook instance models.

These models provide:
1. Type-safe parsing of the desired configuration (pydantic, camelCase aliases)
2. A closed lifecycle status enumeration with an explicit absent member
3. Immutable observed-state snapshots and desired-vs-observed diffing
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Annotated, Any

from pydantic import BaseModel, Field, field_validator

MAX_NOTEBOOK_NAME_LENGTH = 63
VALID_NOTEBOOK_NAME_PATTERN = r"^[a-zA-Z0-9](-*[a-zA-Z0-9])*$"


class LifecycleStatus(str, Enum):
    """Lifecycle status of a notebook instance.

    ABSENT is never sent by the control plane. It is inferred when a lookup
    reports "not found" and is kept distinct from any wire value.
    """

    PENDING = "Pending"
    IN_SERVICE = "InService"
    STOPPING = "Stopping"
    STOPPED = "Stopped"
    UPDATING = "Updating"
    DELETING = "Deleting"
    FAILED = "Failed"
    ABSENT = "Absent"

    @property
    def is_terminal(self) -> bool:
        """True when no further transition happens without external action."""
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {
        LifecycleStatus.IN_SERVICE,
        LifecycleStatus.STOPPED,
        LifecycleStatus.ABSENT,
        LifecycleStatus.FAILED,
    }
)

# =============================================================================
# Field classes
# =============================================================================
# Force-new fields can only be set at creation time. Restart fields can be
# changed only while the instance is stopped. In-place fields are applied
# by tag synchronization and never go through Update.

FORCE_NEW_FIELDS: tuple[str, ...] = ("name", "subnet_id", "security_groups", "kms_key_id")
RESTART_FIELDS: tuple[str, ...] = ("role_arn", "instance_type")
IN_PLACE_FIELDS: tuple[str, ...] = ("tags",)


class NotebookSpec(BaseModel):
    """Desired configuration of one notebook instance."""

    model_config = {"extra": "ignore", "populate_by_name": True, "frozen": True}

    name: Annotated[str, Field(min_length=1, max_length=MAX_NOTEBOOK_NAME_LENGTH)]
    role_arn: Annotated[str, Field(min_length=1, alias="roleArn")]
    instance_type: Annotated[str, Field(min_length=1, alias="instanceType")]
    subnet_id: str | None = Field(None, alias="subnetId")
    security_groups: Annotated[frozenset[str], Field(min_length=1)] | None = Field(
        None, alias="securityGroups"
    )
    kms_key_id: str | None = Field(None, alias="kmsKeyId")
    tags: dict[str, str] = Field(default_factory=dict)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not re.match(VALID_NOTEBOOK_NAME_PATTERN, v):
            raise ValueError(
                "name may only contain alphanumerics and hyphens and must not "
                "start or end with a hyphen"
            )
        return v


@dataclass(frozen=True)
class ObservedState:
    """Snapshot of a notebook instance as reported by the control plane.

    Every observation is a fresh snapshot; nothing mutates an existing one.
    """

    name: str
    status: LifecycleStatus
    arn: str | None = None
    role_arn: str | None = None
    instance_type: str | None = None
    subnet_id: str | None = None
    security_groups: frozenset[str] = frozenset()
    kms_key_id: str | None = None
    tags: Mapping[str, str] = field(default_factory=dict, hash=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "security_groups", frozenset(self.security_groups))
        object.__setattr__(self, "tags", MappingProxyType(dict(self.tags)))

    @classmethod
    def absent(cls, name: str) -> ObservedState:
        """Build the snapshot for an instance that does not exist."""
        return cls(name=name, status=LifecycleStatus.ABSENT)

    @property
    def exists(self) -> bool:
        return self.status is not LifecycleStatus.ABSENT

    def to_spec(self) -> NotebookSpec:
        """Derive the current configuration for diffing against a desired spec."""
        # Observed values are trusted; partial snapshots skip validation
        return NotebookSpec.model_construct(
            name=self.name,
            role_arn=self.role_arn or "",
            instance_type=self.instance_type or "",
            subnet_id=self.subnet_id,
            security_groups=self.security_groups or None,
            kms_key_id=self.kms_key_id,
            tags=dict(self.tags),
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize for persistence or CLI output."""
        return {
            "name": self.name,
            "arn": self.arn,
            "status": self.status.value,
            "roleArn": self.role_arn,
            "instanceType": self.instance_type,
            "subnetId": self.subnet_id,
            "securityGroups": sorted(self.security_groups),
            "kmsKeyId": self.kms_key_id,
            "tags": dict(self.tags),
        }


@dataclass(frozen=True)
class ConfigDiff:
    """Changed fields between a current and a desired configuration, by class."""

    force_new: tuple[str, ...] = ()
    restart: tuple[str, ...] = ()
    in_place: tuple[str, ...] = ()

    @property
    def requires_replacement(self) -> bool:
        return bool(self.force_new)

    @property
    def requires_restart(self) -> bool:
        return bool(self.restart)

    @property
    def is_empty(self) -> bool:
        return not (self.force_new or self.restart or self.in_place)


def _field_changed(name: str, current: NotebookSpec, desired: NotebookSpec) -> bool:
    old = getattr(current, name)
    new = getattr(desired, name)
    if name == "security_groups" and new is None:
        # Assigned by the control plane when omitted
        return False
    return old != new


def diff_config(current: NotebookSpec, desired: NotebookSpec) -> ConfigDiff:
    """Classify every field that differs between current and desired."""
    return ConfigDiff(
        force_new=tuple(f for f in FORCE_NEW_FIELDS if _field_changed(f, current, desired)),
        restart=tuple(f for f in RESTART_FIELDS if _field_changed(f, current, desired)),
        in_place=tuple(f for f in IN_PLACE_FIELDS if _field_changed(f, current, desired)),
    )


def restart_changes(diff: ConfigDiff, desired: NotebookSpec) -> dict[str, Any]:
    """Build the Update payload for the restart-class fields in a diff."""
    return {name: getattr(desired, name) for name in diff.restart}
