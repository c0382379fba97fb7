"""Tag synchronization for notebook instances.

Tags are the only in-place field: they are written directly without the
stop/update/start choreography. A failed sync aborts the surrounding update
before any restart-class mutation.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Protocol

logger = logging.getLogger(__name__)


class TagWriter(Protocol):
    """Anything that can replace the full tag set of an instance."""

    def replace_tags(self, name: str, tags: Mapping[str, str]) -> None: ...


@dataclass(frozen=True)
class TagDiff:
    """Keys removed from and keys set on an instance."""

    removed: frozenset[str] = frozenset()
    changed: dict[str, str] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not self.removed and not self.changed


def diff_tags(old: Mapping[str, str], new: Mapping[str, str]) -> TagDiff:
    """Compute which keys disappear and which keys get a new value."""
    removed = frozenset(key for key in old if key not in new)
    changed = {key: value for key, value in new.items() if old.get(key) != value}
    return TagDiff(removed=removed, changed=changed)


class TagSynchronizer:
    """Bring the tags of an instance in line with the desired set."""

    def __init__(self, writer: TagWriter) -> None:
        self._writer = writer

    def sync(self, name: str, old: Mapping[str, str], new: Mapping[str, str]) -> TagDiff:
        diff = diff_tags(old, new)
        if diff.is_empty:
            return diff

        logger.info(
            f"Synchronizing tags for notebook instance '{name}'",
            extra={
                "notebook": name,
                "tags_removed": sorted(diff.removed),
                "tags_changed": sorted(diff.changed),
            },
        )
        self._writer.replace_tags(name, dict(new))
        return diff
