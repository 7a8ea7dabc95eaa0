"""
Pydantic models for mount records, global configuration, and the registry.

A MountRecord lives in the State Store as a plain field mapping (so the
fast tier never validates anything); these models are built from
snapshots in the slow tier and projected into the on-disk registry.
"""

from __future__ import annotations

import re
import time
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Mapping, Optional

from pydantic import BaseModel, Field, ValidationError

from .errors import StateInconsistency

REGISTRY_VERSION = "1.0"

ARCHIVE_ID_SEPARATOR = ".tmp"

ARCHIVE_EXTENSIONS = (
    "zip", "gz", "bz2", "tar", "tgz", "tbz2", "txz", "xz", "tzs",
    "zst", "iso", "rar", "7z", "cpio", "lz", "lzma", "shar", "a",
    "ar", "apk", "jar", "xpi", "cab",
)

_ARCHIVE_ID_SUFFIX = re.compile(re.escape(ARCHIVE_ID_SEPARATOR) + r"[0-9a-f]+(?:-\d+)?$")


def is_archive(filename: Optional[str]) -> bool:
    """Check whether a file name ends in a supported archive extension.

    Args:
        filename: File name or path to test.

    Returns:
        True if the name matches the extension allow-list.
    """
    if not filename:
        return False
    lowered = filename.lower()
    return any(lowered.endswith("." + ext) for ext in ARCHIVE_EXTENSIONS)


def make_archive_id(filename: str, now: Optional[float] = None) -> str:
    """Build the mount identity for an archive.

    The id is the file name plus ``.tmp`` plus the current Unix time in
    lowercase hex. Collisions are unlikely but not impossible.

    Args:
        filename: Archive file name.
        now: Override for the current time (seconds).

    Returns:
        str: The archive id, e.g. ``data.tar.gz.tmp6530c1f2``.
    """
    ts = int(time.time() if now is None else now)
    return f"{filename}{ARCHIVE_ID_SEPARATOR}{ts:x}"


def archive_name_from_id(archive_id: str) -> str:
    """Recover the archive file name from an archive id."""
    return _ARCHIVE_ID_SUFFIX.sub("", archive_id) or archive_id


class NotifyLevel(str, Enum):
    """Severity of a host notification."""

    INFO = "info"
    WARN = "warn"
    ERROR = "error"

    @property
    def timeout(self) -> float:
        """Default display duration in seconds."""
        return {
            NotifyLevel.INFO: 3.0,
            NotifyLevel.WARN: 4.0,
            NotifyLevel.ERROR: 5.0,
        }[self]


class HoveredEntry(BaseModel):
    """The filesystem entry under the host's cursor."""

    name: str
    path: str
    is_dir: bool = False


class GlobalConfig(BaseModel):
    """Process-wide configuration, created once at setup."""

    base_mount_dir: Path
    smart_enter_enabled: bool = False


# ---------------------------------------------------------------------------
# Registry (on-disk projection)
# ---------------------------------------------------------------------------


class RegistryEntry(BaseModel):
    """One mount as written to the registry file."""

    archive: str
    mount_point: str
    cwd: str = "unknown"
    timestamp: int = Field(default_factory=lambda: int(time.time()))
    name: Optional[str] = None
    source: Optional[str] = None


class Registry(BaseModel):
    """The durable mirror of live mount records."""

    version: str = REGISTRY_VERSION
    timestamp: int = Field(default_factory=lambda: int(time.time()))
    mounts: list[RegistryEntry] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Mount records
# ---------------------------------------------------------------------------


class MountRecord(BaseModel):
    """A live association between an archive and its mount point."""

    archive_id: str
    mount_point: str = Field(min_length=1)
    original_directory: Optional[str] = None
    archive_name: str
    source: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def lock_key(self) -> str:
        """Key that serializes operations on the underlying archive."""
        return self.source or self.archive_id

    def to_fields(self) -> dict[str, Any]:
        """Flatten into the State Store's per-id field mapping."""
        return self.model_dump(exclude={"archive_id"})

    @classmethod
    def from_fields(cls, archive_id: str, fields: Mapping[str, Any]) -> "MountRecord":
        """Rebuild a record from State Store fields.

        Args:
            archive_id: The record's key in the store.
            fields: The field mapping stored under that key.

        Returns:
            MountRecord: The validated record.

        Raises:
            StateInconsistency: If a required field is missing or invalid.
        """
        data = dict(fields)
        data.setdefault("archive_name", archive_name_from_id(archive_id))
        try:
            return cls(archive_id=archive_id, **data)
        except ValidationError as exc:
            raise StateInconsistency(
                f"Mount record {archive_id!r} is incomplete: {exc.error_count()} invalid field(s)"
            ) from exc

    def to_entry(self) -> RegistryEntry:
        """Project into a registry entry."""
        return RegistryEntry(
            archive=self.archive_id,
            mount_point=self.mount_point,
            cwd=self.original_directory or "unknown",
            timestamp=int(self.created_at.timestamp()),
            name=self.archive_name,
            source=self.source,
        )

    @classmethod
    def from_entry(cls, entry: RegistryEntry) -> "MountRecord":
        """Rebuild a record from a registry entry."""
        return cls(
            archive_id=entry.archive,
            mount_point=entry.mount_point,
            original_directory=None if entry.cwd == "unknown" else entry.cwd,
            archive_name=entry.name or archive_name_from_id(entry.archive),
            source=entry.source,
            created_at=datetime.fromtimestamp(entry.timestamp, tz=timezone.utc),
        )
