"""
Registry Persister — the on-disk mirror of live mount records.

The file is regenerated from a State Store snapshot after every mutating
operation. It is a best-effort mirror: the live mounts are the truth, and
a failed write never undoes the mount or unmount that triggered it.

File layout::

    {
      "version": "1.0",
      "timestamp": 1697500000,
      "mounts": [
        {"archive": "...", "mount_point": "...", "cwd": "...", "timestamp": ...}
      ]
    }
"""

from __future__ import annotations

import logging
import os
import threading
import time
from pathlib import Path
from typing import Iterable

from pydantic import ValidationError

from .errors import PersistenceFailure, StateInconsistency
from .models import MountRecord, Registry, RegistryEntry
from .state import GLOBAL_KEY, StateStore

logger = logging.getLogger("fusearchive.registry")


def records_from_snapshot(store: StateStore) -> list[MountRecord]:
    """Build validated records from a store snapshot.

    Entries without a mount point are skipped; the global config entry
    is excluded.

    Args:
        store: The live State Store.

    Returns:
        list[MountRecord]: Records with a non-empty mount point.
    """
    records: list[MountRecord] = []
    for entry_id, fields in store.snapshot().items():
        if entry_id == GLOBAL_KEY or not fields.get("mount_point"):
            continue
        try:
            records.append(MountRecord.from_fields(entry_id, fields))
        except StateInconsistency as exc:
            logger.warning("Skipping record: %s", exc)
    return records


class RegistryPersister:
    """Reads and writes the mount registry file.

    Entries loaded from disk that are no longer mounted can be retained:
    they stay in every rewritten file until ``release`` is called for
    them, so a later cleanup still finds their directories.

    Args:
        path: Location of the registry JSON file.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path).expanduser()
        self._lock = threading.RLock()
        self._retained: dict[str, RegistryEntry] = {}

    def retain(self, entries: Iterable[RegistryEntry]) -> None:
        """Keep ``entries`` in the file while the store does not track them."""
        with self._lock:
            for entry in entries:
                self._retained[entry.archive] = entry

    def release(self, archive_ids: Iterable[str]) -> None:
        """Stop carrying retained entries forward."""
        with self._lock:
            for archive_id in archive_ids:
                self._retained.pop(archive_id, None)

    def build(self, store: StateStore) -> Registry:
        """Project a store snapshot, plus retained entries, into a Registry."""
        mounts = [record.to_entry() for record in records_from_snapshot(store)]
        tracked = {entry.archive for entry in mounts}
        with self._lock:
            mounts.extend(e for a, e in self._retained.items() if a not in tracked)
        return Registry(timestamp=int(time.time()), mounts=mounts)

    def save(self, store: StateStore) -> Registry:
        """Write the registry atomically (tmp file + rename).

        Writers in this process are serialized, and the tmp file name is
        unique per process.

        Args:
            store: The live State Store.

        Returns:
            Registry: What was written.

        Raises:
            PersistenceFailure: If the file could not be written.
        """
        tmp_path = self.path.with_name(f"{self.path.name}.{os.getpid()}.tmp")
        with self._lock:
            registry = self.build(store)
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                tmp_path.write_text(registry.model_dump_json(indent=2) + "\n", encoding="utf-8")
                tmp_path.replace(self.path)
            except OSError as exc:
                raise PersistenceFailure(
                    f"Cannot write mount registry {self.path}: {exc}", self.path
                ) from exc
        logger.debug("Saved %d mount(s) to %s", len(registry.mounts), self.path)
        return registry

    def load(self) -> list[RegistryEntry]:
        """Read registry entries back.

        This does not touch the live store; callers decide what to do with
        the entries.

        Returns:
            list[RegistryEntry]: Entries on disk, empty if there is no file.

        Raises:
            PersistenceFailure: If the file is unreadable or malformed.
        """
        if not self.path.exists():
            return []
        try:
            raw = self.path.read_text(encoding="utf-8")
        except OSError as exc:
            raise PersistenceFailure(
                f"Cannot read mount registry {self.path}: {exc}", self.path
            ) from exc
        try:
            registry = Registry.model_validate_json(raw)
        except ValidationError as exc:
            raise PersistenceFailure(
                f"Mount registry {self.path} is malformed: {exc.error_count()} error(s)",
                self.path,
            ) from exc
        return registry.mounts
