"""
Stale Mount Reconciler — bring tracked records back in line with the OS.

A record is stale when its mount point is no longer an active mount
(the FUSE process died, someone ran ``fusermount -u`` by hand, the host
crashed). Reconciliation removes the leftover directory and forgets the
record. Running it twice in a row cleans nothing the second time.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

from .errors import PersistenceFailure, SpawnError
from .models import MountRecord, RegistryEntry
from .process import ProcessExecutor
from .registry import RegistryPersister, records_from_snapshot
from .state import LockTable, StateStore

logger = logging.getLogger("fusearchive.reconcile")


def remove_mount_dir(path: str) -> bool:
    """Remove an (expected empty) mount directory, ignoring failure.

    Args:
        path: Mount point directory.

    Returns:
        True if the directory was removed.
    """
    try:
        Path(path).rmdir()
    except OSError as exc:
        logger.debug("Could not remove %s: %s", path, exc)
        return False
    return True


def _decode_mount_field(field: str) -> str:
    """Undo the octal escapes /proc/mounts uses for whitespace."""
    for escaped, char in (("\\040", " "), ("\\011", "\t"), ("\\012", "\n"), ("\\134", "\\")):
        field = field.replace(escaped, char)
    return field


class MountProbe:
    """Answers "is this path an active mount?".

    Uses ``mountpoint -q``; when that binary is missing, falls back to
    scanning ``/proc/mounts``.

    Args:
        executor: Process executor used to run ``mountpoint``.
        proc_mounts: Mount table to scan in the fallback path.
    """

    def __init__(
        self,
        executor: ProcessExecutor,
        proc_mounts: Path = Path("/proc/mounts"),
    ) -> None:
        self._executor = executor
        self._proc_mounts = proc_mounts

    def is_mounted(self, mount_point: str) -> bool:
        """Check whether ``mount_point`` is currently mounted."""
        try:
            return self._executor.run("mountpoint", ["-q", mount_point]).ok
        except SpawnError:
            return self._in_mount_table(mount_point)

    def _in_mount_table(self, mount_point: str) -> bool:
        target = str(Path(mount_point))
        try:
            lines = self._proc_mounts.read_text(encoding="utf-8").splitlines()
        except OSError as exc:
            logger.debug("Cannot read %s: %s", self._proc_mounts, exc)
            return False
        for line in lines:
            parts = line.split()
            if len(parts) >= 2 and _decode_mount_field(parts[1]) == target:
                return True
        return False


class ReconcileReport(BaseModel):
    """Outcome of one reconciliation pass."""

    cleaned: list[str] = Field(default_factory=list)
    adopted: list[str] = Field(default_factory=list)
    checked: int = 0
    persist_error: Optional[str] = None

    @property
    def changed(self) -> bool:
        """True if the store was modified."""
        return bool(self.cleaned or self.adopted)


class StaleMountReconciler:
    """Compares tracked mounts with the OS and drops the dead ones.

    Args:
        store: The live State Store.
        probe: Mount-state checker.
        persister: Registry to rewrite after changes, and to scan for
            mounts left over from a previous session.
        locks: Per-archive lock table shared with the coordinator.
    """

    def __init__(
        self,
        store: StateStore,
        probe: MountProbe,
        persister: Optional[RegistryPersister] = None,
        locks: Optional[LockTable] = None,
    ) -> None:
        self._store = store
        self._probe = probe
        self._persister = persister
        self._locks = locks or LockTable()

    def reconcile(self) -> ReconcileReport:
        """Run one pass over live records and registry orphans.

        Returns:
            ReconcileReport: Ids cleaned and adopted.
        """
        report = ReconcileReport()
        orphans = self._orphans()

        for record in records_from_snapshot(self._store):
            report.checked += 1
            if self._probe.is_mounted(record.mount_point):
                continue
            with self._locks.hold(record.lock_key):
                if self._store.get(record.archive_id, "mount_point") != record.mount_point:
                    continue
                remove_mount_dir(record.mount_point)
                self._store.delete(record.archive_id)
            logger.info("Cleaned stale mount %s (%s)", record.archive_id, record.mount_point)
            report.cleaned.append(record.archive_id)

        for entry in orphans:
            report.checked += 1
            if self._probe.is_mounted(entry.mount_point):
                self._adopt(entry)
                report.adopted.append(entry.archive)
            else:
                remove_mount_dir(entry.mount_point)
                logger.info("Cleaned orphaned mount %s (%s)", entry.archive, entry.mount_point)
                report.cleaned.append(entry.archive)

        if report.changed:
            if self._persister is not None:
                self._persister.release(report.cleaned)
            report.persist_error = self._persist()
        return report

    def restore(self) -> list[str]:
        """Adopt registry entries that are still mounted. Deletes nothing.

        Entries that are no longer mounted stay in the registry file for
        the next cleanup.

        Returns:
            list[str]: Archive ids added to the store.
        """
        adopted = []
        dead = []
        for entry in self._orphans():
            if self._probe.is_mounted(entry.mount_point):
                self._adopt(entry)
                adopted.append(entry.archive)
            else:
                dead.append(entry)
        if dead and self._persister is not None:
            self._persister.retain(dead)
        if adopted:
            logger.info("Restored %d mount(s) from the registry", len(adopted))
        return adopted

    def _orphans(self) -> list[RegistryEntry]:
        """Registry entries the live store does not know about."""
        if self._persister is None:
            return []
        try:
            entries = self._persister.load()
        except PersistenceFailure as exc:
            logger.warning("Ignoring registry: %s", exc)
            return []
        known = self._store.snapshot()
        return [e for e in entries if e.archive not in known and e.mount_point]

    def _adopt(self, entry: RegistryEntry) -> None:
        record = MountRecord.from_entry(entry)
        with self._locks.hold(record.lock_key):
            self._store.update(record.archive_id, record.to_fields())
        logger.info("Adopted mount %s (%s)", record.archive_id, record.mount_point)

    def _persist(self) -> Optional[str]:
        if self._persister is None:
            return None
        try:
            self._persister.save(self._store)
        except PersistenceFailure as exc:
            logger.warning("%s", exc)
            return str(exc)
        return None
