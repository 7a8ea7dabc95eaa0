"""
Mount Coordinator — the mount lifecycle state machine.

    unmounted --mount--> mounted --unmount--> unmounting --> unmounted

Every method here runs in the slow tier: it may spawn processes, touch
the filesystem, and block. Shared state is only reached through the
StateStore accessors; decisions are made on snapshots.

Mount and unmount of one archive are serialized through a LockTable
keyed by the archive's absolute path, held from the duplicate check
until the record is committed.
"""

from __future__ import annotations

import logging
import os
import time
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

from .errors import (
    ConfigError,
    DuplicateMountWarning,
    ExecutionError,
    PersistenceFailure,
    SpawnError,
    StateInconsistency,
)
from .host import Host
from .models import MountRecord, NotifyLevel, is_archive, make_archive_id
from .process import ProcessExecutor
from .reconcile import MountProbe, ReconcileReport, StaleMountReconciler, remove_mount_dir
from .registry import RegistryPersister, records_from_snapshot
from .state import LockTable, StateStore

logger = logging.getLogger("fusearchive.coordinator")

# Plain step first, then the lazy step. Within a step the first binary
# that succeeds wins.
UNMOUNT_STEPS: tuple[tuple[tuple[str, ...], ...], ...] = (
    (("fusermount", "-u"), ("fusermount3", "-u"), ("umount",)),
    (("fusermount", "-uz"), ("fusermount3", "-uz"), ("umount", "-l")),
)


class Outcome(str, Enum):
    """What an activation ended up doing."""

    ENTERED = "entered"
    OPENED = "opened"
    MOUNTED = "mounted"
    ALREADY_MOUNTED = "already-mounted"


def _normalize(path: str) -> Path:
    return Path(os.path.normpath(path))


def _canonical(path: str) -> Path:
    """Absolute path with symlinks resolved."""
    return Path(os.path.realpath(path))


class MountCoordinator:
    """Decides enter/open/mount and drives mount, unmount, list, cleanup.

    Args:
        host: UI collaborator for context, navigation, and notifications.
        store: The live State Store.
        executor: Runs the external mount and unmount tools.
        persister: Registry mirror, rewritten after each mutation.
        reconciler: Stale mount reconciler; built from the other
            collaborators when omitted.
        locks: Per-archive lock table.
        mount_command: External mount tool.
        clock: Time source in Unix seconds.
    """

    def __init__(
        self,
        host: Host,
        store: StateStore,
        executor: ProcessExecutor,
        persister: Optional[RegistryPersister] = None,
        reconciler: Optional[StaleMountReconciler] = None,
        locks: Optional[LockTable] = None,
        mount_command: str = "fuse-archive",
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.host = host
        self.store = store
        self._executor = executor
        self._persister = persister
        self._locks = locks or LockTable()
        self._reconciler = reconciler or StaleMountReconciler(
            store, MountProbe(executor), persister, self._locks
        )
        self._mount_command = mount_command
        self._clock = clock

    # ------------------------------------------------------------------
    # Activation
    # ------------------------------------------------------------------

    def activate(self) -> Outcome:
        """Handle a user "activate" on the hovered entry.

        Directories are entered, non-archives are opened (smart enter) or
        entered, archives are mounted.
        """
        entry = self.host.hovered()
        if entry is None:
            self.host.info("No file hovered, entering directory...")
            self.host.enter()
            return Outcome.ENTERED

        if entry.is_dir:
            self.host.enter()
            return Outcome.ENTERED

        if not is_archive(entry.name):
            if self.store.smart_enter():
                self.host.open_hovered()
                return Outcome.OPENED
            self.host.enter()
            return Outcome.ENTERED

        return self.mount(entry.name)

    # ------------------------------------------------------------------
    # Mount
    # ------------------------------------------------------------------

    def mount(self, filename: str) -> Outcome:
        """Mount ``filename`` from the current directory and navigate into it.

        Args:
            filename: Archive file name, relative to the current directory.

        Returns:
            Outcome.MOUNTED, or Outcome.ALREADY_MOUNTED if a live mount
            of the same archive exists.

        Raises:
            ConfigError: No usable base mount directory.
            SpawnError: The mount tool could not be started.
            ExecutionError: The mount tool exited non-zero.
        """
        cwd = self.host.cwd()
        source = str(_normalize(os.path.join(cwd, filename)))

        with self._locks.hold(source):
            now = self._clock()
            archive_id = make_archive_id(filename, now)

            existing = self._existing_mount(archive_id, source)
            if existing is not None:
                self.host.warn("%s", DuplicateMountWarning(existing))
                self.host.cd(existing)
                return Outcome.ALREADY_MOUNTED

            archive_id = self._claim_id(archive_id, filename, source)
            try:
                target = self._create_mount_point(archive_id)
            except ConfigError:
                self.store.delete(archive_id)
                raise

            self.host.info("Mounting %s...", filename)
            try:
                self._executor.check(
                    self._mount_command, ["./" + filename, str(target)], cwd=cwd
                )
            except (SpawnError, ExecutionError) as exc:
                remove_mount_dir(str(target))
                self.store.delete(archive_id)
                logger.error("Unable to mount %s: %s", filename, exc)
                raise

            record = MountRecord(
                archive_id=archive_id,
                mount_point=str(target),
                original_directory=cwd,
                archive_name=filename,
                source=source,
                created_at=datetime.fromtimestamp(now, tz=timezone.utc),
            )
            self.store.update(archive_id, record.to_fields())

        self._persist()
        self.host.cd(str(target))
        self.host.info("Mounted %s", filename)
        return Outcome.MOUNTED

    def _existing_mount(self, archive_id: str, source: str) -> Optional[str]:
        """Mount point of a live mount of this archive, if any.

        Records for the same archive whose directory has vanished are
        dropped on the way.
        """
        fields = self.store.fields(archive_id) or {}
        mount_point = fields.get("mount_point")
        if mount_point and fields.get("source") in (None, source):
            if Path(mount_point).is_dir():
                return mount_point
            logger.info("Dropping vanished mount %s", archive_id)
            self.store.delete(archive_id)

        for record in records_from_snapshot(self.store):
            if record.source != source:
                continue
            if Path(record.mount_point).is_dir():
                return record.mount_point
            logger.info("Dropping vanished mount %s", record.archive_id)
            self.store.delete(record.archive_id)
        return None

    def _claim_id(self, archive_id: str, filename: str, source: str) -> str:
        """Reserve ``archive_id``, or ``archive_id-N`` if another archive holds it."""
        candidate = archive_id
        suffix = 1
        while not self.store.claim(candidate, {"archive_name": filename, "source": source}):
            suffix += 1
            candidate = f"{archive_id}-{suffix}"
        if candidate != archive_id:
            logger.info("Archive id %s is taken, using %s", archive_id, candidate)
        return candidate

    def _create_mount_point(self, archive_id: str) -> Path:
        base = self.store.base_mount_dir()
        if not base:
            raise ConfigError("Mount directory not configured")
        target = Path(base) / archive_id
        try:
            target.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise ConfigError(f"Cannot create mount point {target}: {exc}") from exc
        return target

    # ------------------------------------------------------------------
    # Unmount
    # ------------------------------------------------------------------

    def unmount(self) -> bool:
        """Unmount the archive the current directory belongs to.

        Outside any tracked mount this is a plain leave.

        Returns:
            True if an archive was unmounted.
        """
        archive_id = self._mount_containing(self.host.cwd())
        if archive_id is None:
            self.host.leave()
            return False

        fields = self.store.fields(archive_id) or {}
        with self._locks.hold(fields.get("source") or archive_id):
            try:
                record = MountRecord.from_fields(archive_id, self.store.fields(archive_id) or {})
            except StateInconsistency as exc:
                logger.warning("%s", exc)
                self.host.warn("Mount point not found in state")
                self.host.leave()
                return False

            self.host.info("Unmounting %s...", record.archive_name)

            # Leave the mount first, or the unmount fails with "busy".
            if record.original_directory:
                self.host.cd(record.original_directory)
            else:
                self.host.cd(str(Path(record.mount_point).parent))

            run_cwd = record.original_directory
            if not run_cwd or not Path(run_cwd).is_dir():
                run_cwd = str(Path(record.mount_point).parent)

            if not self._unmount_with_fallback(record.mount_point, run_cwd):
                self.host.error("Unable to unmount %s", record.archive_name)
                return False

            remove_mount_dir(record.mount_point)
            self.store.delete(archive_id)

        self._persist()
        self.host.info("Unmounted %s", record.archive_name)
        return True

    def _mount_containing(self, cwd: str) -> Optional[str]:
        """Archive id whose mount point is ``cwd`` or one of its parents."""
        current = _canonical(cwd)
        best: Optional[MountRecord] = None
        best_depth = -1
        for record in records_from_snapshot(self.store):
            mount_point = _canonical(record.mount_point)
            if current != mount_point and mount_point not in current.parents:
                continue
            if len(mount_point.parts) > best_depth:
                best, best_depth = record, len(mount_point.parts)
        return best.archive_id if best else None

    def _unmount_with_fallback(self, mount_point: str, cwd: str) -> bool:
        for step, candidates in enumerate(UNMOUNT_STEPS):
            argvs = [[*argv, mount_point] for argv in candidates]
            result = self._executor.first_success(argvs, cwd=cwd)
            if result is not None:
                logger.info(
                    "Unmounted %s with %s %s",
                    mount_point, result.command, " ".join(result.args[:-1]),
                )
                return True
            if step == 0:
                logger.info("Plain unmount of %s failed, trying lazy unmount", mount_point)
        logger.error("Could not unmount %s", mount_point)
        return False

    # ------------------------------------------------------------------
    # List / cleanup / restore
    # ------------------------------------------------------------------

    def list_mounts(self) -> list[MountRecord]:
        """Notify the user of every live mount.

        Returns:
            list[MountRecord]: Live records, oldest first.
        """
        records = sorted(records_from_snapshot(self.store), key=lambda r: r.created_at)
        if not records:
            self.host.info("No archives currently mounted")
            return []

        self.host.info("Mounted archives: %d", len(records))
        for record in records:
            self.host.post(
                NotifyLevel.INFO, "%s → %s", record.archive_name, record.mount_point,
                timeout=5.0,
            )
        return records

    def cleanup(self) -> ReconcileReport:
        """Reconcile tracked mounts with the OS and report the result."""
        report = self._reconciler.reconcile()
        if report.persist_error:
            self.host.warn("Could not save mount registry: %s", report.persist_error)
        if report.adopted:
            self.host.info("Recovered %d mount(s) from a previous session", len(report.adopted))
        if report.cleaned:
            self.host.info("Cleaned up %d stale mount(s)", len(report.cleaned))
        else:
            self.host.info("No stale mounts found")
        return report

    def restore(self) -> list[str]:
        """Seed the store with registry mounts that are still live."""
        return self._reconciler.restore()

    def _persist(self) -> None:
        if self._persister is None:
            return
        try:
            self._persister.save(self.store)
        except PersistenceFailure as exc:
            self.host.warn("Could not save mount registry: %s", exc)
