"""Tests for the Stale Mount Reconciler and mount probing."""

from __future__ import annotations

from pathlib import Path

from fusearchive.models import MountRecord, Registry, RegistryEntry
from fusearchive.process import ProcessExecutor
from fusearchive.reconcile import MountProbe, StaleMountReconciler, remove_mount_dir
from fusearchive.registry import RegistryPersister
from fusearchive.state import StateStore

from conftest import FakeRunner


def _track(store: StateStore, base: Path, name: str, cwd: str = "/home/u") -> MountRecord:
    mount_point = base / f"{name}.tmp1"
    mount_point.mkdir(parents=True, exist_ok=True)
    record = MountRecord(
        archive_id=mount_point.name,
        mount_point=str(mount_point),
        original_directory=cwd,
        archive_name=name,
    )
    store.update(record.archive_id, record.to_fields())
    return record


def _reconciler(store: StateStore, persister: RegistryPersister) -> StaleMountReconciler:
    return StaleMountReconciler(store, MountProbe(ProcessExecutor()), persister)


class TestMountProbe:
    """Deciding whether a path is an active mount."""

    def test_mountpoint_zero(self, runner: FakeRunner) -> None:
        runner.mounted.add("/m/a")
        assert MountProbe(ProcessExecutor()).is_mounted("/m/a") is True
        assert runner.calls == [["mountpoint", "-q", "/m/a"]]

    def test_mountpoint_nonzero(self, runner: FakeRunner) -> None:
        assert MountProbe(ProcessExecutor()).is_mounted("/m/a") is False

    def test_proc_mounts_fallback(self, runner: FakeRunner, tmp_path: Path) -> None:
        """Without the mountpoint binary, /proc/mounts is scanned."""
        runner.missing.add("mountpoint")
        table = tmp_path / "mounts"
        table.write_text(
            "proc /proc proc rw 0 0\n"
            "fuse-archive /m/my\\040archive.zip.tmp1 fuse.fuse-archive ro 0 0\n"
        )
        probe = MountProbe(ProcessExecutor(), proc_mounts=table)
        assert probe.is_mounted("/m/my archive.zip.tmp1") is True
        assert probe.is_mounted("/m/other") is False

    def test_proc_mounts_unreadable(self, runner: FakeRunner, tmp_path: Path) -> None:
        runner.missing.add("mountpoint")
        probe = MountProbe(ProcessExecutor(), proc_mounts=tmp_path / "absent")
        assert probe.is_mounted("/m/a") is False


class TestRemoveMountDir:
    def test_removes_empty(self, tmp_path: Path) -> None:
        d = tmp_path / "mp"
        d.mkdir()
        assert remove_mount_dir(str(d)) is True
        assert not d.exists()

    def test_ignores_missing_and_non_empty(self, tmp_path: Path) -> None:
        assert remove_mount_dir(str(tmp_path / "absent")) is False
        d = tmp_path / "full"
        d.mkdir()
        (d / "f").write_text("x")
        assert remove_mount_dir(str(d)) is False
        assert d.exists()


class TestReconcile:
    """Reconciliation of live records."""

    def test_removes_exactly_the_stale_record(
        self, runner: FakeRunner, store: StateStore, persister: RegistryPersister, base_dir: Path
    ) -> None:
        live = _track(store, base_dir, "live.zip")
        stale = _track(store, base_dir, "stale.zip")
        runner.mounted.add(live.mount_point)

        report = _reconciler(store, persister).reconcile()

        assert report.cleaned == [stale.archive_id]
        assert store.get(live.archive_id, "mount_point") == live.mount_point
        assert store.fields(stale.archive_id) is None
        assert Path(live.mount_point).is_dir()
        assert not Path(stale.mount_point).exists()

    def test_persists_after_cleaning(
        self, runner: FakeRunner, store: StateStore, persister: RegistryPersister, base_dir: Path
    ) -> None:
        live = _track(store, base_dir, "live.zip")
        _track(store, base_dir, "stale.zip")
        runner.mounted.add(live.mount_point)

        _reconciler(store, persister).reconcile()

        assert [e.archive for e in persister.load()] == [live.archive_id]

    def test_idempotent(
        self, runner: FakeRunner, store: StateStore, persister: RegistryPersister, base_dir: Path
    ) -> None:
        live = _track(store, base_dir, "live.zip")
        _track(store, base_dir, "stale1.zip")
        _track(store, base_dir, "stale2.zip")
        runner.mounted.add(live.mount_point)
        reconciler = _reconciler(store, persister)

        assert len(reconciler.reconcile().cleaned) == 2
        second = reconciler.reconcile()
        assert second.cleaned == []
        assert second.changed is False

    def test_nothing_to_do_does_not_write(
        self, runner: FakeRunner, store: StateStore, persister: RegistryPersister
    ) -> None:
        report = _reconciler(store, persister).reconcile()
        assert report.cleaned == []
        assert not persister.path.exists()

    def test_persist_failure_reported(
        self, runner: FakeRunner, store: StateStore, base_dir: Path, tmp_path: Path
    ) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("x")
        _track(store, base_dir, "stale.zip")
        report = _reconciler(store, RegistryPersister(blocker / "r.json")).reconcile()
        assert len(report.cleaned) == 1
        assert report.persist_error


class TestRegistryOrphans:
    """Mounts known only to the registry (previous session)."""

    def _write(self, persister: RegistryPersister, *entries: RegistryEntry) -> None:
        persister.path.parent.mkdir(parents=True, exist_ok=True)
        persister.path.write_text(Registry(mounts=list(entries)).model_dump_json())

    def test_live_orphan_adopted(
        self, runner: FakeRunner, store: StateStore, persister: RegistryPersister, base_dir: Path
    ) -> None:
        mp = base_dir / "old.iso.tmp5"
        mp.mkdir(parents=True)
        runner.mounted.add(str(mp))
        self._write(persister, RegistryEntry(
            archive="old.iso.tmp5", mount_point=str(mp), cwd="/home/u", name="old.iso",
        ))

        report = _reconciler(store, persister).reconcile()

        assert report.adopted == ["old.iso.tmp5"]
        assert report.cleaned == []
        assert store.get("old.iso.tmp5", "original_directory") == "/home/u"
        assert store.get("old.iso.tmp5", "archive_name") == "old.iso"

    def test_dead_orphan_cleaned(
        self, runner: FakeRunner, store: StateStore, persister: RegistryPersister, base_dir: Path
    ) -> None:
        mp = base_dir / "old.iso.tmp5"
        mp.mkdir(parents=True)
        self._write(persister, RegistryEntry(archive="old.iso.tmp5", mount_point=str(mp)))
        reconciler = _reconciler(store, persister)

        first = reconciler.reconcile()
        assert first.cleaned == ["old.iso.tmp5"]
        assert not mp.exists()
        assert store.fields("old.iso.tmp5") is None
        assert reconciler.reconcile().cleaned == []

    def test_corrupt_registry_ignored(
        self, runner: FakeRunner, store: StateStore, persister: RegistryPersister
    ) -> None:
        persister.path.parent.mkdir(parents=True)
        persister.path.write_text("{nope")
        assert _reconciler(store, persister).reconcile().cleaned == []

    def test_restore_adopts_only_live(
        self, runner: FakeRunner, store: StateStore, persister: RegistryPersister, base_dir: Path
    ) -> None:
        live = base_dir / "a.zip.tmp1"
        dead = base_dir / "b.zip.tmp1"
        live.mkdir(parents=True)
        dead.mkdir(parents=True)
        runner.mounted.add(str(live))
        self._write(
            persister,
            RegistryEntry(archive="a.zip.tmp1", mount_point=str(live)),
            RegistryEntry(archive="b.zip.tmp1", mount_point=str(dead)),
        )

        adopted = _reconciler(store, persister).restore()

        assert adopted == ["a.zip.tmp1"]
        assert store.fields("b.zip.tmp1") is None
        assert dead.exists()

    def test_dead_entries_survive_until_cleanup(
        self, runner: FakeRunner, store: StateStore, persister: RegistryPersister, base_dir: Path
    ) -> None:
        """A rewrite after restore keeps dead entries for the next cleanup."""
        dead = base_dir / "b.zip.tmp1"
        dead.mkdir(parents=True)
        self._write(persister, RegistryEntry(archive="b.zip.tmp1", mount_point=str(dead)))
        reconciler = _reconciler(store, persister)

        assert reconciler.restore() == []
        live = _track(store, base_dir, "new.zip")
        runner.mounted.add(live.mount_point)
        persister.save(store)
        assert {e.archive for e in persister.load()} == {"b.zip.tmp1", live.archive_id}

        report = reconciler.reconcile()

        assert report.cleaned == ["b.zip.tmp1"]
        assert not dead.exists()
        assert [e.archive for e in persister.load()] == [live.archive_id]
