"""Shared test fixtures for fusearchive."""

from __future__ import annotations

import os
import subprocess
from pathlib import Path
from typing import Optional

import pytest

from fusearchive.coordinator import MountCoordinator
from fusearchive.host import Host
from fusearchive.models import GlobalConfig, HoveredEntry, NotifyLevel
from fusearchive.process import ProcessExecutor
from fusearchive.registry import RegistryPersister
from fusearchive.state import StateStore

FIXED_NOW = 1697500000.0


class RecordingHost(Host):
    """Host that records navigation and notifications instead of acting."""

    def __init__(self, cwd: Path, hovered: Optional[HoveredEntry] = None) -> None:
        self._cwd = str(cwd)
        self._hovered = hovered
        self.events: list[tuple] = []
        self.notifications: list[tuple[NotifyLevel, str, Optional[float]]] = []

    def hover(self, name: Optional[str], is_dir: bool = False) -> None:
        if name is None:
            self._hovered = None
            return
        self._hovered = HoveredEntry(
            name=name, path=os.path.join(self._cwd, name), is_dir=is_dir
        )

    def move_to(self, path: Path) -> None:
        self._cwd = str(path)

    def hovered(self) -> Optional[HoveredEntry]:
        return self._hovered

    def cwd(self) -> str:
        return self._cwd

    def enter(self) -> None:
        self.events.append(("enter",))

    def leave(self) -> None:
        self.events.append(("leave",))
        self._cwd = str(Path(self._cwd).parent)

    def cd(self, path: str) -> None:
        self.events.append(("cd", path))
        self._cwd = path

    def open_hovered(self) -> None:
        self.events.append(("open",))

    def notify(self, message, level=NotifyLevel.INFO, timeout=None) -> None:
        self.notifications.append((level, message, timeout))

    def messages(self, level: Optional[NotifyLevel] = None) -> list[str]:
        return [m for lvl, m, _ in self.notifications if level is None or lvl == level]


class FakeRunner:
    """Stand-in for subprocess.run that simulates FUSE tools.

    ``codes`` maps either the argv without its last element or the bare
    command name to an exit code. ``missing`` lists binaries that raise
    FileNotFoundError. ``mounted`` tracks paths the fake tools mounted.
    """

    MOUNT_TOOLS = ("fuse-archive",)
    UNMOUNT_TOOLS = ("fusermount", "fusermount3", "umount")

    def __init__(self) -> None:
        self.calls: list[list[str]] = []
        self.cwds: list[Optional[str]] = []
        self.codes: dict = {}
        self.missing: set[str] = set()
        self.mounted: set[str] = set()

    def __call__(self, argv, **kwargs):
        argv = list(argv)
        self.calls.append(argv)
        self.cwds.append(kwargs.get("cwd"))
        command = argv[0]
        if command in self.missing:
            raise FileNotFoundError(2, "No such file or directory", command)

        if command == "mountpoint":
            rc = 0 if argv[-1] in self.mounted else 1
        else:
            rc = self.codes.get(tuple(argv[:-1]), self.codes.get(command, 0))

        if rc == 0 and command in self.MOUNT_TOOLS:
            self.mounted.add(argv[-1])
        if rc == 0 and command in self.UNMOUNT_TOOLS:
            self.mounted.discard(argv[-1])

        return subprocess.CompletedProcess(
            argv, rc, stdout="", stderr="" if rc == 0 else f"{command}: failed"
        )

    def commands(self) -> list[str]:
        return [c[0] for c in self.calls]


@pytest.fixture
def runner(monkeypatch: pytest.MonkeyPatch) -> FakeRunner:
    """Patch subprocess.run with a FakeRunner."""
    fake = FakeRunner()
    monkeypatch.setattr("fusearchive.process.subprocess.run", fake)
    return fake


@pytest.fixture
def downloads(tmp_path: Path) -> Path:
    """A Downloads directory holding one archive and one text file."""
    d = tmp_path / "home" / "u" / "Downloads"
    d.mkdir(parents=True)
    (d / "data.tar.gz").write_bytes(b"\x1f\x8b")
    (d / "notes.txt").write_text("hello")
    (d / "photos").mkdir()
    return d


@pytest.fixture
def base_dir(tmp_path: Path) -> Path:
    """Base mount directory (not created up front)."""
    return tmp_path / "state" / "fa"


@pytest.fixture
def store(base_dir: Path) -> StateStore:
    """A State Store with the global config in place."""
    s = StateStore()
    s.set_global_config(GlobalConfig(base_mount_dir=base_dir, smart_enter_enabled=False))
    return s


@pytest.fixture
def persister(tmp_path: Path) -> RegistryPersister:
    """Registry persister writing under the tmp config tree."""
    return RegistryPersister(tmp_path / "config" / "fusearchive" / "mount-state.json")


@pytest.fixture
def host(downloads: Path) -> RecordingHost:
    """A recording host sitting in the Downloads directory."""
    return RecordingHost(downloads)


@pytest.fixture
def coordinator(
    host: RecordingHost,
    store: StateStore,
    persister: RegistryPersister,
    runner: FakeRunner,
) -> MountCoordinator:
    """Coordinator wired to fakes, with a frozen clock."""
    return MountCoordinator(
        host, store, ProcessExecutor(), persister=persister, clock=lambda: FIXED_NOW
    )
