"""
State Store — the only mutable state shared between the two tiers.

The fast tier (host UI context) may call any StateStore method: each one
takes the lock, touches a dict, and returns. No I/O, no validation, no
loops over records. The slow tier works on ``snapshot()`` copies and
writes results back through the same accessors.

LockTable serializes mount and unmount per archive so the "already
mounted?" check and the record commit happen as one step.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from types import MappingProxyType
from typing import Any, Iterator, Mapping, Optional

from .models import GlobalConfig

GLOBAL_KEY = "global"


class StateStore:
    """Mutex-guarded mapping of entry id -> field mapping.

    Records are stored as plain dicts keyed by archive id. The reserved
    ``global`` entry holds the GlobalConfig.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._data: dict[str, dict[str, Any]] = {}

    def get(self, entry_id: str, key: str, default: Any = None) -> Any:
        """Read one field of one entry."""
        with self._lock:
            entry = self._data.get(entry_id)
            if entry is None:
                return default
            return entry.get(key, default)

    def set(self, entry_id: str, key: str, value: Any) -> None:
        """Write one field of one entry, creating the entry if needed."""
        with self._lock:
            self._data.setdefault(entry_id, {})[key] = value

    def update(self, entry_id: str, fields: Mapping[str, Any]) -> None:
        """Write several fields of one entry at once."""
        with self._lock:
            self._data.setdefault(entry_id, {}).update(fields)

    def claim(self, entry_id: str, fields: Mapping[str, Any]) -> bool:
        """Create an entry only if ``entry_id`` is unused.

        Returns:
            True if the entry was created, False if the id was taken.
        """
        with self._lock:
            if entry_id in self._data:
                return False
            self._data[entry_id] = dict(fields)
            return True

    def delete(self, entry_id: str, key: Optional[str] = None) -> None:
        """Remove one field, or the whole entry when ``key`` is None.

        An entry left with no fields is dropped.
        """
        with self._lock:
            entry = self._data.get(entry_id)
            if entry is None:
                return
            if key is not None:
                entry.pop(key, None)
            if key is None or not entry:
                del self._data[entry_id]

    def fields(self, entry_id: str) -> Optional[Mapping[str, Any]]:
        """Read-only copy of one entry's fields, or None."""
        with self._lock:
            entry = self._data.get(entry_id)
            return None if entry is None else MappingProxyType(dict(entry))

    def snapshot(self) -> Mapping[str, Mapping[str, Any]]:
        """Shallow structural copy of every entry.

        Returns:
            A read-only mapping of read-only field mappings.
        """
        with self._lock:
            copied = {k: MappingProxyType(dict(v)) for k, v in self._data.items()}
        return MappingProxyType(copied)

    # -- global configuration -------------------------------------------

    def set_global_config(self, config: GlobalConfig) -> None:
        """Store the process-wide configuration."""
        self.update(
            GLOBAL_KEY,
            {
                "base_mount_dir": config.base_mount_dir,
                "smart_enter": config.smart_enter_enabled,
            },
        )

    def base_mount_dir(self) -> Optional[Any]:
        """Configured base mount directory, or None before setup."""
        return self.get(GLOBAL_KEY, "base_mount_dir")

    def smart_enter(self) -> bool:
        """Whether non-archive files are opened instead of entered."""
        return bool(self.get(GLOBAL_KEY, "smart_enter", False))


class LockTable:
    """Per-key mutual exclusion with idle locks reclaimed.

    Usage::

        locks = LockTable()
        with locks.hold("/home/u/data.zip"):
            ...  # check, mount, commit
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}
        self._users: dict[str, int] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        """Hold the lock for ``key`` for the duration of the block."""
        with self._guard:
            lock = self._locks.setdefault(key, threading.Lock())
            self._users[key] = self._users.get(key, 0) + 1
        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                self._users[key] -= 1
                if self._users[key] == 0:
                    del self._users[key]
                    del self._locks[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
