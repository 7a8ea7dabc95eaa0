"""Error taxonomy for mount lifecycle operations.

Every failure is terminal to the single action that raised it. The action
surface in ``fusearchive.plugin`` turns these into user notifications.
"""

from __future__ import annotations

from typing import Optional


class FuseArchiveError(Exception):
    """Base exception for all fusearchive failures."""


class ConfigError(FuseArchiveError):
    """The base mount directory is unresolved or unusable."""


class SpawnError(FuseArchiveError):
    """An external command could not be started."""

    def __init__(self, command: str, reason: object) -> None:
        self.command = command
        self.reason = reason
        super().__init__(f"Spawn {command} failed: {reason}")


class ExecutionError(FuseArchiveError):
    """An external command ran but exited non-zero."""

    def __init__(self, command: str, code: int, stderr: str = "") -> None:
        self.command = command
        self.code = code
        self.stderr = stderr
        detail = f": {stderr.strip()}" if stderr and stderr.strip() else ""
        super().__init__(f"{command} exited with error code {code}{detail}")


class PersistenceFailure(FuseArchiveError):
    """The mount registry could not be written or read."""

    def __init__(self, message: str, path: Optional[object] = None) -> None:
        self.path = path
        super().__init__(message)


class StateInconsistency(FuseArchiveError):
    """A tracked record is missing a field it must have."""


class DuplicateMountWarning(UserWarning):
    """The archive is already mounted; not a failure."""

    def __init__(self, mount_point: str) -> None:
        self.mount_point = mount_point
        super().__init__(f"Archive already mounted at {mount_point}")
