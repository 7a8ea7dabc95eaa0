"""
Process Executor — run external tools with an explicit argument vector.

Nothing here goes through a shell: file names are passed as discrete
arguments, so quotes, spaces, and ``$`` in archive names are inert.
"""

from __future__ import annotations

import logging
import subprocess
from typing import Optional, Sequence

from pydantic import BaseModel

from .errors import ExecutionError, SpawnError

logger = logging.getLogger("fusearchive.process")


class ProcessResult(BaseModel):
    """Outcome of one external command."""

    command: str
    args: list[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        """True when the command exited with status 0."""
        return self.returncode == 0


class ProcessExecutor:
    """Spawns external commands and captures their output.

    Args:
        env: Optional environment for child processes (defaults to ours).
    """

    def __init__(self, env: Optional[dict[str, str]] = None) -> None:
        self._env = env

    def run(
        self,
        command: str,
        args: Sequence[str],
        cwd: Optional[str] = None,
    ) -> ProcessResult:
        """Run a command to completion.

        Args:
            command: Executable name or path.
            args: Argument vector, passed verbatim.
            cwd: Working directory for the child.

        Returns:
            ProcessResult with the exit status and captured output.

        Raises:
            SpawnError: If the process could not be started.
        """
        argv = [command, *args]
        logger.debug("Running %s (cwd=%s)", argv, cwd)
        try:
            completed = subprocess.run(
                argv,
                cwd=cwd,
                env=self._env,
                stdin=subprocess.DEVNULL,
                capture_output=True,
                text=True,
                check=False,
            )
        except OSError as exc:
            logger.debug("Spawn %s failed: %s", command, exc)
            raise SpawnError(command, exc) from exc

        result = ProcessResult(
            command=command,
            args=list(args),
            returncode=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
        )
        if not result.ok:
            logger.debug(
                "%s failed (rc=%d): %s",
                " ".join(argv), result.returncode, result.stderr.strip(),
            )
        return result

    def check(
        self,
        command: str,
        args: Sequence[str],
        cwd: Optional[str] = None,
    ) -> ProcessResult:
        """Run a command and require a zero exit status.

        Raises:
            SpawnError: If the process could not be started.
            ExecutionError: If it exited non-zero.
        """
        result = self.run(command, args, cwd=cwd)
        if not result.ok:
            raise ExecutionError(command, result.returncode, result.stderr)
        return result

    def first_success(
        self,
        candidates: Sequence[Sequence[str]],
        cwd: Optional[str] = None,
    ) -> Optional[ProcessResult]:
        """Try alternative commands in order until one exits 0.

        A candidate whose binary is missing is skipped like a failed one.

        Args:
            candidates: Argument vectors, each starting with the executable.
            cwd: Working directory for every attempt.

        Returns:
            The first successful result, or None if all of them failed.
        """
        for argv in candidates:
            try:
                result = self.run(argv[0], argv[1:], cwd=cwd)
            except SpawnError:
                continue
            if result.ok:
                return result
        return None
