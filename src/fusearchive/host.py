"""
Host collaborator surface — what the coordinator needs from the UI.

The coordinator never talks to a UI directly. It asks a Host for the
hovered entry and the current directory, tells it where to navigate, and
posts notifications through it. Query methods belong to the fast tier and
must return immediately.

``TerminalHost`` is the host used by the command line: navigation targets
are collected so the CLI can print them for a shell wrapper to ``cd`` into.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.markup import escape

from .models import HoveredEntry, NotifyLevel

logger = logging.getLogger("fusearchive.host")

TITLE = "fuse-archive"

_LOG_LEVELS = {
    NotifyLevel.INFO: logging.INFO,
    NotifyLevel.WARN: logging.WARNING,
    NotifyLevel.ERROR: logging.ERROR,
}


class Host(ABC):
    """Navigation, context queries, and notifications."""

    # -- queries (fast tier) --------------------------------------------

    @abstractmethod
    def hovered(self) -> Optional[HoveredEntry]:
        """The entry under the cursor, or None."""

    @abstractmethod
    def cwd(self) -> str:
        """Absolute path of the current directory."""

    # -- commands --------------------------------------------------------

    @abstractmethod
    def enter(self) -> None:
        """Plain directory enter on the hovered entry."""

    @abstractmethod
    def leave(self) -> None:
        """Go to the parent directory."""

    @abstractmethod
    def cd(self, path: str) -> None:
        """Navigate to ``path``."""

    @abstractmethod
    def open_hovered(self) -> None:
        """Open the hovered entry with its default application."""

    @abstractmethod
    def notify(
        self,
        message: str,
        level: NotifyLevel = NotifyLevel.INFO,
        timeout: Optional[float] = None,
    ) -> None:
        """Show a message to the user."""

    # -- helpers -----------------------------------------------------------

    def post(self, level: NotifyLevel, fmt: str, *args: object, timeout: Optional[float] = None) -> None:
        """Format, log, and notify in one call."""
        message = fmt % args if args else fmt
        logger.log(_LOG_LEVELS[level], "%s", message)
        self.notify(message, level, timeout if timeout is not None else level.timeout)

    def info(self, fmt: str, *args: object) -> None:
        self.post(NotifyLevel.INFO, fmt, *args)

    def warn(self, fmt: str, *args: object) -> None:
        self.post(NotifyLevel.WARN, fmt, *args)

    def error(self, fmt: str, *args: object) -> None:
        self.post(NotifyLevel.ERROR, fmt, *args)


class TerminalHost(Host):
    """Host backed by a terminal session.

    Args:
        cwd: Directory the command runs in.
        hovered: Path of the entry being activated, if any.
        console: Rich console for notifications (stderr by default).
    """

    _STYLES = {
        NotifyLevel.INFO: "cyan",
        NotifyLevel.WARN: "bold yellow",
        NotifyLevel.ERROR: "bold red",
    }

    def __init__(
        self,
        cwd: Optional[str] = None,
        hovered: Optional[str] = None,
        console: Optional[Console] = None,
    ) -> None:
        self._cwd = str(Path(cwd or Path.cwd()).resolve())
        self._hovered = Path(hovered).resolve() if hovered else None
        self._console = console or Console(stderr=True)
        self.destination: Optional[str] = None
        self.opened: Optional[str] = None
        self.errors = 0

    def hovered(self) -> Optional[HoveredEntry]:
        if self._hovered is None:
            return None
        return HoveredEntry(
            name=self._hovered.name,
            path=str(self._hovered),
            is_dir=self._hovered.is_dir(),
        )

    def cwd(self) -> str:
        return self._cwd

    def enter(self) -> None:
        if self._hovered is not None and self._hovered.is_dir():
            self.cd(str(self._hovered))

    def leave(self) -> None:
        self.cd(str(Path(self._cwd).parent))

    def cd(self, path: str) -> None:
        self._cwd = path
        self.destination = path

    def open_hovered(self) -> None:
        if self._hovered is None:
            return
        self.opened = str(self._hovered)
        click.launch(self.opened)

    def notify(
        self,
        message: str,
        level: NotifyLevel = NotifyLevel.INFO,
        timeout: Optional[float] = None,
    ) -> None:
        if level == NotifyLevel.ERROR:
            self.errors += 1
        style = self._STYLES[level]
        self._console.print(f"[{style}]{TITLE}:[/] {escape(message)}", highlight=False)
