"""Mount commands: mount, unmount, entry."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import click

from ..host import TerminalHost
from ._common import build_plugin, finish


def register_mount_commands(main: click.Group) -> None:
    """Register mount, unmount, and entry."""

    @main.command("mount")
    @click.argument(
        "archive",
        required=False,
        type=click.Path(exists=True, path_type=Path),
    )
    @click.pass_obj
    def mount_cmd(obj: dict, archive: Optional[Path]):
        """Mount ARCHIVE and print its mount point.

        \b
        Directories are entered, other files are entered or opened
        (with --smart-enter), archives are mounted.

        \b
        Examples:

            fusearchive mount data.tar.gz

            cd "$(fusearchive mount ~/Downloads/iso/debian.iso)"
        """
        cwd = str(archive.resolve().parent) if archive else None
        host = TerminalHost(cwd=cwd, hovered=str(archive) if archive else None)
        plugin = build_plugin(obj, host)
        plugin.run("mount")
        finish(host)

    @main.command("unmount")
    @click.option(
        "--cwd",
        type=click.Path(exists=True, file_okay=False, path_type=Path),
        default=None,
        help="Directory inside the mount (default: current directory).",
    )
    @click.pass_obj
    def unmount_cmd(obj: dict, cwd: Optional[Path]):
        """Unmount the archive you are in and print where you came from.

        \b
        Example:

            cd "$(fusearchive unmount)"
        """
        host = TerminalHost(cwd=str(cwd) if cwd else None)
        plugin = build_plugin(obj, host)
        plugin.run("unmount")
        finish(host)

    @main.command("entry")
    @click.argument("action", required=False)
    @click.argument(
        "target",
        required=False,
        type=click.Path(exists=True, path_type=Path),
    )
    @click.pass_obj
    def entry_cmd(obj: dict, action: Optional[str], target: Optional[Path]):
        """Run a plugin action by name (mount, unmount, list, cleanup)."""
        if target is not None and target.is_file():
            host = TerminalHost(cwd=str(target.resolve().parent), hovered=str(target))
        else:
            host = TerminalHost(cwd=str(target) if target else None)
        plugin = build_plugin(obj, host)
        plugin.run(action)
        finish(host)
