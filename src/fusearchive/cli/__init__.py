"""
fusearchive CLI — mount archives from the shell.

Each command group lives in its own module and is registered onto the
main Click group here. Navigation targets go to stdout so a shell
function can follow them::

    fa() { local d; d=$(fusearchive mount "$1") && [ -n "$d" ] && cd "$d"; }

Entry point: fusearchive.cli:main
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import click

from .. import __version__
from ._common import setup_logging


@click.group()
@click.version_option(version=__version__, prog_name="fusearchive")
@click.option(
    "--config",
    "config_file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="YAML config file (default: ~/.config/fusearchive/config.yaml).",
)
@click.option(
    "--mount-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Base directory for mount points (suffixed with fuse-archive).",
)
@click.option(
    "--registry",
    "registry_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Mount registry file.",
)
@click.option(
    "--smart-enter/--no-smart-enter",
    default=None,
    help="Open non-archive files instead of entering them.",
)
@click.option("--debug", is_flag=True, help="Verbose logging on stderr.")
@click.pass_context
def main(
    ctx: click.Context,
    config_file: Optional[Path],
    mount_dir: Optional[Path],
    registry_path: Optional[Path],
    smart_enter: Optional[bool],
    debug: bool,
):
    """fusearchive — enter archives as if they were directories."""
    setup_logging(debug)
    ctx.ensure_object(dict)
    ctx.obj.update(
        config_file=config_file,
        mount_dir=mount_dir,
        registry_path=registry_path,
        smart_enter=smart_enter,
    )


# ---------------------------------------------------------------------------
# Register all command groups/commands from modular files
# ---------------------------------------------------------------------------

from .mount import register_mount_commands
from .status import register_status_commands

register_mount_commands(main)
register_status_commands(main)
