"""Shared utilities for all CLI command modules.

Builds the plugin runtime for a one-shot terminal session and turns the
session's outcome into stdout and an exit status.
"""

from __future__ import annotations

import logging
import sys
from typing import Any, Mapping

import click
from rich.console import Console

from ..config import load_options
from ..host import TerminalHost
from ..plugin import FuseArchivePlugin

console = Console(stderr=True)


def setup_logging(debug: bool = False) -> None:
    """Configure logging on stderr."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )


def build_plugin(obj: Mapping[str, Any], host: TerminalHost) -> FuseArchivePlugin:
    """Create and set up a plugin for one CLI invocation.

    Every invocation is a new session with an empty State Store, so the
    registry is consulted first: with ``auto_cleanup`` a full cleanup
    runs, otherwise still-live mounts are restored.

    Args:
        obj: Global options collected by the main group.
        host: The terminal host for this invocation.

    Returns:
        FuseArchivePlugin: Ready to run actions.
    """
    options = load_options(
        obj.get("config_file"),
        mount_dir=obj.get("mount_dir"),
        registry_path=obj.get("registry_path"),
        smart_enter=obj.get("smart_enter"),
    )
    auto_cleanup = options.auto_cleanup
    plugin = FuseArchivePlugin(host, options.model_copy(update={"auto_cleanup": False}))
    plugin.setup()
    if auto_cleanup:
        plugin.run("cleanup")
    else:
        plugin.restore()
    return plugin


def finish(host: TerminalHost) -> None:
    """Print the navigation target and exit non-zero after errors."""
    if host.destination:
        click.echo(host.destination)
    if host.errors:
        sys.exit(1)
