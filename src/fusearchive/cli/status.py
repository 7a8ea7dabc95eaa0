"""Registry commands: list, cleanup."""

from __future__ import annotations

import json

import click
from rich.table import Table

from ..host import TerminalHost
from ..registry import records_from_snapshot
from ._common import build_plugin, console, finish


def register_status_commands(main: click.Group) -> None:
    """Register list and cleanup."""

    @main.command("list")
    @click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
    @click.option("--table", "as_table", is_flag=True, help="Show a table instead of messages.")
    @click.pass_obj
    def list_cmd(obj: dict, as_json: bool, as_table: bool):
        """List mounted archives.

        \b
        Example:

            fusearchive list --json
        """
        host = TerminalHost()
        plugin = build_plugin(obj, host)

        if not (as_json or as_table):
            plugin.run("list")
            finish(host)
            return

        records = sorted(records_from_snapshot(plugin.store), key=lambda r: r.created_at)
        if as_json:
            click.echo(json.dumps([r.model_dump(mode="json") for r in records], indent=2))
            return

        table = Table(show_header=True, box=None, padding=(0, 2))
        table.add_column("Archive", style="bold")
        table.add_column("Mount point")
        table.add_column("Return to", style="dim")
        for record in records:
            table.add_row(record.archive_name, record.mount_point, record.original_directory or "—")
        console.print(table)

    @main.command("cleanup")
    @click.pass_obj
    def cleanup_cmd(obj: dict):
        """Remove records and directories of archives no longer mounted.

        \b
        Example:

            fusearchive cleanup
        """
        host = TerminalHost()
        plugin = build_plugin(obj, host)
        plugin.run("cleanup")
        finish(host)
