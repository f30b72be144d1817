"""Command-line interface for vaultsync.

This module provides the main CLI entry point and assembles all commands.

Commands:
- connect: Store the server endpoint and exchange a refresh token
- disconnect: Forget stored tokens
- health: Check the server without credentials
- sync: Run one note sync now
- run: Sync continuously until interrupted
- config-sync: Pull (or push) categories and tags
- settings: Show or update local settings
- reminders: Show or update server-side digest reminders
- archive: Archive a note with a resolution
"""

from __future__ import annotations

import click

from vaultsync.client.cli.archive import archive
from vaultsync.client.cli.config import (
    get_config_dir,
    get_config_file,
    load_config,
    load_settings,
    save_config,
    save_settings,
)
from vaultsync.client.cli.connect import connect, disconnect
from vaultsync.client.cli.health import health
from vaultsync.client.cli.settings import reminders, settings_cmd
from vaultsync.client.cli.sync import config_sync, run, sync


@click.group()
@click.version_option(package_name="vaultsync")
def cli() -> None:
    """vaultsync - sync notes from the server into a local vault."""


# Connection commands
cli.add_command(connect)
cli.add_command(disconnect)
cli.add_command(health)

# Sync commands
cli.add_command(sync)
cli.add_command(run)
cli.add_command(config_sync)

# Settings commands
cli.add_command(settings_cmd)
cli.add_command(reminders)

# Note commands
cli.add_command(archive)


def main() -> None:
    """Entry point for the CLI."""
    cli()


__all__ = [
    "cli",
    "main",
    "get_config_dir",
    "get_config_file",
    "load_config",
    "load_settings",
    "save_config",
    "save_settings",
]
