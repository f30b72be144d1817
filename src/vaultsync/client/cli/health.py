"""Server health command for the vaultsync CLI.

Commands:
- health: Check the server without credentials
"""

from __future__ import annotations

import click
import httpx

from vaultsync.client.cli.config import load_settings
from vaultsync.client.cli.runtime import fail, run_async
from vaultsync.client.errors import APIError


@click.command()
def health() -> None:
    """Check that the server is up (no authentication needed)."""
    from vaultsync.client.api import ApiClient, HealthStatus

    settings = load_settings()

    async def _health() -> HealthStatus:
        async with ApiClient(settings.server_config()) as client:
            return await client.health()

    try:
        status = run_async(_health())
    except (APIError, httpx.HTTPError) as e:
        fail(f"{settings.endpoint} is unreachable: {e}")

    click.echo(f"{settings.endpoint}: {status.status} (version {status.version})")
