"""Connection commands for the vaultsync CLI.

Commands:
- connect: Store the server endpoint and a refresh token
- disconnect: Forget stored tokens
"""

from __future__ import annotations

import click
import httpx

from vaultsync.client.cli.config import load_settings, save_settings
from vaultsync.client.cli.runtime import (
    build_config_sync,
    fail,
    run_async,
)
from vaultsync.client.errors import APIError, RenewalExpiredError
from vaultsync.client.keystore import CredentialStore, KeyStoreError
from vaultsync.core.types import ConfigStatus


@click.command()
@click.option(
    "--endpoint",
    default=None,
    help="Server URL (e.g., http://localhost:8000). Defaults to the saved one.",
)
@click.option(
    "--token",
    prompt="Refresh token",
    hide_input=True,
    help="Refresh token issued by the server.",
)
def connect(endpoint: str | None, token: str) -> None:
    """Connect this machine to a vaultsync server.

    Exchanges the token for a session, then mirrors the server's categories
    and tags into the vault (or seeds the server on first contact).
    """
    from vaultsync.client.api import ApiClient

    settings = load_settings()
    if endpoint:
        settings.endpoint = endpoint.rstrip("/")

    store = CredentialStore()

    async def _connect() -> ConfigStatus:
        client = ApiClient(settings.server_config(), persist=store.save)

        def persist_failed(e: Exception) -> None:
            raise KeyStoreError(f"Session could not be saved: {e}") from e

        client.auth.on_persist_failed = persist_failed
        async with client:
            client.auth.set_refresh_token(token)
            await client.auth.refresh()
            config_sync = build_config_sync(settings, client)
            await config_sync.initialize()
            return config_sync.status

    click.echo(f"Connecting to {settings.endpoint}...")
    try:
        status = run_async(_connect())
    except RenewalExpiredError:
        fail("The server rejected this token.")
    except KeyStoreError as e:
        fail(str(e))
    except (APIError, httpx.HTTPError) as e:
        fail(f"Could not reach the server: {e}")

    save_settings(settings)
    click.echo(click.style("Connected.", fg="green"))
    click.echo(f"Config: {status.emoji} {status.label}")
    click.echo(f"Notes folder: {settings.vault_path / settings.base_folder}")


@click.command()
def disconnect() -> None:
    """Forget the stored tokens."""
    try:
        CredentialStore().clear()
    except KeyStoreError as e:
        fail(str(e))
    click.echo("Disconnected. Run 'vaultsync connect' to reconnect.")
