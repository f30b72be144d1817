"""Sync commands for the vaultsync CLI.

Commands:
- sync: Run one note sync now
- config-sync: Pull (or push) categories and tags
- run: Sync continuously until interrupted
"""

from __future__ import annotations

import asyncio
import logging
import signal

import click

from vaultsync.client.cli.config import is_configured, load_settings
from vaultsync.client.cli.runtime import (
    build_client,
    build_config_sync,
    build_engine,
    fail,
    run_async,
    setup_logging,
)
from vaultsync.client.errors import RenewalExpiredError
from vaultsync.client.keystore import KeyStoreError
from vaultsync.client.notifications import Notifier
from vaultsync.core.config import Settings
from vaultsync.core.types import ConfigStatus, OutcomeKind, SyncOutcome

logger = logging.getLogger(__name__)


def _require_connection() -> Settings:
    if not is_configured():
        fail("Not connected. Run 'vaultsync connect' first.")
    return load_settings()


@click.command()
def sync() -> None:
    """Fetch new notes from the server and write them into the vault."""
    settings = _require_connection()

    async def _sync() -> SyncOutcome:
        async with build_client(settings, notify=click.echo) as client:
            engine = build_engine(settings, client, notify=click.echo)
            return await engine.manual_sync()

    try:
        outcome = run_async(_sync())
    except KeyStoreError as e:
        fail(str(e))
    except RenewalExpiredError:
        # The engine already printed the reconnect notice
        raise SystemExit(1) from None
    except Exception as e:
        logger.debug(f"Manual sync failed: {e}")
        raise SystemExit(1) from None

    if outcome.kind is OutcomeKind.SKIPPED:
        click.echo("Nothing happened (a sync was just run).")
    elif outcome.kind is OutcomeKind.WRITTEN:
        click.echo(click.style(f"Done: {outcome}", fg="green"))


@click.command("config-sync")
@click.option(
    "--push",
    is_flag=True,
    help="Push local categories and tags instead of pulling.",
)
def config_sync(push: bool) -> None:
    """Sync categories and tags with the server.

    By default the server copy overwrites the local files.
    """
    settings = _require_connection()

    async def _config_sync() -> ConfigStatus:
        async with build_client(settings, notify=click.echo) as client:
            orchestrator = build_config_sync(settings, client, notify=click.echo)
            if push:
                # Unknown last-synced hashes, so both files are sent
                await orchestrator.push(orchestrator.categories_path)
                await orchestrator.push(orchestrator.tags_path)
            else:
                await orchestrator.manual_sync()
            return orchestrator.status

    try:
        status = run_async(_config_sync())
    except KeyStoreError as e:
        fail(str(e))

    click.echo(f"Config: {status.emoji} {status.label}")
    if status is not ConfigStatus.SYNCED:
        raise SystemExit(1)


@click.command()
@click.option("--verbose", "-v", is_flag=True, help="Log debug output.")
@click.option(
    "--no-notify",
    is_flag=True,
    help="Log notices instead of showing desktop notifications.",
)
def run(verbose: bool, no_notify: bool) -> None:
    """Sync continuously until interrupted (Ctrl+C).

    Notes are fetched on the configured interval, backing off while the
    server fails. Edits to categories.md and tags_registry.md are pushed
    to the server.
    """
    settings = _require_connection()
    setup_logging(verbose)
    notify = Notifier(desktop=not no_notify)

    click.echo(f"Syncing with {settings.endpoint}")
    click.echo(f"Notes folder: {settings.vault_path / settings.base_folder}")
    click.echo("Press Ctrl+C to stop.\n")

    try:
        run_async(_daemon(settings, notify))
    except KeyStoreError as e:
        fail(str(e))
    except KeyboardInterrupt:
        pass
    click.echo("\nStopped.")


async def _daemon(settings: Settings, notify: Notifier) -> None:
    loop = asyncio.get_running_loop()
    stop = asyncio.Event()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except (NotImplementedError, RuntimeError):
            # Not available on Windows; Ctrl+C raises KeyboardInterrupt there
            pass

    async with build_client(settings, notify=notify) as client:
        orchestrator = build_config_sync(settings, client, notify=notify)
        engine = build_engine(settings, client, notify=notify)

        last_status: list[ConfigStatus] = []

        def on_status_change(status: ConfigStatus) -> None:
            if last_status and last_status[-1] is status:
                return
            last_status[:] = [status]
            click.echo(f"Config: {status.emoji} {status.label}")

        background: set[asyncio.Task[None]] = set()

        def on_server_reachable() -> None:
            # Recover config sync after an offline period
            if orchestrator.status is not ConfigStatus.OFFLINE:
                return
            logger.info("Server reachable again, re-initializing config sync")
            task = loop.create_task(orchestrator.initialize())
            background.add(task)
            task.add_done_callback(background.discard)

        orchestrator.on_status_change = on_status_change
        engine.on_server_reachable = on_server_reachable

        await orchestrator.initialize()
        orchestrator.start_watching()

        if settings.auto_sync:
            engine.start(settings.sync_interval_s)
        else:
            logger.info("Automatic sync disabled; watching config files only")

        try:
            await stop.wait()
        finally:
            orchestrator.close()
            await engine.close()
            await orchestrator.wait_idle()
            if background:
                await asyncio.gather(*background, return_exceptions=True)

