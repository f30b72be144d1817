"""Wiring shared by the CLI commands.

Builds the API client, stores and orchestrators from the saved settings so
every command assembles them the same way.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from collections.abc import Callable, Coroutine
from typing import Any, NoReturn, TypeVar

import click

from vaultsync.client.api import ApiClient
from vaultsync.client.keystore import CredentialStore
from vaultsync.client.store import CategoriesFile, NoteStore, TagsRegistryFile
from vaultsync.client.sync import ConfigSync, NoteSyncEngine
from vaultsync.core.config import Settings

T = TypeVar("T")

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"

SESSION_NOT_SAVED = (
    "Session could not be saved to the keyring; reconnect after restarting"
)


def setup_logging(verbose: bool = False) -> None:
    """Send vaultsync logs to stderr.

    Replaces any handlers on the package logger and stops propagation so
    library users' root logging config is left alone.
    """
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%H:%M:%S"))

    package_logger = logging.getLogger("vaultsync")
    for existing in package_logger.handlers[:]:
        package_logger.removeHandler(existing)
    package_logger.addHandler(handler)
    package_logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    package_logger.propagate = False


def build_client(
    settings: Settings,
    store: CredentialStore | None = None,
    notify: Callable[[str], None] | None = None,
) -> ApiClient:
    """API client with credentials loaded from, and persisted to, the keyring.

    notify receives a notice when a renewed session cannot be saved.
    """
    store = store or CredentialStore()
    client = ApiClient(
        settings.server_config(),
        credentials=store.load(),
        persist=store.save,
    )
    if notify is not None:
        client.auth.on_persist_failed = lambda e: notify(f"{SESSION_NOT_SAVED}: {e}")
    return client


def build_note_store(settings: Settings) -> NoteStore:
    return NoteStore(settings.vault_path, settings.base_folder)


def build_config_sync(
    settings: Settings,
    client: ApiClient,
    notify: Callable[[str], None] | None = None,
) -> ConfigSync:
    return ConfigSync(
        client,
        CategoriesFile(settings.vault_path, settings.base_folder),
        TagsRegistryFile(settings.vault_path, settings.base_folder),
        notify=notify,
    )


def build_engine(
    settings: Settings,
    client: ApiClient,
    notify: Callable[[str], None] | None = None,
) -> NoteSyncEngine:
    """Engine writing into the configured vault, reporting archived notes."""
    store = build_note_store(settings)
    engine = NoteSyncEngine(client, store, notify=notify)
    engine.archive_scanner = store.scan_archived_paths
    return engine


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """Run a coroutine to completion from a click command."""
    return asyncio.run(coro)


def fail(message: str) -> NoReturn:
    """Print an error and exit with status 1."""
    click.echo(f"Error: {message}", err=True)
    sys.exit(1)
