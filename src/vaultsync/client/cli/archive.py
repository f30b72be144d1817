"""Archive command for the vaultsync CLI.

Commands:
- archive: Close a note with a resolution and move it under _archive/
"""

from __future__ import annotations

from pathlib import Path

import click

from vaultsync.client.cli.config import load_settings
from vaultsync.client.cli.runtime import build_note_store, fail
from vaultsync.client.store import RESOLUTIONS, NoteStore, NoteStoreError


def _vault_path(store: NoteStore, path: str) -> str:
    """Accept a filesystem path or a vault-relative path."""
    candidate = Path(path).expanduser()
    if candidate.is_absolute() or candidate.exists():
        try:
            return store.to_vault_path(candidate.absolute())
        except ValueError:
            fail(f"{path} is not inside the vault")
    return Path(path).as_posix()


@click.command()
@click.argument("path")
@click.option(
    "--resolution",
    "-r",
    type=click.Choice(RESOLUTIONS),
    required=True,
    help="Why the note is closed.",
)
def archive(path: str, resolution: str) -> None:
    """Archive the note at PATH.

    The resolution is recorded in the note's frontmatter. The server is told
    about the archived note on the next sync.
    """
    settings = load_settings()
    store = build_note_store(settings)

    try:
        archived = store.archive(_vault_path(store, path), resolution)
    except NoteStoreError as e:
        fail(str(e))

    click.echo(f"Archived as {resolution}: {archived}")
