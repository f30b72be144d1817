"""Local note store: writes synced notes as markdown files in the vault.

This module provides:
- NoteStore: create/append note files, scan and perform archiving
- sanitize_filename: turn a display name into a safe file name

Vault paths are POSIX strings relative to the vault root, e.g.
"Notes/work/Weekly sync_20260207_100000.md". They are what the server sees
(mark-synced path map, append targets, archive reconciliation).
"""

from __future__ import annotations

import logging
import re
from datetime import UTC, datetime
from pathlib import Path, PurePosixPath
from typing import Any

from vaultsync.client.api import Note
from vaultsync.client.store.markdown import atomic_write, join_frontmatter, split_frontmatter

logger = logging.getLogger(__name__)

ARCHIVE_DIR = "_archive"
RESOLUTIONS = ("realized", "dropped", "outdated")
MAX_NAME_LENGTH = 100
UNCATEGORIZED = "uncategorized"

_ILLEGAL_CHARS = re.compile(r'[\\/:*?"<>|#^\[\]]')
_WHITESPACE = re.compile(r"\s+")


class NoteStoreError(Exception):
    """Raised when a note cannot be written, moved or archived."""


def sanitize_filename(name: str) -> str:
    """Replace illegal characters, collapse whitespace, trim, cap length."""
    cleaned = _ILLEGAL_CHARS.sub("_", name)
    cleaned = _WHITESPACE.sub(" ", cleaned).strip()
    return cleaned[:MAX_NAME_LENGTH]


def format_timestamp(value: datetime) -> str:
    """Format a timestamp as UTC "YYYY-MM-DDTHH:MM:SSZ"."""
    return value.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


def _safe_segments(path: str) -> list[str]:
    """Split a category path into folder names that cannot escape the base."""
    segments = []
    for part in path.split("/"):
        part = sanitize_filename(part)
        if part and part not in (".", ".."):
            segments.append(part)
    return segments


class NoteStore:
    """Writes notes into <vault_root>/<base_folder>."""

    def __init__(self, vault_root: Path, base_folder: str) -> None:
        """Initialize the note store.

        Args:
            vault_root: Root directory of the local note collection.
            base_folder: Folder inside the vault that receives synced notes.
        """
        self._vault_root = Path(vault_root)
        self._base_folder = base_folder.strip("/")

    @property
    def base_folder(self) -> str:
        return self._base_folder

    @property
    def base_path(self) -> Path:
        return self._vault_root / self._base_folder

    @property
    def archive_path(self) -> Path:
        return self.base_path / ARCHIVE_DIR

    def set_base_folder(self, base_folder: str) -> None:
        """Update the base folder (when settings change)."""
        self._base_folder = base_folder.strip("/")

    def to_vault_path(self, path: Path) -> str:
        """Convert a filesystem path into a vault path."""
        return path.relative_to(self._vault_root).as_posix()

    def resolve(self, vault_path: str) -> Path:
        """Convert a vault path into a filesystem path inside the vault.

        Raises:
            NoteStoreError: If the path would leave the vault.
        """
        pure = PurePosixPath(vault_path.lstrip("/"))
        if ".." in pure.parts:
            raise NoteStoreError(f"Path escapes the vault: {vault_path}")
        return self._vault_root.joinpath(*pure.parts)

    # === Writing ===

    def write(self, note: Note, sibling_names: list[str] | None = None) -> str | None:
        """Write a note to the vault.

        Args:
            note: Note to write.
            sibling_names: Display names of notes split from the same source.

        Returns:
            Vault path of the created or extended file, or None when the file
            already exists (deduplicated; nothing to do).
        """
        if note.append_to:
            path = self._append(note, note.append_to)
            if path is not None:
                return path
            logger.info(
                f"Append target {note.append_to} not found, creating a new note"
            )
        return self._create(note, sibling_names or [])

    def _create(self, note: Note, sibling_names: list[str]) -> str | None:
        folders = _safe_segments(note.category)
        if note.subcategory:
            folders.extend(_safe_segments(note.subcategory))

        suffix = note.created_at.astimezone(UTC).strftime("_%Y%m%d_%H%M%S")
        file_name = f"{sanitize_filename(note.name)}{suffix}.md"
        path = self.base_path.joinpath(*folders, file_name)

        if path.exists():
            logger.debug(f"Skipping {note.id}: {path.name} already exists")
            return None

        atomic_write(path, self.render(note, sibling_names))
        return self.to_vault_path(path)

    def _append(self, note: Note, append_to: str) -> str | None:
        target = self.resolve(append_to)

        if not target.exists():
            archived = self._archived_location(target)
            if archived is None or not archived.exists():
                return None
            target.parent.mkdir(parents=True, exist_ok=True)
            archived.rename(target)
            logger.info(f"Restored {self.to_vault_path(target)} from archive")

        frontmatter, body = split_frontmatter(target.read_text(encoding="utf-8"))
        frontmatter["updated"] = format_timestamp(note.created_at)
        body = f"{body.rstrip()}\n\n---\n\n{note.content.strip()}\n"
        atomic_write(target, join_frontmatter(frontmatter, body))
        return self.to_vault_path(target)

    def _archived_location(self, path: Path) -> Path | None:
        """Where a note under the base folder lives once archived."""
        try:
            relative = path.relative_to(self.base_path)
        except ValueError:
            return None
        if relative.parent == Path("."):
            return self.archive_path / UNCATEGORIZED / relative
        return self.archive_path / relative

    def render(self, note: Note, sibling_names: list[str] | None = None) -> str:
        """Render a note as markdown with YAML frontmatter."""
        frontmatter: dict[str, Any] = {
            "note_id": note.id,
            "category": note.category,
        }
        if note.subcategory:
            frontmatter["subcategory"] = note.subcategory
        frontmatter["tags"] = list(note.tags)
        frontmatter["summary"] = note.summary
        frontmatter["created"] = format_timestamp(note.created_at)
        if note.synced_at:
            frontmatter["synced"] = format_timestamp(note.synced_at)
        if note.action_items:
            frontmatter["action_items"] = list(note.action_items)
        if note.source_batch_id:
            frontmatter["source_batch_id"] = note.source_batch_id

        sections = [note.content.strip()]
        if note.tags:
            sections.append(" ".join(f"#{t.replace(' ', '_')}" for t in note.tags))
        if note.action_items:
            items = "\n".join(f"- [ ] {item}" for item in note.action_items)
            sections.append(f"## Action items\n\n{items}")
        if sibling_names:
            links = "\n".join(f"- [[{name}]]" for name in sibling_names)
            sections.append(f"**Related notes:**\n{links}")

        body = "\n\n".join(s for s in sections if s) + "\n"
        return join_frontmatter(frontmatter, body)

    # === Archive ===

    def scan_archived_paths(self) -> list[str]:
        """List vault paths of every archived note."""
        if not self.archive_path.is_dir():
            return []
        return sorted(
            self.to_vault_path(p)
            for p in self.archive_path.rglob("*.md")
            if p.is_file()
        )

    def can_archive(self, vault_path: str) -> bool:
        """Check a note lives in the base folder and is not archived yet."""
        pure = PurePosixPath(vault_path)
        base = PurePosixPath(self._base_folder)
        if pure.suffix != ".md" or not pure.is_relative_to(base):
            return False
        return ARCHIVE_DIR not in pure.relative_to(base).parts

    def archive(
        self,
        vault_path: str,
        resolution: str,
        now: datetime | None = None,
    ) -> str:
        """Archive a note: record the resolution, then move it under _archive/.

        Args:
            vault_path: Note to archive.
            resolution: One of RESOLUTIONS.
            now: Archive time (defaults to the current local time).

        Returns:
            Vault path of the archived file.

        Raises:
            NoteStoreError: If the note cannot be archived.
        """
        if resolution not in RESOLUTIONS:
            raise NoteStoreError(f"Unknown resolution: {resolution}")
        if not self.can_archive(vault_path):
            raise NoteStoreError(f"Not an archivable note: {vault_path}")

        source = self.resolve(vault_path)
        if not source.is_file():
            raise NoteStoreError(f"Note not found: {vault_path}")

        category_dir = source.parent.relative_to(self.base_path)
        if category_dir == Path("."):
            category_dir = Path(UNCATEGORIZED)
        destination = self.archive_path / category_dir / source.name
        if destination.exists():
            raise NoteStoreError(f"Already archived: {self.to_vault_path(destination)}")

        frontmatter, body = split_frontmatter(source.read_text(encoding="utf-8"))
        frontmatter["resolution"] = resolution
        frontmatter["archived_at"] = (now or datetime.now()).strftime("%Y-%m-%dT%H:%M:%S")
        atomic_write(source, join_frontmatter(frontmatter, body))

        destination.parent.mkdir(parents=True, exist_ok=True)
        source.rename(destination)
        logger.info(f"Archived {vault_path} as {resolution}")
        return self.to_vault_path(destination)
