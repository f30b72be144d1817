"""Local config artifacts mirrored from the server.

This module provides:
- CategoriesFile: <base>/categories.md, a markdown table of categories
- TagsRegistryFile: <base>/tags_registry.md, YAML frontmatter mapping
  category -> tag -> usage count

Both are human-editable; edits are picked up by the config file watcher and
pushed back to the server.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

import yaml

from vaultsync.client.api import Category, TagsRegistry
from vaultsync.client.store.markdown import atomic_write, split_frontmatter

logger = logging.getLogger(__name__)

CATEGORIES_FILENAME = "categories.md"
TAGS_FILENAME = "tags_registry.md"

DEFAULT_CATEGORIES = [
    Category("work", "Work tasks (general)"),
    Category("work/meetings", "Meetings and calls"),
    Category("work/tasks", "Current work tasks"),
    Category("ideas", "Ideas, thoughts, concepts"),
    Category("personal", "Personal notes, journal"),
    Category("projects", "Side projects (general)"),
    Category("projects/coding", "Programming, pet projects"),
    Category("projects/hobby", "Hobby projects"),
    Category("health", "Health, sport, nutrition"),
    Category("learning", "Learning, books, courses"),
    Category("creative", "Creative work, music, art"),
    Category("finance", "Finance, budget, investments"),
]

_TABLE_SEPARATOR = re.compile(r"^\|[\s:|-]+\|?$")

# Cell boundary: a pipe not escaped as \|
_CELL_BOUNDARY = re.compile(r"(?<!\\)\|")

CATEGORIES_HEADER = "| Category | Description | Reminder |"

TAGS_BODY = """
# Tags Registry

Auto-managed by vaultsync. Edit with caution.

Each category contains tags with usage counts. Tags with the lowest counts
are evicted when the limit is reached.
"""


class _ConfigFile:
    """A single markdown file directly inside the base folder."""

    filename = ""

    def __init__(self, vault_root: Path, base_folder: str) -> None:
        self._vault_root = Path(vault_root)
        self._base_folder = base_folder.strip("/")

    def set_base_folder(self, base_folder: str) -> None:
        """Update the base folder (when settings change)."""
        self._base_folder = base_folder.strip("/")

    def get_path(self) -> Path:
        """Filesystem path of the artifact."""
        return self._vault_root / self._base_folder / self.filename

    def exists(self) -> bool:
        return self.get_path().is_file()

    def _read_text(self) -> str | None:
        path = self.get_path()
        if not path.is_file():
            return None
        return path.read_text(encoding="utf-8")


class CategoriesFile(_ConfigFile):
    """Manages categories.md."""

    filename = CATEGORIES_FILENAME

    def ensure_exists(self) -> None:
        """Create the file with default categories if it is missing."""
        if self.exists():
            return
        logger.info(f"Creating default {self.filename}")
        atomic_write(self.get_path(), self.format(DEFAULT_CATEGORIES))

    def read(self) -> list[Category]:
        """Read categories; defaults if the file does not exist."""
        text = self._read_text()
        if text is None:
            return list(DEFAULT_CATEGORIES)
        return self.parse(text)

    def write(self, categories: list[Category]) -> None:
        atomic_write(self.get_path(), self.format(categories))

    @staticmethod
    def parse(text: str) -> list[Category]:
        """Parse the markdown table; two-column tables are accepted.

        The header is the row directly above the separator row, whatever its
        wording. A literal pipe inside a cell is written as \\|.
        """
        rows = [line.strip() for line in text.splitlines()]
        rows = [row for row in rows if row.startswith("|")]

        categories = []
        for i, row in enumerate(rows):
            if _TABLE_SEPARATOR.match(row):
                continue
            if i + 1 < len(rows) and _TABLE_SEPARATOR.match(rows[i + 1]):
                continue

            cells = _split_row(row)
            if not cells or not cells[0]:
                continue
            categories.append(
                Category(
                    name=cells[0],
                    description=cells[1] if len(cells) > 1 else "",
                    reminder=(cells[2] or None) if len(cells) > 2 else None,
                )
            )
        return categories

    @staticmethod
    def format(categories: list[Category]) -> str:
        lines = [
            CATEGORIES_HEADER,
            "|----------|-------------|----------|",
        ]
        for cat in categories:
            cells = [cat.name, cat.description, cat.reminder or ""]
            lines.append("| " + " | ".join(_escape_cell(c) for c in cells) + " |")
        return "\n".join(lines) + "\n"


def _escape_cell(text: str) -> str:
    return text.replace("|", "\\|")


def _split_row(row: str) -> list[str]:
    parts = _CELL_BOUNDARY.split(row)[1:]
    if row.endswith("|") and not row.endswith("\\|"):
        parts = parts[:-1]
    return [part.strip().replace("\\|", "|") for part in parts]


class TagsRegistryFile(_ConfigFile):
    """Manages tags_registry.md."""

    filename = TAGS_FILENAME

    def ensure_exists(self) -> None:
        """Create an empty registry if the file is missing."""
        if self.exists():
            return
        logger.info(f"Creating empty {self.filename}")
        atomic_write(self.get_path(), self.format({}))

    def read(self) -> TagsRegistry:
        text = self._read_text()
        if text is None:
            return {}
        return self.parse(text)

    def write(self, registry: TagsRegistry) -> None:
        atomic_write(self.get_path(), self.format(registry))

    @staticmethod
    def parse(text: str) -> TagsRegistry:
        """Parse the frontmatter; entries with non-integer counts are dropped."""
        frontmatter, _ = split_frontmatter(text)
        registry: TagsRegistry = {}
        for category, tags in frontmatter.items():
            counts: dict[str, int] = {}
            if isinstance(tags, dict):
                for tag, count in tags.items():
                    if isinstance(count, int) and not isinstance(count, bool):
                        counts[str(tag)] = count
            registry[str(category)] = counts
        return registry

    @staticmethod
    def format(registry: TagsRegistry) -> str:
        """Render with categories sorted and tags by descending count."""
        ordered = {
            category: dict(
                sorted(registry[category].items(), key=lambda kv: (-kv[1], kv[0]))
            )
            for category in sorted(registry)
        }
        dumped = yaml.safe_dump(
            ordered,
            sort_keys=False,
            allow_unicode=True,
            default_flow_style=False,
        )
        return f"---\n{dumped}---\n{TAGS_BODY}"
