"""Tests for categories.md and tags_registry.md managers."""

from pathlib import Path

import pytest

from vaultsync.client.api import Category
from vaultsync.client.store import (
    DEFAULT_CATEGORIES,
    CategoriesFile,
    TagsRegistryFile,
)
from vaultsync.client.store.markdown import split_frontmatter


@pytest.fixture
def categories(tmp_path: Path) -> CategoriesFile:
    return CategoriesFile(tmp_path, "Notes")


@pytest.fixture
def tags(tmp_path: Path) -> TagsRegistryFile:
    return TagsRegistryFile(tmp_path, "Notes")


class TestCategoriesFile:
    """Tests for CategoriesFile."""

    def test_path(self, categories: CategoriesFile, tmp_path: Path) -> None:
        assert categories.get_path() == tmp_path / "Notes" / "categories.md"

    def test_read_missing_returns_defaults(self, categories: CategoriesFile) -> None:
        assert categories.read() == DEFAULT_CATEGORIES

    def test_ensure_exists_writes_defaults_once(self, categories: CategoriesFile) -> None:
        categories.ensure_exists()
        assert categories.read() == DEFAULT_CATEGORIES

        categories.write([Category("mine")])
        categories.ensure_exists()
        assert categories.read() == [Category("mine")]

    def test_write_then_read(self, categories: CategoriesFile) -> None:
        rows = [Category("work", "Work stuff", "weekly"), Category("ideas", "Ideas")]
        categories.write(rows)
        assert categories.read() == rows

    def test_format(self) -> None:
        text = CategoriesFile.format([Category("work", "Work", "daily")])
        assert text == (
            "| Category | Description | Reminder |\n"
            "|----------|-------------|----------|\n"
            "| work | Work | daily |\n"
        )

    def test_parse_two_column_table(self) -> None:
        text = (
            "# Categories\n\n"
            "| Category | Description |\n"
            "|:---|:---|\n"
            "| work | Work tasks |\n"
            "| ideas | |\n"
        )
        assert CategoriesFile.parse(text) == [
            Category("work", "Work tasks"),
            Category("ideas", ""),
        ]

    def test_pipes_in_cells_are_escaped(self, categories: CategoriesFile) -> None:
        rows = [Category("work", "Meetings | calls", "a|b"), Category("esc", "x \\| y")]
        categories.write(rows)

        text = categories.get_path().read_text()
        assert "| work | Meetings \\| calls | a\\|b |" in text
        assert categories.read() == rows

    def test_parse_keeps_rows_named_like_header(self) -> None:
        text = CategoriesFile.format([Category("Category theory", "Maths")])
        assert CategoriesFile.parse(text) == [Category("Category theory", "Maths")]

    def test_parse_custom_header(self) -> None:
        text = "| Name | What |\n|---|---|\n| work | Job |\n"
        assert CategoriesFile.parse(text) == [Category("work", "Job")]

    def test_parse_skips_empty_names(self) -> None:
        assert CategoriesFile.parse("|  | orphan |\n") == []

    def test_set_base_folder(self, categories: CategoriesFile, tmp_path: Path) -> None:
        categories.set_base_folder("/Inbox/")
        assert categories.get_path() == tmp_path / "Inbox" / "categories.md"


class TestTagsRegistryFile:
    """Tests for TagsRegistryFile."""

    def test_read_missing(self, tags: TagsRegistryFile) -> None:
        assert tags.read() == {}

    def test_ensure_exists_creates_empty_registry(self, tags: TagsRegistryFile) -> None:
        tags.ensure_exists()
        assert tags.exists()
        assert tags.read() == {}

    def test_write_then_read(self, tags: TagsRegistryFile) -> None:
        registry = {"work": {"roadmap": 3, "hiring": 1}, "ideas": {}}
        tags.write(registry)
        assert tags.read() == registry

    def test_format_orders_categories_and_counts(self) -> None:
        text = TagsRegistryFile.format({
            "work": {"b": 1, "a": 5, "c": 5},
            "health": {"run": 2},
        })
        frontmatter, body = split_frontmatter(text)

        assert list(frontmatter) == ["health", "work"]
        assert list(frontmatter["work"]) == ["a", "c", "b"]
        assert "# Tags Registry" in body

    def test_parse_drops_non_integer_counts(self) -> None:
        text = "---\nwork:\n  roadmap: 3\n  broken: many\n  flag: true\nideas: oops\n---\n"
        assert TagsRegistryFile.parse(text) == {"work": {"roadmap": 3}, "ideas": {}}
