"""Local file stores: synced notes and mirrored config artifacts."""

from vaultsync.client.store.config_files import (
    CATEGORIES_FILENAME,
    DEFAULT_CATEGORIES,
    TAGS_FILENAME,
    CategoriesFile,
    TagsRegistryFile,
)
from vaultsync.client.store.notes import (
    ARCHIVE_DIR,
    RESOLUTIONS,
    NoteStore,
    NoteStoreError,
    sanitize_filename,
)

__all__ = [
    "ARCHIVE_DIR",
    "CATEGORIES_FILENAME",
    "DEFAULT_CATEGORIES",
    "RESOLUTIONS",
    "TAGS_FILENAME",
    "CategoriesFile",
    "NoteStore",
    "NoteStoreError",
    "TagsRegistryFile",
    "sanitize_filename",
]
