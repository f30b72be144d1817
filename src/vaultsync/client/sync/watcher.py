"""File system watcher for the mirrored config artifacts.

This module provides:
- ConfigEventHandler: filters watchdog events down to the watched file names
- ConfigFileWatcher: runs a watchdog Observer on the base folder and hands
  each relevant change to the event loop

watchdog delivers events on its own observer thread; they are handed to the
loop with call_soon_threadsafe, so the callback always runs on the loop and
debouncing happens there.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import TYPE_CHECKING

from watchdog.events import (
    FileCreatedEvent,
    FileModifiedEvent,
    FileMovedEvent,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

if TYPE_CHECKING:
    from watchdog.observers.api import BaseObserver

logger = logging.getLogger(__name__)


def _decode(path: str | bytes) -> str:
    if isinstance(path, bytes):
        return path.decode("utf-8", errors="replace")
    return path


class ConfigEventHandler(FileSystemEventHandler):
    """Forwards create/modify/move-into events for a fixed set of files."""

    def __init__(
        self,
        filenames: Iterable[str],
        on_change: Callable[[Path], None],
        loop: asyncio.AbstractEventLoop,
    ) -> None:
        """Initialize the handler.

        Args:
            filenames: Bare file names to watch (e.g. "categories.md").
            on_change: Called on the loop with the changed file's path.
            loop: Event loop that owns on_change.
        """
        super().__init__()
        self._filenames = set(filenames)
        self._on_change = on_change
        self._loop = loop

    def _forward(self, raw_path: str | bytes) -> None:
        path = Path(_decode(raw_path))
        if path.name not in self._filenames:
            return
        logger.debug(f"Config file changed: {path}")
        try:
            self._loop.call_soon_threadsafe(self._on_change, path)
        except RuntimeError:
            # Loop already closed during shutdown
            logger.debug(f"Dropped change for {path}: event loop closed")

    def on_created(self, event: FileSystemEvent) -> None:
        if isinstance(event, FileCreatedEvent):
            self._forward(event.src_path)

    def on_modified(self, event: FileSystemEvent) -> None:
        if isinstance(event, FileModifiedEvent):
            self._forward(event.src_path)

    def on_moved(self, event: FileSystemEvent) -> None:
        # Editors that save via rename land here
        if isinstance(event, FileMovedEvent):
            self._forward(event.dest_path)


class ConfigFileWatcher:
    """Watches one directory (non-recursively) for config file changes."""

    def __init__(
        self,
        watch_path: Path,
        filenames: Iterable[str],
        on_change: Callable[[Path], None],
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        """Initialize the watcher.

        Args:
            watch_path: Directory holding the config files.
            filenames: Bare file names to report.
            on_change: Called on the loop with the changed file's path.
            loop: Event loop to deliver to (defaults to the running loop).
        """
        self._watch_path = Path(watch_path)
        self._handler = ConfigEventHandler(
            filenames, on_change, loop or asyncio.get_running_loop()
        )
        self._observer: BaseObserver | None = None

    @property
    def watch_path(self) -> Path:
        return self._watch_path

    @property
    def is_running(self) -> bool:
        return self._observer is not None

    def start(self) -> None:
        """Start watching. Creates the directory if it is missing."""
        if self._observer is not None:
            return

        self._watch_path.mkdir(parents=True, exist_ok=True)
        observer = Observer()
        observer.schedule(self._handler, str(self._watch_path), recursive=False)
        observer.start()
        self._observer = observer
        logger.info(f"Watching config files in {self._watch_path}")

    def stop(self) -> None:
        """Stop watching."""
        if self._observer is None:
            return

        self._observer.stop()
        self._observer.join(timeout=5.0)
        self._observer = None

    def __enter__(self) -> ConfigFileWatcher:
        self.start()
        return self

    def __exit__(self, *args: object) -> None:
        self.stop()
