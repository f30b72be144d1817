"""Two-way sync of the shared configuration artifacts.

This module provides:
- ConfigSync: keeps categories.md and tags_registry.md consistent with the
  server (pull on init, debounced push on local edit) and tracks a coarse
  ConfigStatus for display
- content_hash: stable digest used to suppress echo pushes

A push is skipped when the local content hashes identically to the last
snapshot pushed to or pulled from the server. Without that check, writing a
pulled file would trigger the watcher, which would push the same content
straight back.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

from vaultsync.client.errors import RenewalExpiredError
from vaultsync.client.sync.engine import REAUTH_MESSAGE
from vaultsync.client.sync.watcher import ConfigFileWatcher
from vaultsync.core.types import ConfigStatus

if TYPE_CHECKING:
    from vaultsync.client.api import Category, InitResult, TagsRegistry

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE = 2.0  # seconds

CATEGORIES = "categories"
TAGS = "tags"


class ConfigApi(Protocol):
    """The part of ApiClient the orchestrator needs."""

    async def get_categories(self) -> list[Category]: ...

    async def update_categories(self, categories: list[Category]) -> list[Category]: ...

    async def init(self, categories: list[Category]) -> InitResult: ...

    async def get_tags(self) -> TagsRegistry: ...

    async def update_tags(self, registry: TagsRegistry) -> TagsRegistry: ...


class ConfigArtifact(Protocol):
    """A local config file manager (CategoriesFile, TagsRegistryFile)."""

    def ensure_exists(self) -> None: ...

    def read(self) -> Any: ...

    def write(self, value: Any) -> None: ...

    def get_path(self) -> Path: ...


def content_hash(obj: Any) -> str:
    """SHA-256 of the canonical JSON form (sorted keys, UTF-8)."""
    canonical = json.dumps(
        obj, sort_keys=True, ensure_ascii=False, separators=(",", ":")
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def _categories_payload(categories: list[Category]) -> list[dict[str, Any]]:
    return [c.to_dict() for c in categories]


def _same_path(a: Path, b: Path) -> bool:
    if a == b:
        return True
    try:
        return a.resolve() == b.resolve()
    except OSError:
        return False


class ConfigSync:
    """Keeps the local categories and tags files in step with the server."""

    def __init__(
        self,
        client: ConfigApi,
        categories: ConfigArtifact,
        tags: ConfigArtifact,
        notify: Callable[[str], None] | None = None,
        debounce_s: float = DEFAULT_DEBOUNCE,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            client: API client for server communication.
            categories: Manager for categories.md.
            tags: Manager for tags_registry.md.
            notify: Optional callback for user-visible notices.
            debounce_s: Quiet period after the last local edit before pushing.
            loop: Event loop for the debounce timer (defaults to running loop).
        """
        self._client = client
        self._categories = categories
        self._tags = tags
        self._notify_callback = notify
        self._debounce_s = debounce_s
        self._loop = loop

        self.on_status_change: Callable[[ConfigStatus], None] | None = None
        self._status = ConfigStatus.OFFLINE

        # Hash of the last snapshot agreed with the server, per artifact
        self._hashes: dict[str, str | None] = {CATEGORIES: None, TAGS: None}

        self._pending: set[Path] = set()
        self._debounce: asyncio.TimerHandle | None = None
        self._tasks: set[asyncio.Task[None]] = set()
        self._watcher: ConfigFileWatcher | None = None

    @property
    def status(self) -> ConfigStatus:
        return self._status

    @property
    def categories_path(self) -> Path:
        return self._categories.get_path()

    @property
    def tags_path(self) -> Path:
        return self._tags.get_path()

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def _set_status(self, status: ConfigStatus) -> None:
        if status is not self._status:
            logger.debug(f"Config status: {self._status.value} -> {status.value}")
        self._status = status
        if self.on_status_change:
            self.on_status_change(status)

    def _notify(self, message: str) -> None:
        if self._notify_callback:
            self._notify_callback(message)

    def _artifact_kind(self, path: Path) -> str | None:
        if _same_path(path, self._categories.get_path()):
            return CATEGORIES
        if _same_path(path, self._tags.get_path()):
            return TAGS
        return None

    # === Pull ===

    async def initialize(self) -> None:
        """First-contact handshake.

        Seeds the server with the local categories when it has none,
        otherwise pulls them. Tags are always pulled.
        """
        self._categories.ensure_exists()
        self._tags.ensure_exists()
        self._set_status(ConfigStatus.PENDING)

        try:
            server_categories = await self._client.get_categories()
            if server_categories:
                self._store_categories(server_categories)
            else:
                await self._seed_categories()
            await self._pull_tags()
        except RenewalExpiredError:
            self._auth_failed()
            return
        except Exception as e:
            logger.warning(f"Config init failed, working with local config: {e}")
            self._set_status(ConfigStatus.OFFLINE)
            return

        self._set_status(ConfigStatus.SYNCED)

    async def pull_from_server(self) -> bool:
        """Overwrite both local artifacts with the server's copy.

        Returns:
            True if the pull succeeded.
        """
        self._set_status(ConfigStatus.PENDING)
        try:
            server_categories = await self._client.get_categories()
            if server_categories:
                self._store_categories(server_categories)
            await self._pull_tags()
        except RenewalExpiredError:
            self._auth_failed()
            return False
        except Exception as e:
            logger.warning(f"Config pull failed: {e}")
            self._set_status(ConfigStatus.OFFLINE)
            return False

        self._set_status(ConfigStatus.SYNCED)
        return True

    async def _seed_categories(self) -> None:
        local = self._categories.read()
        result = await self._client.init(local)
        self._hashes[CATEGORIES] = content_hash(_categories_payload(local))
        logger.info(
            f"Seeded server with {result.categories_saved} categories "
            f"({result.pending_notes} pending notes)"
        )
        if result.pending_notes:
            self._notify(f"Processing {result.pending_notes} pending note(s)")

    def _store_categories(self, categories: list[Category]) -> None:
        # Hash first so the watcher event from this write is recognised as an echo
        self._hashes[CATEGORIES] = content_hash(_categories_payload(categories))
        self._categories.write(categories)
        logger.debug(f"Pulled {len(categories)} categories")

    async def _pull_tags(self) -> None:
        registry = await self._client.get_tags()
        self._hashes[TAGS] = content_hash(registry)
        self._tags.write(registry)
        logger.debug(f"Pulled tags for {len(registry)} categories")

    # === Push ===

    async def push(self, path: Path) -> None:
        """Push one local artifact if it differs from the last server snapshot.

        Failures are reported through status and notice; the local file is
        left as the user edited it.
        """
        kind = self._artifact_kind(Path(path))
        if kind is None:
            logger.debug(f"Ignoring push for unrelated path {path}")
            return

        try:
            if kind == CATEGORIES:
                categories = self._categories.read()
                digest = content_hash(_categories_payload(categories))
                if digest == self._hashes[CATEGORIES]:
                    self._set_status(ConfigStatus.SYNCED)
                    return
                self._set_status(ConfigStatus.PENDING)
                await self._client.update_categories(categories)
            else:
                registry = self._tags.read()
                digest = content_hash(registry)
                if digest == self._hashes[TAGS]:
                    self._set_status(ConfigStatus.SYNCED)
                    return
                self._set_status(ConfigStatus.PENDING)
                await self._client.update_tags(registry)
        except RenewalExpiredError:
            self._auth_failed()
            return
        except Exception as e:
            logger.error(f"Failed to push {kind}: {e}")
            self._set_status(ConfigStatus.ERROR)
            self._notify(f"Failed to sync config: {e}")
            return

        self._hashes[kind] = digest
        logger.info(f"Pushed {kind} to server")
        self._set_status(ConfigStatus.SYNCED)

    def file_changed(self, path: Path) -> None:
        """Note a local edit and (re)arm the debounce timer.

        Must be called on the event loop.
        """
        path = Path(path)
        if self._artifact_kind(path) is None:
            return

        self._pending.add(path)
        self._set_status(ConfigStatus.PENDING)

        if self._debounce is not None:
            self._debounce.cancel()
        self._debounce = self._get_loop().call_later(
            self._debounce_s, self._flush_pending
        )

    def _flush_pending(self) -> None:
        self._debounce = None
        paths = sorted(self._pending)
        self._pending.clear()
        if not paths:
            return

        task = self._get_loop().create_task(self._push_all(paths))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _push_all(self, paths: list[Path]) -> None:
        for path in paths:
            await self.push(path)

    async def flush(self) -> None:
        """Push pending edits now instead of waiting for the debounce."""
        if self._debounce is not None:
            self._debounce.cancel()
        self._flush_pending()
        await self.wait_idle()

    async def wait_idle(self) -> None:
        """Wait for debounced pushes already in flight."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # === Lifecycle ===

    def start_watching(self) -> None:
        """Watch the base folder for edits to either artifact."""
        if self._watcher is not None:
            return

        categories_path = self._categories.get_path()
        tags_path = self._tags.get_path()
        self._watcher = ConfigFileWatcher(
            categories_path.parent,
            {categories_path.name, tags_path.name},
            self.file_changed,
            loop=self._get_loop(),
        )
        self._watcher.start()

    async def manual_sync(self) -> bool:
        """User-triggered pull with a notice on success."""
        ok = await self.pull_from_server()
        if ok:
            self._notify("Config synced")
        return ok

    def close(self) -> None:
        """Cancel the debounce timer and stop the watcher."""
        if self._debounce is not None:
            self._debounce.cancel()
            self._debounce = None
        self._pending.clear()
        if self._watcher is not None:
            self._watcher.stop()
            self._watcher = None

    def _auth_failed(self) -> None:
        logger.error("Refresh token rejected during config sync")
        self._set_status(ConfigStatus.ERROR)
        self._notify(REAUTH_MESSAGE)
