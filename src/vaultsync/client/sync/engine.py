"""Note sync engine.

This module provides:
- NoteSyncEngine: runs sync cycles (fetch unsynced notes, write them to the
  local store, acknowledge the ones that were written, reconcile archived
  notes) and schedules them with exponential backoff
- build_batch_siblings: cross-references notes split from one source

A cycle moves Idle -> Fetching -> WritingNotes -> MarkingSynced ->
ReconcilingArchive -> Idle. At most one cycle runs at a time; a trigger that
arrives while one is running returns SyncOutcome.skipped() immediately.
"""

from __future__ import annotations

import inspect
import logging
import time
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Protocol

from vaultsync.client.errors import RenewalExpiredError
from vaultsync.client.sync.scheduler import SyncScheduler
from vaultsync.core.config import DEFAULT_SYNC_INTERVAL
from vaultsync.core.types import OutcomeKind, SyncOutcome

if TYPE_CHECKING:
    import asyncio

    from vaultsync.client.api import Note, UnsyncedBatch

logger = logging.getLogger(__name__)

# Backoff saturates at 2**5 = 32x the base interval
MAX_BACKOFF_EXPONENT = 5

# Ignore repeated manual triggers within this window
MANUAL_SYNC_COOLDOWN = 2.0  # seconds

REAUTH_MESSAGE = "Auth token expired. Reconnect with a new token to resume syncing."

ArchiveScanner = Callable[[], "list[str] | Awaitable[list[str]]"]


class NotesApi(Protocol):
    """The part of ApiClient the engine needs."""

    async def fetch_unsynced(self) -> UnsyncedBatch: ...

    async def mark_synced(
        self, ids: list[str], path_map: dict[str, str] | None = None
    ) -> int: ...

    async def reconcile_archived(self, paths: list[str]) -> int: ...


class NoteWriter(Protocol):
    """Local note store.

    write() returns the vault path written, None when the note was
    deliberately skipped (already present), and raises on real failure.
    It may be sync or async.
    """

    def write(
        self, note: Note, sibling_names: list[str] | None = None
    ) -> str | None | Awaitable[str | None]: ...


def build_batch_siblings(notes: list[Note]) -> dict[str, list[str]]:
    """Map note id -> display names of the other notes in its batch.

    Notes without a batch id, and batches of one, get no entry.
    """
    groups: dict[str, list[Note]] = {}
    for note in notes:
        if note.source_batch_id:
            groups.setdefault(note.source_batch_id, []).append(note)

    siblings: dict[str, list[str]] = {}
    for group in groups.values():
        if len(group) < 2:
            continue
        for note in group:
            siblings[note.id] = [n.name for n in group if n.id != note.id]
    return siblings


async def _maybe_await(value: object) -> object:
    if inspect.isawaitable(value):
        return await value
    return value


class NoteSyncEngine:
    """Fetches unsynced notes, writes them locally, acknowledges them."""

    def __init__(
        self,
        client: NotesApi,
        store: NoteWriter,
        notify: Callable[[str], None] | None = None,
        clock: Callable[[], float] = time.monotonic,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        """Initialize the sync engine.

        Args:
            client: API client for server communication.
            store: Local note store.
            notify: Optional callback for user-visible notices.
            clock: Monotonic clock used for the manual-sync cooldown.
            loop: Event loop for the recurring timer (defaults to running loop).
        """
        self._client = client
        self._store = store
        self._notify_callback = notify
        self._clock = clock

        self._syncing = False
        self._consecutive_failures = 0
        self._base_interval = float(DEFAULT_SYNC_INTERVAL)
        self._running = False
        self._last_manual_sync: float | None = None
        self._reported_archived: set[str] = set()

        # Returns vault paths of locally archived notes
        self.archive_scanner: ArchiveScanner | None = None
        # Fired after every successful cycle
        self.on_server_reachable: Callable[[], None] | None = None

        self._scheduler = SyncScheduler(self._scheduled_cycle, loop=loop)

    @property
    def syncing(self) -> bool:
        """True while a cycle is in flight."""
        return self._syncing

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    @property
    def running(self) -> bool:
        """True while the recurring schedule is active."""
        return self._running

    # === Scheduling ===

    def next_interval(self) -> float:
        """Seconds until the next scheduled cycle under the current backoff."""
        exponent = min(self._consecutive_failures, MAX_BACKOFF_EXPONENT)
        return self._base_interval * (2**exponent)

    def time_until_next(self) -> float | None:
        """Seconds until the pending tick, or None if nothing is scheduled."""
        return self._scheduler.time_until_next()

    def start(self, interval_s: float) -> None:
        """Start the recurring schedule with an immediate first cycle."""
        self.stop()
        self._base_interval = float(interval_s)
        self._consecutive_failures = 0
        self._running = True
        self._scheduler.schedule(0)
        logger.info(f"Sync started (every {self._base_interval:.0f}s)")

    def stop(self) -> None:
        """Stop the recurring schedule.

        A cycle already in flight finishes normally but is not rescheduled.
        """
        if self._running:
            logger.info("Sync stopped")
        self._running = False
        self._scheduler.cancel()

    async def close(self) -> None:
        """Stop and wait for any in-flight scheduled cycle."""
        self.stop()
        await self._scheduler.wait_idle()

    async def _scheduled_cycle(self) -> None:
        try:
            await self.sync()
        except RenewalExpiredError:
            logger.error("Refresh token rejected, automatic sync stopped")
        except Exception as e:
            logger.warning(
                f"Scheduled sync failed ({self._consecutive_failures} in a row): {e}"
            )
        if self._running:
            self._scheduler.schedule(self.next_interval())

    # === Cycle ===

    async def sync(self) -> SyncOutcome:
        """Run one sync cycle.

        Returns:
            skipped() if a cycle is already running, otherwise the number of
            notes written.

        Raises:
            RenewalExpiredError: The refresh token is gone; the schedule is
                stopped.
            Exception: Any other cycle-level failure (fetch or mark-synced);
                counted towards the backoff.
        """
        if self._syncing:
            logger.debug("Sync already in progress, skipping")
            return SyncOutcome.skipped()
        self._syncing = True

        try:
            outcome = await self._run_cycle()
        except RenewalExpiredError:
            self._notify(REAUTH_MESSAGE)
            self.stop()
            raise
        except Exception as e:
            self._consecutive_failures += 1
            logger.error(f"Sync error (attempt {self._consecutive_failures}): {e}")
            raise
        finally:
            self._syncing = False

        self._consecutive_failures = 0
        self._server_reachable()
        return outcome

    async def _run_cycle(self) -> SyncOutcome:
        batch = await self._client.fetch_unsynced()
        notes = batch.notes

        if not notes:
            logger.debug("No new notes on server")
            await self._reconcile_archived()
            return SyncOutcome.no_new_data()

        siblings = build_batch_siblings(notes)
        synced_ids: list[str] = []
        path_map: dict[str, str] = {}

        for note in notes:
            try:
                path = await _maybe_await(
                    self._store.write(note, siblings.get(note.id))
                )
            except Exception as e:
                # Left unacknowledged so the next cycle fetches it again
                logger.error(f"Failed to write note {note.id}: {e}")
                continue

            if path:
                path_map[note.id] = str(path)
            else:
                logger.debug(f"Note {note.id} already present locally")
            synced_ids.append(note.id)

        if synced_ids:
            await self._client.mark_synced(synced_ids, path_map or None)

        written = len(path_map)
        failed = len(notes) - len(synced_ids)
        logger.info(
            f"Sync cycle: {len(notes)} fetched, {written} written, "
            f"{len(synced_ids) - written} already present, {failed} failed"
        )
        if written:
            self._notify(f"Synced {written} note(s)")

        await self._reconcile_archived()
        return SyncOutcome.written(written)

    async def _reconcile_archived(self) -> None:
        """Report newly archived notes to the server; never fails the cycle."""
        if self.archive_scanner is None:
            return

        try:
            paths = await _maybe_await(self.archive_scanner())
            new_paths = [p for p in paths if p not in self._reported_archived]
            if not new_paths:
                return
            await self._client.reconcile_archived(new_paths)
            self._reported_archived.update(new_paths)
            logger.info(f"Reconciled {len(new_paths)} archived note(s)")
        except Exception as e:
            logger.warning(f"Archive reconciliation failed: {e}")

    def _server_reachable(self) -> None:
        if self.on_server_reachable is None:
            return
        try:
            self.on_server_reachable()
        except Exception:
            logger.exception("on_server_reachable callback failed")

    # === Manual trigger ===

    async def manual_sync(self) -> SyncOutcome:
        """User-triggered sync with cooldown and user-facing feedback.

        Returns:
            skipped() when inside the cooldown window or while another cycle
            runs; otherwise the cycle outcome.

        Raises:
            The cycle error, after notifying the user.
        """
        now = self._clock()
        if (
            self._last_manual_sync is not None
            and now - self._last_manual_sync < MANUAL_SYNC_COOLDOWN
        ):
            logger.debug("Manual sync ignored (cooldown)")
            return SyncOutcome.skipped()

        if self._syncing:
            self._notify("Sync already in progress")
            return SyncOutcome.skipped()

        self._last_manual_sync = now
        try:
            outcome = await self.sync()
        except RenewalExpiredError:
            raise
        except Exception as e:
            self._notify(f"Sync failed: {e}")
            raise

        if outcome.kind is OutcomeKind.NO_NEW_DATA:
            self._notify("No new notes")
        return outcome

    def _notify(self, message: str) -> None:
        if self._notify_callback:
            self._notify_callback(message)
