"""Tests for the note sync engine."""

import asyncio
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

from vaultsync.client.api import Note, UnsyncedBatch
from vaultsync.client.errors import APIError, RenewalExpiredError
from vaultsync.client.sync.engine import (
    MANUAL_SYNC_COOLDOWN,
    REAUTH_MESSAGE,
    NoteSyncEngine,
    build_batch_siblings,
)
from vaultsync.core.types import OutcomeKind, SyncOutcome


def make_note(note_id: str, batch: str | None = None, name: str | None = None) -> Note:
    return Note(
        id=note_id,
        name=name or f"Note {note_id}",
        content="body",
        category="work",
        tags=[],
        summary="",
        created_at=datetime(2026, 2, 7, 10, tzinfo=UTC),
        source_batch_id=batch,
    )


def make_client(notes: list[Note] | None = None) -> MagicMock:
    """Create a fake API client returning the given batch."""
    client = MagicMock()
    client.fetch_unsynced = AsyncMock(return_value=UnsyncedBatch(notes=notes or []))
    client.mark_synced = AsyncMock(return_value=0)
    client.reconcile_archived = AsyncMock(return_value=0)
    return client


def make_store(paths: dict[str, object] | None = None) -> MagicMock:
    """Create a fake store: note id -> returned path, None, or exception."""
    paths = paths or {}

    def write(note: Note, sibling_names: list[str] | None = None) -> str | None:
        result = paths.get(note.id, f"Notes/work/{note.id}.md")
        if isinstance(result, Exception):
            raise result
        return result  # type: ignore[return-value]

    store = MagicMock()
    store.write = MagicMock(side_effect=write)
    return store


class FakeClock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


class TestBuildBatchSiblings:
    """Tests for build_batch_siblings."""

    def test_four_in_batch_one_unrelated(self) -> None:
        notes = [make_note(str(i), batch="b1") for i in range(1, 5)]
        notes.append(make_note("5"))

        siblings = build_batch_siblings(notes)

        assert siblings["1"] == ["Note 2", "Note 3", "Note 4"]
        assert siblings["4"] == ["Note 1", "Note 2", "Note 3"]
        assert "5" not in siblings

    def test_group_of_one_has_no_siblings(self) -> None:
        assert build_batch_siblings([make_note("1", batch="solo")]) == {}

    def test_separate_batches(self) -> None:
        notes = [
            make_note("1", batch="a"),
            make_note("2", batch="b"),
            make_note("3", batch="a"),
        ]
        assert build_batch_siblings(notes) == {"1": ["Note 3"], "3": ["Note 1"]}


class TestSyncCycle:
    """Tests for NoteSyncEngine.sync."""

    @pytest.mark.asyncio
    async def test_writes_and_marks_synced_once(self) -> None:
        client = make_client([make_note("1"), make_note("2")])
        engine = NoteSyncEngine(client, make_store())

        outcome = await engine.sync()

        assert outcome == SyncOutcome.written(2)
        client.mark_synced.assert_awaited_once_with(
            ["1", "2"],
            {"1": "Notes/work/1.md", "2": "Notes/work/2.md"},
        )

    @pytest.mark.asyncio
    async def test_failed_write_excluded_from_mark_synced(self) -> None:
        """Three notes fetched, note 2 hits "disk full"."""
        client = make_client([make_note("1"), make_note("2"), make_note("3")])
        store = make_store({"2": OSError("disk full")})
        engine = NoteSyncEngine(client, store)

        outcome = await engine.sync()

        assert outcome == SyncOutcome.written(2)
        client.mark_synced.assert_awaited_once()
        ids, path_map = client.mark_synced.await_args.args
        assert ids == ["1", "3"]
        assert set(path_map) == {"1", "3"}
        assert engine.consecutive_failures == 0

    @pytest.mark.asyncio
    async def test_deduplicated_note_still_marked_synced(self) -> None:
        client = make_client([make_note("1"), make_note("2")])
        store = make_store({"1": None})
        engine = NoteSyncEngine(client, store)

        outcome = await engine.sync()

        assert outcome == SyncOutcome.written(1)
        client.mark_synced.assert_awaited_once_with(["1", "2"], {"2": "Notes/work/2.md"})

    @pytest.mark.asyncio
    async def test_all_deduplicated(self) -> None:
        client = make_client([make_note("1")])
        engine = NoteSyncEngine(client, make_store({"1": None}))

        outcome = await engine.sync()

        assert outcome.kind is OutcomeKind.NO_NEW_DATA
        client.mark_synced.assert_awaited_once_with(["1"], None)

    @pytest.mark.asyncio
    async def test_all_writes_fail_skips_mark_synced(self) -> None:
        client = make_client([make_note("1")])
        engine = NoteSyncEngine(client, make_store({"1": OSError("read-only")}))

        await engine.sync()

        client.mark_synced.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_async_store_supported(self) -> None:
        client = make_client([make_note("1")])
        store = MagicMock()
        store.write = AsyncMock(return_value="Notes/a.md")
        engine = NoteSyncEngine(client, store)

        assert await engine.sync() == SyncOutcome.written(1)

    @pytest.mark.asyncio
    async def test_siblings_passed_to_store(self) -> None:
        notes = [make_note("1", batch="b"), make_note("2", batch="b"), make_note("3")]
        store = make_store()
        engine = NoteSyncEngine(make_client(notes), store)

        await engine.sync()

        calls = {c.args[0].id: c.args[1] for c in store.write.call_args_list}
        assert calls == {"1": ["Note 2"], "2": ["Note 1"], "3": None}

    @pytest.mark.asyncio
    async def test_empty_batch(self) -> None:
        client = make_client([])
        reachable = MagicMock()
        engine = NoteSyncEngine(client, make_store())
        engine.on_server_reachable = reachable

        outcome = await engine.sync()

        assert outcome.kind is OutcomeKind.NO_NEW_DATA
        client.mark_synced.assert_not_awaited()
        reachable.assert_called_once()

    @pytest.mark.asyncio
    async def test_fetch_failure_never_marks_synced(self) -> None:
        client = make_client()
        client.fetch_unsynced.side_effect = APIError("down", 503)
        reachable = MagicMock()
        engine = NoteSyncEngine(client, make_store())
        engine.on_server_reachable = reachable

        with pytest.raises(APIError):
            await engine.sync()

        client.mark_synced.assert_not_awaited()
        reachable.assert_not_called()
        assert engine.consecutive_failures == 1
        assert not engine.syncing

    @pytest.mark.asyncio
    async def test_failures_count_then_reset(self) -> None:
        client = make_client()
        client.fetch_unsynced.side_effect = [
            APIError("down", 503),
            APIError("down", 503),
            APIError("bad request", 400),
            UnsyncedBatch(notes=[]),
        ]
        engine = NoteSyncEngine(client, make_store())

        for expected in (1, 2, 3):
            with pytest.raises(APIError):
                await engine.sync()
            assert engine.consecutive_failures == expected

        await engine.sync()
        assert engine.consecutive_failures == 0

    @pytest.mark.asyncio
    async def test_mark_synced_failure_is_cycle_failure(self) -> None:
        client = make_client([make_note("1")])
        client.mark_synced.side_effect = APIError("down", 500)
        engine = NoteSyncEngine(client, make_store())

        with pytest.raises(APIError):
            await engine.sync()

        assert engine.consecutive_failures == 1

    @pytest.mark.asyncio
    async def test_concurrent_trigger_is_skipped(self) -> None:
        gate = asyncio.Event()
        client = make_client()

        async def slow_fetch() -> UnsyncedBatch:
            await gate.wait()
            return UnsyncedBatch(notes=[])

        client.fetch_unsynced.side_effect = slow_fetch
        engine = NoteSyncEngine(client, make_store())

        first = asyncio.create_task(engine.sync())
        await asyncio.sleep(0)
        assert engine.syncing

        second = await engine.sync()
        gate.set()
        await first

        assert second.kind is OutcomeKind.SKIPPED
        client.fetch_unsynced.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_renewal_expired_stops_engine(self) -> None:
        client = make_client()
        client.fetch_unsynced.side_effect = RenewalExpiredError("gone", 401)
        notify = MagicMock()
        engine = NoteSyncEngine(client, make_store(), notify=notify)
        engine._running = True

        with pytest.raises(RenewalExpiredError):
            await engine.sync()

        notify.assert_called_once_with(REAUTH_MESSAGE)
        assert not engine.running
        assert engine.consecutive_failures == 0


class TestArchiveReconciliation:
    """Tests for reporting archived notes after a cycle."""

    @pytest.mark.asyncio
    async def test_reports_archived_paths(self) -> None:
        client = make_client([make_note("1")])
        engine = NoteSyncEngine(client, make_store())
        engine.archive_scanner = lambda: ["Notes/_archive/work/a.md"]

        await engine.sync()

        client.reconcile_archived.assert_awaited_once_with(["Notes/_archive/work/a.md"])

    @pytest.mark.asyncio
    async def test_only_new_paths_reported(self) -> None:
        client = make_client()
        engine = NoteSyncEngine(client, make_store())
        scanned = [["Notes/_archive/a.md"], ["Notes/_archive/a.md", "Notes/_archive/b.md"]]
        engine.archive_scanner = AsyncMock(side_effect=scanned)

        await engine.sync()
        await engine.sync()

        assert [c.args[0] for c in client.reconcile_archived.await_args_list] == [
            ["Notes/_archive/a.md"],
            ["Notes/_archive/b.md"],
        ]

    @pytest.mark.asyncio
    async def test_failed_report_is_retried_next_cycle(self) -> None:
        client = make_client()
        client.reconcile_archived.side_effect = [APIError("down", 503), 1]
        engine = NoteSyncEngine(client, make_store())
        engine.archive_scanner = lambda: ["Notes/_archive/a.md"]

        await engine.sync()
        await engine.sync()

        assert client.reconcile_archived.await_count == 2

    @pytest.mark.asyncio
    async def test_scanner_failure_does_not_fail_cycle(self) -> None:
        client = make_client([make_note("1")])
        engine = NoteSyncEngine(client, make_store())
        engine.archive_scanner = MagicMock(side_effect=OSError("permission denied"))

        outcome = await engine.sync()

        assert outcome == SyncOutcome.written(1)
        assert engine.consecutive_failures == 0


class TestScheduling:
    """Tests for the recurring schedule and backoff."""

    def test_next_interval_backoff(self) -> None:
        engine = NoteSyncEngine(make_client(), make_store())
        engine._base_interval = 10.0

        intervals = []
        for failures in range(8):
            engine._consecutive_failures = failures
            intervals.append(engine.next_interval())

        assert intervals == [10, 20, 40, 80, 160, 320, 320, 320]

    @pytest.mark.asyncio
    async def test_start_runs_immediately_and_rearms(self) -> None:
        client = make_client()
        engine = NoteSyncEngine(client, make_store())

        engine.start(30)
        await asyncio.sleep(0.01)

        client.fetch_unsynced.assert_awaited_once()
        remaining = engine.time_until_next()
        assert remaining is not None
        assert 29 < remaining <= 30
        await engine.close()
        assert engine.time_until_next() is None

    @pytest.mark.asyncio
    async def test_failed_cycle_backs_off(self) -> None:
        client = make_client()
        client.fetch_unsynced.side_effect = APIError("down", 503)
        engine = NoteSyncEngine(client, make_store())

        engine.start(30)
        await asyncio.sleep(0.01)

        assert engine.consecutive_failures == 1
        remaining = engine.time_until_next()
        assert remaining is not None
        assert 59 < remaining <= 60
        assert engine.running
        await engine.close()

    @pytest.mark.asyncio
    async def test_renewal_expired_stops_timer(self) -> None:
        client = make_client()
        client.fetch_unsynced.side_effect = RenewalExpiredError("gone", 401)
        engine = NoteSyncEngine(client, make_store())

        engine.start(30)
        await asyncio.sleep(0.01)

        assert not engine.running
        assert engine.time_until_next() is None

    @pytest.mark.asyncio
    async def test_stop_lets_inflight_cycle_finish(self) -> None:
        gate = asyncio.Event()
        client = make_client()

        async def slow_fetch() -> UnsyncedBatch:
            await gate.wait()
            return UnsyncedBatch(notes=[make_note("1")])

        client.fetch_unsynced.side_effect = slow_fetch
        engine = NoteSyncEngine(client, make_store())

        engine.start(30)
        await asyncio.sleep(0.01)
        assert engine.syncing

        engine.stop()
        gate.set()
        await engine.close()

        client.mark_synced.assert_awaited_once()
        assert engine.time_until_next() is None


class TestManualSync:
    """Tests for manual_sync."""

    @pytest.mark.asyncio
    async def test_no_new_notes_notice(self) -> None:
        notify = MagicMock()
        engine = NoteSyncEngine(make_client(), make_store(), notify=notify)

        outcome = await engine.manual_sync()

        assert outcome.kind is OutcomeKind.NO_NEW_DATA
        notify.assert_called_once_with("No new notes")

    @pytest.mark.asyncio
    async def test_written_notice(self) -> None:
        notify = MagicMock()
        engine = NoteSyncEngine(make_client([make_note("1")]), make_store(), notify=notify)

        await engine.manual_sync()

        notify.assert_called_once_with("Synced 1 note(s)")

    @pytest.mark.asyncio
    async def test_cooldown(self) -> None:
        client = make_client()
        clock = FakeClock()
        engine = NoteSyncEngine(client, make_store(), clock=clock)

        await engine.manual_sync()
        clock.now += MANUAL_SYNC_COOLDOWN / 2
        skipped = await engine.manual_sync()
        clock.now += MANUAL_SYNC_COOLDOWN
        await engine.manual_sync()

        assert skipped.kind is OutcomeKind.SKIPPED
        assert client.fetch_unsynced.await_count == 2

    @pytest.mark.asyncio
    async def test_in_progress_notice(self) -> None:
        gate = asyncio.Event()
        client = make_client()

        async def slow_fetch() -> UnsyncedBatch:
            await gate.wait()
            return UnsyncedBatch(notes=[])

        client.fetch_unsynced.side_effect = slow_fetch
        notify = MagicMock()
        engine = NoteSyncEngine(client, make_store(), notify=notify)

        running = asyncio.create_task(engine.sync())
        await asyncio.sleep(0)
        outcome = await engine.manual_sync()
        gate.set()
        await running

        assert outcome.kind is OutcomeKind.SKIPPED
        notify.assert_called_once_with("Sync already in progress")
        client.fetch_unsynced.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failure_notifies_and_raises(self) -> None:
        client = make_client()
        client.fetch_unsynced.side_effect = APIError("server down", 503)
        notify = MagicMock()
        engine = NoteSyncEngine(client, make_store(), notify=notify)

        with pytest.raises(APIError):
            await engine.manual_sync()

        notify.assert_called_once_with("Sync failed: server down")
