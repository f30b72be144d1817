"""Tests for the single-timer scheduler."""

import asyncio
import logging

import pytest

from vaultsync.client.sync.scheduler import SyncScheduler


class Recorder:
    """Async callback that counts its runs."""

    def __init__(self) -> None:
        self.calls = 0
        self.release = asyncio.Event()
        self.release.set()

    async def __call__(self) -> None:
        self.calls += 1
        await self.release.wait()


async def run_pending() -> None:
    """Let call_later(0) handles and the tasks they start run."""
    await asyncio.sleep(0.01)


class TestSyncScheduler:
    """Tests for SyncScheduler."""

    @pytest.mark.asyncio
    async def test_fires_callback(self) -> None:
        recorder = Recorder()
        scheduler = SyncScheduler(recorder)

        scheduler.schedule(0)
        await run_pending()
        await scheduler.wait_idle()

        assert recorder.calls == 1
        assert not scheduler.armed

    @pytest.mark.asyncio
    async def test_reschedule_replaces_pending_tick(self) -> None:
        recorder = Recorder()
        scheduler = SyncScheduler(recorder)

        scheduler.schedule(60)
        scheduler.schedule(0)
        await run_pending()
        await scheduler.wait_idle()

        assert recorder.calls == 1
        assert scheduler.time_until_next() is None

    @pytest.mark.asyncio
    async def test_cancel(self) -> None:
        recorder = Recorder()
        scheduler = SyncScheduler(recorder)

        scheduler.schedule(0)
        scheduler.cancel()
        await run_pending()

        assert recorder.calls == 0
        assert not scheduler.armed

    @pytest.mark.asyncio
    async def test_time_until_next(self) -> None:
        scheduler = SyncScheduler(Recorder())

        assert scheduler.time_until_next() is None
        scheduler.schedule(30)
        remaining = scheduler.time_until_next()

        assert remaining is not None
        assert 29 < remaining <= 30
        scheduler.cancel()

    @pytest.mark.asyncio
    async def test_cancel_leaves_running_callback_alone(self) -> None:
        recorder = Recorder()
        recorder.release.clear()
        scheduler = SyncScheduler(recorder)

        scheduler.schedule(0)
        await run_pending()
        assert scheduler.running

        scheduler.cancel()
        recorder.release.set()
        await scheduler.wait_idle()

        assert recorder.calls == 1
        assert not scheduler.running

    @pytest.mark.asyncio
    async def test_callback_error_is_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        async def failing() -> None:
            raise RuntimeError("boom")

        scheduler = SyncScheduler(failing)
        with caplog.at_level(logging.ERROR, logger="vaultsync"):
            scheduler.schedule(0)
            await run_pending()
            await scheduler.wait_idle()

        assert "Scheduled callback failed" in caplog.text
