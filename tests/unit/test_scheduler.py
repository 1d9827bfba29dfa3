"""Tests for APScheduler job configuration and the periodic sync job body."""
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from routesync.errors import SourceUnavailable, StoreIOError
from routesync.scheduler.jobs import _periodic_sync, build_scheduler


class TestBuildScheduler:
    def test_returns_scheduler(self):
        scheduler = build_scheduler(MagicMock())
        assert isinstance(scheduler, AsyncIOScheduler)

    def test_periodic_sync_job_registered(self):
        scheduler = build_scheduler(MagicMock())
        job_ids = [job.id for job in scheduler.get_jobs()]
        assert "periodic_sync" in job_ids

    def test_periodic_sync_is_interval(self):
        scheduler = build_scheduler(MagicMock())
        job = next(j for j in scheduler.get_jobs() if j.id == "periodic_sync")
        assert job.trigger.__class__.__name__ == "IntervalTrigger"

    def test_interval_and_throttle_from_settings(self):
        coordinator = MagicMock()
        with patch("routesync.scheduler.jobs.get_settings") as mock_settings:
            mock_settings.return_value.sync_check_minutes = 5
            mock_settings.return_value.sync_min_interval_seconds = 120.0
            scheduler = build_scheduler(coordinator)

        job = next(j for j in scheduler.get_jobs() if j.id == "periodic_sync")
        assert job.trigger.interval.total_seconds() == 300
        assert job.kwargs == {"coordinator": coordinator, "min_interval": 120.0}

    def test_scheduler_not_running_on_creation(self):
        """build_scheduler should not auto-start."""
        scheduler = build_scheduler(MagicMock())
        assert not scheduler.running


# ─── _periodic_sync job body ──────────────────────────────────────────────────

class TestPeriodicSyncJob:
    @pytest.mark.asyncio
    async def test_calls_sync_if_due(self):
        coordinator = MagicMock()
        coordinator.sync_if_due = AsyncMock(return_value=True)
        await _periodic_sync(coordinator, min_interval=3600.0)
        coordinator.sync_if_due.assert_awaited_once_with(min_interval=3600.0)

    @pytest.mark.asyncio
    async def test_not_due_is_quiet(self):
        coordinator = MagicMock()
        coordinator.sync_if_due = AsyncMock(return_value=False)
        await _periodic_sync(coordinator, min_interval=3600.0)  # should not raise

    @pytest.mark.asyncio
    @pytest.mark.parametrize("exc", [
        SourceUnavailable("down"),
        StoreIOError("disk full"),
        RuntimeError("unexpected"),
    ])
    async def test_errors_are_absorbed(self, exc):
        """A failed cycle must not kill the scheduler job."""
        coordinator = MagicMock()
        coordinator.sync_if_due = AsyncMock(side_effect=exc)
        await _periodic_sync(coordinator, min_interval=3600.0)  # should not raise
