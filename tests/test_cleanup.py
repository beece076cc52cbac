"""
Tests for the expired-session cleanup scheduler.
"""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from portal.adapters.impl.memory_store import InMemorySessionStore
from portal.models.schemas import RefreshTokenRecord, utcnow
from portal.services.cleanup import DEFAULT_INTERVAL_SECONDS, SessionCleanupScheduler


class CountingSessionStore(InMemorySessionStore):
    def __init__(self):
        super().__init__()
        self.sweeps = 0

    async def delete_expired_sessions(self, now):
        self.sweeps += 1
        return await super().delete_expired_sessions(now)


@pytest.fixture
def sessions():
    return InMemorySessionStore()


async def add_session(store, token_hash: str, expires_in: timedelta, **fields) -> RefreshTokenRecord:
    return await store.create_session(RefreshTokenRecord(
        token_hash=token_hash,
        admin_id="admin-1",
        expires_at=utcnow() + expires_in,
        **fields
    ))


class TestSweep:
    async def test_deletes_only_expired_sessions(self, sessions):
        live = await add_session(sessions, "live", timedelta(days=1))
        revoked_live = await add_session(sessions, "revoked", timedelta(days=1), is_revoked=True)
        expired = await add_session(sessions, "expired", timedelta(seconds=-1))

        scheduler = SessionCleanupScheduler(sessions)
        deleted = await scheduler.run_sweep()

        assert deleted == 1
        assert await sessions.get_session(expired.id) is None
        assert await sessions.get_session(live.id) is not None
        assert await sessions.get_session(revoked_live.id) is not None

    async def test_sweep_uses_clock(self, sessions):
        await add_session(sessions, "a", timedelta(hours=1))
        await add_session(sessions, "b", timedelta(hours=3))

        scheduler = SessionCleanupScheduler(sessions, clock=lambda: utcnow() + timedelta(hours=2))

        assert await scheduler.run_sweep() == 1
        assert scheduler.last_deleted_count == 1

    async def test_store_failure_is_contained(self):
        failing = AsyncMock()
        failing.delete_expired_sessions.side_effect = RuntimeError("database is locked")

        scheduler = SessionCleanupScheduler(failing)

        assert await scheduler.run_sweep() == 0
        assert scheduler.last_sweep_at is None

    async def test_status_after_sweep(self, sessions):
        await add_session(sessions, "expired", timedelta(minutes=-5))
        scheduler = SessionCleanupScheduler(sessions)

        status = scheduler.get_status()
        assert status == {"is_running": False, "last_sweep_at": None, "last_deleted_count": 0}

        await scheduler.run_sweep()
        status = scheduler.get_status()
        assert status["last_deleted_count"] == 1
        assert status["last_sweep_at"] is not None


class TestLifecycle:
    def test_default_interval_is_daily(self, sessions):
        assert SessionCleanupScheduler(sessions).interval_seconds == DEFAULT_INTERVAL_SECONDS == 86400

    async def test_start_sweeps_immediately(self, sessions):
        expired = await add_session(sessions, "expired", timedelta(seconds=-1))
        scheduler = SessionCleanupScheduler(sessions)

        await scheduler.start()
        try:
            await asyncio.sleep(0.05)
            assert scheduler.is_running
            assert await sessions.get_session(expired.id) is None
        finally:
            await scheduler.stop()

        assert not scheduler.is_running

    async def test_start_is_idempotent(self, sessions):
        scheduler = SessionCleanupScheduler(sessions)

        await scheduler.start()
        first_task = scheduler._task
        await scheduler.start()

        assert scheduler._task is first_task
        await scheduler.stop()

    async def test_stop_when_idle(self, sessions):
        scheduler = SessionCleanupScheduler(sessions)
        await scheduler.stop()
        assert not scheduler.is_running

    async def test_repeats_on_interval(self):
        store = CountingSessionStore()
        scheduler = SessionCleanupScheduler(store, interval_seconds=0.01)

        await scheduler.start()
        await asyncio.sleep(0.1)
        await scheduler.stop()

        assert store.sweeps >= 2

    async def test_restart_after_stop(self, sessions):
        scheduler = SessionCleanupScheduler(sessions)

        await scheduler.start()
        await scheduler.stop()
        await scheduler.start()

        assert scheduler.is_running
        await scheduler.stop()
