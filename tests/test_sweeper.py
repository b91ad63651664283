import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from app.repos import otp_ledger
from app.workers import otp_sweeper

pytestmark = pytest.mark.asyncio

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


async def _seed(db: AsyncSession, email: str, issued_at: datetime):
    await otp_ledger.upsert(
        db, email=email, code="123456", created_at=issued_at, expires_at=issued_at + timedelta(seconds=120)
    )
    await db.commit()


async def _lock_granted():
    return True


async def _lock_taken():
    return False


async def test_sweeper_removes_only_expired_codes(db: AsyncSession, monkeypatch):
    monkeypatch.setattr(otp_sweeper, "_acquire_lock", _lock_granted)
    monkeypatch.setattr(otp_sweeper, "_now_utc", lambda: NOW)

    await _seed(db, "old@example.com", NOW - timedelta(minutes=10))
    await _seed(db, "stale@example.com", NOW - timedelta(seconds=121))
    await _seed(db, "fresh@example.com", NOW - timedelta(seconds=30))

    assert await otp_sweeper.run_once() == 2

    assert await otp_ledger.get_by_email(db, "old@example.com") is None
    assert await otp_ledger.get_by_email(db, "stale@example.com") is None
    assert await otp_ledger.get_by_email(db, "fresh@example.com") is not None


async def test_sweeper_respects_batch_size(db: AsyncSession, monkeypatch):
    monkeypatch.setattr(otp_sweeper, "_acquire_lock", _lock_granted)
    monkeypatch.setattr(otp_sweeper, "_now_utc", lambda: NOW)
    monkeypatch.setattr(otp_sweeper.S, "OTP_SWEEP_BATCH", 2)

    for i in range(3):
        await _seed(db, f"u{i}@example.com", NOW - timedelta(minutes=10 + i))

    assert await otp_sweeper.run_once() == 2
    assert await otp_sweeper.run_once() == 1
    assert await otp_sweeper.run_once() == 0


async def test_sweeper_skips_tick_without_lock(db: AsyncSession, monkeypatch):
    monkeypatch.setattr(otp_sweeper, "_acquire_lock", _lock_taken)
    monkeypatch.setattr(otp_sweeper, "_now_utc", lambda: NOW)
    await _seed(db, "old@example.com", NOW - timedelta(minutes=10))

    assert await otp_sweeper.run_once() == 0
    assert await otp_ledger.get_by_email(db, "old@example.com") is not None


async def test_run_forever_owns_its_heartbeat(monkeypatch):
    started = asyncio.Event()
    stopped = asyncio.Event()

    async def _beat(key):
        started.set()
        try:
            await asyncio.Event().wait()
        finally:
            stopped.set()

    async def _nothing_to_sweep():
        return 0

    monkeypatch.setattr(otp_sweeper, "beat", _beat)
    monkeypatch.setattr(otp_sweeper, "run_once", _nothing_to_sweep)

    worker = asyncio.create_task(otp_sweeper.run_forever())
    await asyncio.wait_for(started.wait(), 1)

    worker.cancel()
    with pytest.raises(asyncio.CancelledError):
        await worker
    await asyncio.wait_for(stopped.wait(), 1)
