from __future__ import annotations
import asyncio
import logging
from datetime import datetime, timezone

from ..config import get_settings
from ..db import SessionLocal
from ..redis_client import redis
from ..repos import otp_ledger
from ..observability.heartbeat import SWEEPER_HEARTBEAT_KEY, beat
from ..observability.logging import setup_logging
from ..observability.metrics import OTP_SWEPT

S = get_settings()
log = logging.getLogger("worker.otp_sweeper")

def _lock_key() -> str: return "lock:otp_sweeper"

def _now_utc() -> datetime:
    return datetime.now(timezone.utc)

async def _acquire_lock() -> bool:
    # Only one replica sweeps per tick; others idle
    return await redis.set(_lock_key(), "1", ex=S.OTP_SWEEP_LOCK_TTL_SEC, nx=True) is True

async def run_once() -> int:
    """Delete expired codes that nobody came back for. Verify/consume also
    delete them lazily, so this only keeps the table from growing."""
    if not await _acquire_lock():
        return 0
    async with SessionLocal() as db:
        swept = await otp_ledger.delete_expired(db, now=_now_utc(), batch=S.OTP_SWEEP_BATCH)
        await db.commit()
    if swept:
        OTP_SWEPT.inc(len(swept))
        log.info("swept %d expired reset codes", len(swept))
    return len(swept)

async def run_forever():
    heartbeat = asyncio.create_task(beat(SWEEPER_HEARTBEAT_KEY))
    try:
        while True:
            try:
                await run_once()
            except Exception as e:
                log.exception("otp_sweeper error: %s", e)
            await asyncio.sleep(S.OTP_SWEEP_INTERVAL_SEC)
    finally:
        heartbeat.cancel()

def main():
    setup_logging()
    asyncio.run(run_forever())

if __name__ == "__main__":
    main()
