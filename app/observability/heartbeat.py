from __future__ import annotations
import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional
from redis.exceptions import RedisError
from ..redis_client import redis

log = logging.getLogger(__name__)

SWEEPER_HEARTBEAT_KEY = "hb:otp_sweeper"


async def beat(key: str, interval_sec: int = 5, ttl_sec: int = 20):
    while True:
        try:
            await redis.set(key, datetime.now(timezone.utc).isoformat(), ex=ttl_sec)
        except RedisError as exc:
            log.warning("heartbeat_failed key=%s: %s", key, exc)
        await asyncio.sleep(interval_sec)


async def last_beat(key: str) -> Optional[str]:
    """ISO timestamp of the last beat, or None if the worker is silent."""
    try:
        return await redis.get(key)
    except RedisError:
        return None
