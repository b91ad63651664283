from __future__ import annotations
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from redis.exceptions import LockError, RedisError

from ..config import get_settings
from ..errors import LedgerFailure
from ..redis_client import redis

S = get_settings()
log = logging.getLogger(__name__)


def _lock_key(email: str) -> str:
    return f"lock:otp:{email}"


@asynccontextmanager
async def email_lock(email: str) -> AsyncIterator[None]:
    """Serialize issue/verify/consume for one email across replicas."""
    lock = redis.lock(_lock_key(email), timeout=S.OTP_LOCK_TTL_SEC, blocking_timeout=S.OTP_LOCK_WAIT_SEC)
    try:
        acquired = await lock.acquire()
    except RedisError as exc:
        log.error("otp_lock_unavailable: %s", exc)
        raise LedgerFailure("Password reset is temporarily unavailable") from exc
    if not acquired:
        raise LedgerFailure("Another request for this email is in progress; try again")
    try:
        yield
    finally:
        try:
            await lock.release()
        except LockError:
            # TTL ran out before we finished; someone else may hold it now
            log.warning("otp_lock_expired_before_release", extra={"email": email})
        except RedisError as exc:
            log.warning("otp_lock_release_failed: %s", exc)
