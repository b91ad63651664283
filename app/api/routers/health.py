from fastapi import APIRouter
from ...db import db_health
from ...redis_client import redis_health
from ...observability.heartbeat import SWEEPER_HEARTBEAT_KEY, last_beat

router = APIRouter(prefix="/health", tags=["health"])

@router.get("")
async def health():
    db_ok, redis_ok = await db_health(), await redis_health()
    status = "ok" if (db_ok and redis_ok) else "degraded"
    return {
        "status": status,
        "dependencies": {
            "database": db_ok,
            "redis": redis_ok,
        },
    }

@router.get("/readiness")
async def readiness():
    # the ledger needs both: rows in the database, per-email locks in redis
    db_ok, redis_ok = await db_health(), await redis_health()
    return {
        "ready": bool(db_ok and redis_ok),
        "database": db_ok,
        "redis": redis_ok,
        "sweeper_last_beat": await last_beat(SWEEPER_HEARTBEAT_KEY) if redis_ok else None,
    }

@router.get("/liveness")
async def liveness():
    return {"alive": True}
