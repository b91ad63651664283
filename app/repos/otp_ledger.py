from __future__ import annotations
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import PasswordResetOtp


def as_utc(dt: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone-aware columns
    return dt.replace(tzinfo=timezone.utc) if dt.tzinfo is None else dt


async def get_by_email(db: AsyncSession, email: str, *, for_update: bool = False) -> Optional[PasswordResetOtp]:
    # populate_existing: the row may have been rewritten by a Core upsert in this session
    stmt = (
        select(PasswordResetOtp)
        .where(PasswordResetOtp.email == email)
        .execution_options(populate_existing=True)
    )
    if for_update:
        stmt = stmt.with_for_update()
    res = await db.execute(stmt)
    return res.scalar_one_or_none()


async def upsert(
    db: AsyncSession,
    *,
    email: str,
    code: str,
    created_at: datetime,
    expires_at: datetime,
) -> None:
    """Insert the outstanding code for ``email`` or replace the previous one."""
    insert = sqlite_insert if db.bind.dialect.name == "sqlite" else pg_insert
    stmt = insert(PasswordResetOtp).values(
        email=email, code=code, created_at=created_at, expires_at=expires_at
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[PasswordResetOtp.email],
        set_={
            "code": stmt.excluded.code,
            "created_at": stmt.excluded.created_at,
            "expires_at": stmt.excluded.expires_at,
        },
    )
    await db.execute(stmt)
    # no commit here; caller's transaction should commit


async def delete_by_email(db: AsyncSession, email: str) -> None:
    await db.execute(delete(PasswordResetOtp).where(PasswordResetOtp.email == email))


async def delete_expired(db: AsyncSession, *, now: datetime, batch: int) -> list[str]:
    """Delete up to ``batch`` records whose window has passed; returns their emails."""
    res = await db.execute(
        select(PasswordResetOtp.email)
        .where(PasswordResetOtp.expires_at < now)
        .order_by(PasswordResetOtp.expires_at)
        .limit(batch)
    )
    emails = list(res.scalars().all())
    if emails:
        await db.execute(delete(PasswordResetOtp).where(PasswordResetOtp.email.in_(emails)))
    return emails
