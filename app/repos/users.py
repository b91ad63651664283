from __future__ import annotations
import uuid
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from ..models import User


async def get_by_id(db: AsyncSession, user_id: uuid.UUID) -> Optional[User]:
    res = await db.execute(select(User).where(User.id == user_id))
    return res.scalar_one_or_none()


async def get_active_by_email(db: AsyncSession, email: str) -> Optional[User]:
    res = await db.execute(
        select(User).where(User.email == email.lower(), User.status == "active")
    )
    return res.scalar_one_or_none()


async def create(
    db: AsyncSession,
    *,
    email: str,
    password_hash: str,
    display_name: Optional[str] = None,
) -> User:
    user = User(email=email.lower(), password_hash=password_hash, display_name=display_name)
    db.add(user)
    await db.flush()
    return user


async def set_password_hash(db: AsyncSession, user_id: uuid.UUID, password_hash: str) -> bool:
    user = await get_by_id(db, user_id)
    if not user:
        return False
    user.password_hash = password_hash
    await db.flush()
    return True
