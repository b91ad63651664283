from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional

import aiohttp
from fastapi import Depends
from passlib.context import CryptContext
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import get_settings
from ..db import get_db
from ..errors import CredentialStoreFailure
from ..repos import users as users_repo

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


@dataclass
class CredentialUser:
    id: str
    email: str
    display_name: str = "User"


class CredentialStore:
    """Capability over the user system of record."""

    async def lookup(self, email: str) -> Optional[CredentialUser]:
        raise NotImplementedError

    async def set_password(self, user: CredentialUser, new_password: str) -> None:
        raise NotImplementedError


class LocalCredentialStore(CredentialStore):
    """Users kept in this service's own ``users`` table."""

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def lookup(self, email: str) -> Optional[CredentialUser]:
        user = await users_repo.get_active_by_email(self._db, email)
        if not user:
            return None
        return CredentialUser(id=str(user.id), email=user.email, display_name=user.display_name or "User")

    async def set_password(self, user: CredentialUser, new_password: str) -> None:
        # flushed only; the caller commits together with the ledger delete
        updated = await users_repo.set_password_hash(
            self._db, uuid.UUID(user.id), get_password_hash(new_password)
        )
        if not updated:
            raise CredentialStoreFailure("Failed to update password: user no longer exists")


def _match_user(users: Iterable[Dict[str, Any]], email: str) -> Optional[Dict[str, Any]]:
    for u in users:
        if (u.get("email") or "").lower() == email:
            return u
    return None


def _display_name(raw: Dict[str, Any]) -> str:
    meta = raw.get("user_metadata") or {}
    return meta.get("display_name") or meta.get("full_name") or "User"


class SupabaseAdminCredentialStore(CredentialStore):
    """Users held by the external auth provider, reached through its admin API."""

    PER_PAGE = 1000

    def __init__(self, base_url: str, service_key: str, timeout_sec: float) -> None:
        self._base_url = base_url.rstrip("/")
        self._headers = {
            "apikey": service_key,
            "Authorization": f"Bearer {service_key}",
            "Content-Type": "application/json",
        }
        self._timeout_sec = timeout_sec
        self._timeout = aiohttp.ClientTimeout(total=timeout_sec)

    async def _list_page(self, session: aiohttp.ClientSession, page: int) -> list[Dict[str, Any]]:
        async with session.get(
            f"{self._base_url}/auth/v1/admin/users",
            params={"page": page, "per_page": self.PER_PAGE},
            headers=self._headers,
        ) as response:
            if response.status != 200:
                body = await response.text()
                logger.warning("credential_store_list_failed", extra={"status": response.status, "body": body[:200]})
                raise CredentialStoreFailure("Failed to fetch user")
            data = await response.json()
        return data.get("users") or []

    async def _find(self, session: aiohttp.ClientSession, email: str) -> Optional[CredentialUser]:
        page = 1
        while True:
            users = await self._list_page(session, page)
            found = _match_user(users, email)
            if found:
                return CredentialUser(id=found["id"], email=email, display_name=_display_name(found))
            if len(users) < self.PER_PAGE:
                return None
            page += 1

    async def lookup(self, email: str) -> Optional[CredentialUser]:
        try:
            async with aiohttp.ClientSession(timeout=self._timeout) as session:
                # one deadline across all pages, not one per page
                return await asyncio.wait_for(self._find(session, email), self._timeout_sec)
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.warning("credential_store_lookup_error: %s", exc)
            raise CredentialStoreFailure("Failed to fetch user") from exc

    async def set_password(self, user: CredentialUser, new_password: str) -> None:
        try:
            async with aiohttp.ClientSession(timeout=self._timeout) as session:
                async with session.put(
                    f"{self._base_url}/auth/v1/admin/users/{user.id}",
                    json={"password": new_password},
                    headers=self._headers,
                ) as response:
                    if response.status != 200:
                        body = await response.text()
                        raise CredentialStoreFailure(f"Failed to update password: {body[:200]}")
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.warning("credential_store_update_error: %s", exc)
            raise CredentialStoreFailure(f"Failed to update password: {exc}") from exc


def get_credential_store(db: AsyncSession = Depends(get_db)) -> CredentialStore:
    settings = get_settings()
    if settings.CREDENTIAL_STORE == "supabase":
        if not settings.SUPABASE_URL or not settings.SERVICE_ROLE_KEY:
            raise CredentialStoreFailure("Credential store is not configured")
        return SupabaseAdminCredentialStore(
            settings.SUPABASE_URL, settings.SERVICE_ROLE_KEY, settings.CREDENTIAL_TIMEOUT_SEC
        )
    return LocalCredentialStore(db)
