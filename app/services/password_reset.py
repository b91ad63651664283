# app/services/password_reset.py
"""Password reset OTP lifecycle: issue, verify, consume.

Per email the ledger holds at most one outstanding code:

    NoRecord -> Issued -> Consumed | Expired | Superseded -> NoRecord

Verification is a gate for the form client only; nothing is recorded when it
passes, so consume re-checks the same code against the same record.
"""
from __future__ import annotations

import hmac
import logging
import re
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import get_settings
from ..errors import (
    Expired,
    InvalidInput,
    LedgerFailure,
    Mismatch,
    NoOutstandingCode,
    NotRegistered,
    ResetError,
    UserNotFound,
    WeakPassword,
)
from ..models import PasswordResetOtp
from ..observability.metrics import OTP_ISSUED, OTP_VERIFY, PASSWORD_RESETS
from ..repos import otp_ledger
from .credential_store import CredentialStore
from .email_lock import email_lock
from .notifier import BrevoNotifier, render_reset_email

S = get_settings()
log = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
CODE_RE = re.compile(r"^[0-9]{6}$")


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _generate_code() -> str:
    # 100000-999999: never a leading zero
    return str(100000 + secrets.randbelow(900000))


def normalize_email(raw: Optional[str], *, missing: str) -> str:
    if not raw or not raw.strip():
        raise InvalidInput(missing)
    email = raw.strip().lower()
    if not EMAIL_RE.match(email):
        raise InvalidInput("Invalid email format")
    return email


def validate_code(raw: Optional[str]) -> str:
    code = (raw or "").strip()
    if not CODE_RE.match(code):
        raise InvalidInput("OTP must be a 6-digit code")
    return code


def validate_password(raw: Optional[str]) -> str:
    if raw is None or len(raw) < S.MIN_PASSWORD_LENGTH:
        raise WeakPassword(f"Password must be at least {S.MIN_PASSWORD_LENGTH} characters")
    return raw


async def _check_outstanding(db: AsyncSession, email: str, code: str) -> PasswordResetOtp:
    """Steps shared by verify and consume: exists, not expired, matches."""
    record = await otp_ledger.get_by_email(db, email, for_update=True)
    if record is None:
        raise NoOutstandingCode()
    if _now_utc() > otp_ledger.as_utc(record.expires_at):
        await otp_ledger.delete_by_email(db, email)
        await db.commit()
        raise Expired()
    if not hmac.compare_digest(record.code, code):
        raise Mismatch()
    return record


async def issue_otp(
    db: AsyncSession,
    *,
    email: Optional[str],
    store: CredentialStore,
    notifier: BrevoNotifier,
) -> None:
    """Create (or replace) the outstanding code for ``email`` and email it.

    The code is never returned. If the email fails to send the ledger write
    stays in place; a retry simply supersedes it.
    """
    email = normalize_email(email, missing="Missing 'to' email field")

    try:
        async with email_lock(email):
            user = await store.lookup(email)
            if user is None:
                raise NotRegistered()

            code = _generate_code()
            created_at = _now_utc()
            expires_at = created_at + timedelta(seconds=S.OTP_TTL_SECONDS)
            await otp_ledger.upsert(db, email=email, code=code, created_at=created_at, expires_at=expires_at)
            await db.commit()
    except ResetError:
        await db.rollback()
        raise
    except SQLAlchemyError as exc:
        await db.rollback()
        log.exception("otp_issue_failed")
        raise LedgerFailure(f"Database error: {exc.__class__.__name__}") from exc

    OTP_ISSUED.inc()
    log.info("otp_issued", extra={"email": email, "expires_at": expires_at.isoformat()})

    subject, html_body, text_body = render_reset_email(code, user.display_name, S.OTP_TTL_SECONDS)
    await notifier.send(to=email, subject=subject, html_body=html_body, text_body=text_body)


async def verify_otp(db: AsyncSession, *, email: Optional[str], code: Optional[str]) -> None:
    """Check ``code`` against the outstanding record without consuming it."""
    email = normalize_email(email, missing="Missing required fields: email or otp")
    code = validate_code(code)

    try:
        async with email_lock(email):
            await _check_outstanding(db, email, code)
            # release the row lock; the record stays until consumed or expired
            await db.rollback()
    except ResetError as exc:
        await db.rollback()
        OTP_VERIFY.labels(result=exc.__class__.__name__).inc()
        raise
    except SQLAlchemyError as exc:
        await db.rollback()
        log.exception("otp_verify_failed")
        OTP_VERIFY.labels(result="LedgerFailure").inc()
        raise LedgerFailure(f"Database error: {exc.__class__.__name__}") from exc

    OTP_VERIFY.labels(result="ok").inc()
    log.info("otp_verified", extra={"email": email})


async def consume_and_reset(
    db: AsyncSession,
    *,
    email: Optional[str],
    code: Optional[str],
    new_password: Optional[str],
    store: CredentialStore,
) -> None:
    """Commit ``new_password`` for the account if ``code`` is still outstanding.

    All input is validated before anything is read or written. On a
    credential store failure the code stays outstanding so the user can retry.
    """
    if not email or not new_password:
        raise InvalidInput("Missing required fields: email or newPassword")
    email = normalize_email(email, missing="Missing required fields: email or newPassword")
    code = validate_code(code)
    new_password = validate_password(new_password)

    try:
        async with email_lock(email):
            await _check_outstanding(db, email, code)

            user = await store.lookup(email)
            if user is None:
                raise UserNotFound()

            await store.set_password(user, new_password)
            await otp_ledger.delete_by_email(db, email)
            await db.commit()
    except ResetError as exc:
        await db.rollback()
        PASSWORD_RESETS.labels(result=exc.__class__.__name__).inc()
        raise
    except SQLAlchemyError as exc:
        await db.rollback()
        log.exception("password_reset_failed")
        PASSWORD_RESETS.labels(result="LedgerFailure").inc()
        raise LedgerFailure(f"Database error: {exc.__class__.__name__}") from exc

    PASSWORD_RESETS.labels(result="ok").inc()
    log.info("password_reset", extra={"email": email, "user_id": user.id})
