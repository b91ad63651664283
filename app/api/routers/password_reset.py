from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ...auth.service_key import AnonKeyRoute, ResetKeyRoute
from ...db import get_db
from ...domain.schemas.password_reset import IssueOtpIn, ResetPasswordIn, ResultOut, VerifyOtpIn
from ...services import password_reset as reset_service
from ...services.credential_store import CredentialStore, get_credential_store
from ...services.notifier import BrevoNotifier, get_notifier

router = APIRouter(tags=["password-reset"])
anon = APIRouter(route_class=AnonKeyRoute)
reset = APIRouter(route_class=ResetKeyRoute)


@anon.post(
    "/forgot-password-otp",
    response_model=ResultOut,
    response_model_exclude_none=True,
)
async def forgot_password_otp(
    payload: IssueOtpIn,
    db: AsyncSession = Depends(get_db),
    store: CredentialStore = Depends(get_credential_store),
    notifier: BrevoNotifier = Depends(get_notifier),
) -> ResultOut:
    await reset_service.issue_otp(db, email=payload.to, store=store, notifier=notifier)
    return ResultOut(success=True, message="OTP sent successfully")


@anon.post(
    "/verify-otp",
    response_model=ResultOut,
    response_model_exclude_none=True,
)
async def verify_otp(payload: VerifyOtpIn, db: AsyncSession = Depends(get_db)) -> ResultOut:
    await reset_service.verify_otp(db, email=payload.email, code=payload.otp)
    return ResultOut(success=True)


@reset.post(
    "/reset-password",
    response_model=ResultOut,
    response_model_exclude_none=True,
)
async def reset_password(
    payload: ResetPasswordIn,
    db: AsyncSession = Depends(get_db),
    store: CredentialStore = Depends(get_credential_store),
) -> ResultOut:
    await reset_service.consume_and_reset(
        db, email=payload.email, code=payload.otp, new_password=payload.new_password, store=store
    )
    return ResultOut(success=True, message="Password reset successfully")


router.include_router(anon)
router.include_router(reset)
