from __future__ import annotations

import asyncio
import html
import logging
from typing import Any, Dict, Optional

import aiohttp

from ..config import get_settings
from ..errors import NotifierFailure

logger = logging.getLogger(__name__)


def render_reset_email(code: str, display_name: str, ttl_seconds: int) -> tuple[str, str, str]:
    """Return (subject, html, text) for the password reset email."""
    s = get_settings()
    minutes = max(ttl_seconds // 60, 1)
    window = f"{minutes} minute" if minutes == 1 else f"{minutes} minutes"
    name = html.escape(display_name or "User")
    brand = html.escape(s.EMAIL_BRAND_NAME)

    subject = f"{s.EMAIL_FROM_NAME} – Your {minutes}-Minute Password Reset OTP Code"
    html_body = f"""<!DOCTYPE html>
<html lang="en">
<body style="font-family: Helvetica, Arial, sans-serif; color: #000;">
  <div style="max-width: 480px; margin: 40px auto; border: 1px solid #ddd; border-radius: 12px;">
    <div style="background: #000; color: #fff; text-align: center; padding: 24px;">
      <h1>{brand.upper()}</h1>
    </div>
    <div style="padding: 30px;">
      <h2>Password Reset Request</h2>
      <p>Hello {name},</p>
      <p>Use the One-Time Password (OTP) below to verify your identity and continue the reset process:</p>
      <div style="text-align: center; font-size: 26px; font-weight: bold; letter-spacing: 4px;
                  background: #000; color: #fff; padding: 16px; border-radius: 8px;">{code}</div>
      <p>This code will expire in <strong>{window}</strong>.</p>
      <p>If you didn't request a password reset, please ignore this email. Your account will remain safe.</p>
    </div>
  </div>
</body>
</html>
"""
    text_body = (
        f"Password Reset Request\n\n"
        f"Hello {display_name or 'User'},\n\n"
        f"Your OTP code is: {code}\n\n"
        f"This code will expire in {window}.\n\n"
        f"If you did not request this, please ignore this email.\n\n"
        f"---\n{s.EMAIL_BRAND_NAME}\n"
    )
    return subject, html_body, text_body


class BrevoNotifier:
    """Sends transactional email through the Brevo HTTP API."""

    def __init__(self) -> None:
        settings = get_settings()
        self._api_key: Optional[str] = settings.BREVO_API_KEY
        self._api_url = settings.BREVO_API_URL
        self._sender = {"name": settings.EMAIL_FROM_NAME, "email": settings.EMAIL_FROM_ADDRESS}
        self._timeout = aiohttp.ClientTimeout(total=settings.NOTIFIER_TIMEOUT_SEC)
        self._dev_mode = settings.ENV != "prod"
        if not self._api_key:
            logger.info("Brevo email disabled; missing settings: BREVO_API_KEY")

    @property
    def enabled(self) -> bool:
        return bool(self._api_key)

    def build_payload(self, *, to: str, subject: str, html_body: str, text_body: str) -> Dict[str, Any]:
        return {
            "sender": self._sender,
            "to": [{"email": to}],
            "subject": subject,
            "htmlContent": html_body,
            "textContent": text_body,
        }

    async def send(self, *, to: str, subject: str, html_body: str, text_body: str) -> None:
        if not self._api_key:
            if not self._dev_mode:
                raise NotifierFailure("Email service is not configured")
            # DEV sender: the code only ever reaches the log here
            logger.warning("[DEV] email to %s not sent (no BREVO_API_KEY):\n%s", to, text_body)
            return

        headers = {
            "accept": "application/json",
            "api-key": self._api_key,
            "content-type": "application/json",
        }
        payload = self.build_payload(to=to, subject=subject, html_body=html_body, text_body=text_body)
        try:
            async with aiohttp.ClientSession(timeout=self._timeout) as session:
                async with session.post(self._api_url, json=payload, headers=headers) as response:
                    if response.status >= 300:
                        error_text = await response.text()
                        logger.warning("email_send_failed", extra={"status": response.status, "body": error_text[:200]})
                        raise NotifierFailure(f"Email service error: {error_text}")
                    result = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.warning("email_send_error: %s", exc)
            raise NotifierFailure(f"Email service error: {exc}") from exc

        logger.info("email_sent", extra={"message_id": (result or {}).get("messageId", "unknown")})


_notifier: Optional[BrevoNotifier] = None


def get_notifier() -> BrevoNotifier:
    global _notifier
    if _notifier is None:
        _notifier = BrevoNotifier()
    return _notifier
