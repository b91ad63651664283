from __future__ import annotations
import logging
from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

log = logging.getLogger("app.errors")


def envelope(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


class UnknownErrorMiddleware(BaseHTTPMiddleware):
    """Turns anything the exception handlers did not claim into the error body.

    Sits inside CORSMiddleware so the browser client can still read it.
    """

    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except Exception:
            log.exception("unexpected_error", extra={"path": request.url.path})
            return envelope(400, "Unknown error")
