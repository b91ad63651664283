import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import uvicorn

from .config import get_settings
from .db import lifespan_db
from .errors import ResetError
from .api.routers import health as health_router
from .api.routers import password_reset as password_reset_router
from .observability.logging import setup_logging
from .middleware.error_envelope import UnknownErrorMiddleware, envelope
from .middleware.request_context import RequestContextMiddleware
from .observability.metrics import MetricsHTTPMiddleware, metrics_app

settings = get_settings()
setup_logging()
log = logging.getLogger("app.errors")

# the form client calls from the browser with these headers
CORS_ALLOW_HEADERS = ["authorization", "x-client-info", "apikey", "content-type"]


@asynccontextmanager
async def lifespan(_: FastAPI):
    async with lifespan_db():
        yield


async def reset_error_handler(request: Request, exc: ResetError) -> JSONResponse:
    log.info("request_failed", extra={"error": exc.__class__.__name__, "detail": exc.message, "path": request.url.path})
    return envelope(exc.status_code, exc.message)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return envelope(400, "Invalid request body")


def create_app() -> FastAPI:
    app = FastAPI(title=settings.APP_NAME, debug=settings.DEBUG, lifespan=lifespan)

    # innermost: unexpected errors still pass back out through CORS
    app.add_middleware(UnknownErrorMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["POST", "OPTIONS"],
        allow_headers=CORS_ALLOW_HEADERS,
    )

    # outermost: request context and metrics see every response
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(MetricsHTTPMiddleware)

    app.add_exception_handler(ResetError, reset_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)

    app.include_router(health_router.router)
    app.include_router(password_reset_router.router)
    app.add_api_route("/metrics", metrics_app(), methods=["GET"], include_in_schema=False)

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run("app.main:app", host=settings.APP_HOST, port=settings.APP_PORT, reload=settings.DEBUG)
