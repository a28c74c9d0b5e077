from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from uuid import uuid4

import structlog
import uvicorn
from fastapi import FastAPI, Request, Response

from app.api.routes.health import router as health_router
from app.api.routes.internal_crypto import router as internal_crypto_router
from app.api.routes.internal_entitlements import router as internal_entitlements_router
from app.api.routes.internal_ledger import router as internal_ledger_router
from app.api.routes.internal_vouchers import router as internal_vouchers_router
from app.core.config import get_settings
from app.core.logging import configure_logging
from app.db.session import dispose_engine

REQUEST_ID_HEADER = "X-Request-ID"
logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    logger.info("credit_ledger_api_started")
    yield
    await dispose_engine()
    logger.info("credit_ledger_api_stopped")


async def bind_request_id(
    request: Request,
    call_next: Callable[[Request], Awaitable[Response]],
) -> Response:
    request_id = request.headers.get(REQUEST_ID_HEADER) or uuid4().hex
    structlog.contextvars.bind_contextvars(request_id=request_id)
    try:
        response = await call_next(request)
    finally:
        structlog.contextvars.unbind_contextvars("request_id")
    response.headers[REQUEST_ID_HEADER] = request_id
    return response


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="Credit Ledger API",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/docs" if settings.app_env == "dev" else None,
        redoc_url=None,
    )
    app.middleware("http")(bind_request_id)

    app.include_router(health_router)
    for router in (
        internal_ledger_router,
        internal_vouchers_router,
        internal_crypto_router,
        internal_entitlements_router,
    ):
        app.include_router(router)
    return app


app = create_app()


def run() -> None:
    settings = get_settings()
    uvicorn.run(
        "app.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.app_env == "dev",
    )


if __name__ == "__main__":
    run()
