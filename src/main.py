"""FastAPI application entry point.

Run with: uvicorn src.main:app --reload --port 8000
"""

# ruff: noqa: E402  -- uvloop.install() must run before other imports

import uvloop

uvloop.install()

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from config.settings import settings
from src.am_bidding.api.router import router as bidding_router
from src.am_common.database import check_database, engine
from src.am_common.errors import AppError
from src.am_common.redis_client import check_redis, close_redis
from src.am_common.response import error_response
from src.am_gateway.middleware.request_log import RequestLogMiddleware
from src.am_gateway.services import get_services
from src.am_listing.api.router import router as listing_router
from src.am_notification.api.router import router as notification_router
from src.am_settlement.api.router import router as settlement_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup: verify DB + Redis, start the listing watcher. Shutdown: stop and dispose."""
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    await check_database()
    await check_redis()

    watcher = get_services().watcher
    await watcher.start()
    if settings.EXPIRY_SWEEP_SECONDS > 0:
        watcher.start_sweeping(settings.EXPIRY_SWEEP_SECONDS)
    logger.info("%s started", settings.APP_NAME)
    yield
    await watcher.stop()
    await engine.dispose()
    await close_redis()


app = FastAPI(
    title=settings.APP_NAME,
    version="0.1.0",
    lifespan=lifespan,
)


app.add_middleware(RequestLogMiddleware)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.http_status >= 500:
        logger.error("Request failed: [%d] %s", exc.code, exc.message)
    return JSONResponse(
        status_code=exc.http_status,
        content=error_response(exc, request).model_dump(),
    )


app.include_router(listing_router, prefix="/api/v1")
app.include_router(bidding_router, prefix="/api/v1")
app.include_router(settlement_router, prefix="/api/v1")
app.include_router(notification_router, prefix="/api/v1")


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok", "version": "0.1.0"}
