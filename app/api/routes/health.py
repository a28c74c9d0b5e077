from __future__ import annotations

import asyncio
from typing import Any

import structlog
from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from redis.asyncio import Redis
from sqlalchemy import text

from app.core.config import get_settings
from app.db.session import SessionLocal
from app.workers.celery_app import celery_app

router = APIRouter(tags=["health"])
logger = structlog.get_logger(__name__)

LEDGER_TRIGGER_NAME = "trg_ledger_entries_append_only"
CELERY_PING_TIMEOUT_SECONDS = 1.0


def _ok(**extra: Any) -> dict[str, Any]:
    return {"status": "ok", **extra}


def _failed(error: str) -> dict[str, str]:
    return {"status": "failed", "error": error}


async def _check_database() -> dict[str, Any]:
    try:
        async with SessionLocal() as session:
            trigger_count = await session.scalar(
                text("SELECT count(*) FROM pg_trigger WHERE tgname = :name AND NOT tgisinternal"),
                {"name": LEDGER_TRIGGER_NAME},
            )
    except Exception:
        logger.warning("health_database_check_failed", exc_info=True)
        return _failed("database_unavailable")

    # Without the trigger the ledger is no longer append-only at the database level.
    if not trigger_count:
        return _failed("ledger_trigger_missing")
    return _ok()


async def _check_redis() -> dict[str, Any]:
    client: Redis | None = None
    try:
        client = Redis.from_url(get_settings().redis_url)
        if await client.ping() is not True:
            return _failed("redis_unexpected_ping")
        return _ok()
    except Exception:
        logger.warning("health_redis_check_failed", exc_info=True)
        return _failed("redis_unavailable")
    finally:
        if client is not None:
            await client.aclose()


def _check_celery_worker_sync() -> dict[str, Any]:
    try:
        inspector = celery_app.control.inspect(timeout=CELERY_PING_TIMEOUT_SECONDS)
        replies = (inspector.ping() if inspector is not None else None) or {}
    except Exception:
        logger.warning("health_celery_check_failed", exc_info=True)
        return _failed("celery_unavailable")

    if not replies:
        return _failed("celery_no_workers")
    return _ok(workers=len(replies))


async def _check_celery_worker() -> dict[str, Any]:
    return await asyncio.to_thread(_check_celery_worker_sync)


def _response(*, checks: dict[str, dict[str, Any]], ok_status: str, failed_status: str) -> JSONResponse:
    healthy = all(check.get("status") == "ok" for check in checks.values())
    return JSONResponse(
        status_code=status.HTTP_200_OK if healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"status": ok_status if healthy else failed_status, "checks": checks},
    )


@router.get("/live")
async def live() -> dict[str, str]:
    return {"status": "live"}


@router.get("/health")
async def health() -> JSONResponse:
    database, redis, celery = await asyncio.gather(
        _check_database(),
        _check_redis(),
        _check_celery_worker(),
    )
    return _response(
        checks={"database": database, "redis": redis, "celery": celery},
        ok_status="ok",
        failed_status="degraded",
    )


@router.get("/ready")
async def ready() -> JSONResponse:
    # Workers only drain background sweeps; the API can serve without them.
    database, redis = await asyncio.gather(_check_database(), _check_redis())
    return _response(
        checks={"database": database, "redis": redis},
        ok_status="ready",
        failed_status="not_ready",
    )
