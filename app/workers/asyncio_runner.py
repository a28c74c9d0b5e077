from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable
from typing import TypeVar

import structlog

from app.db.session import dispose_engine

T = TypeVar("T")

logger = structlog.get_logger(__name__)


async def _run_job(awaitable: Awaitable[T], *, job_name: str) -> T:
    # Each Celery invocation gets its own event loop, so pooled asyncpg
    # connections from a previous loop must not be reused.
    started_at = time.monotonic()
    structlog.contextvars.bind_contextvars(job=job_name)
    await dispose_engine()
    try:
        result = await awaitable
    except Exception:
        logger.exception("worker_job_failed", duration_ms=int((time.monotonic() - started_at) * 1000))
        raise
    finally:
        await dispose_engine()
        structlog.contextvars.unbind_contextvars("job")

    logger.info("worker_job_finished", job=job_name, duration_ms=int((time.monotonic() - started_at) * 1000))
    return result


def run_async_job(awaitable: Awaitable[T], *, job_name: str = "async_job") -> T:
    return asyncio.run(_run_job(awaitable, job_name=job_name))
