from __future__ import annotations

import structlog

from app.economy.crypto.service import CryptoPaymentService
from app.services.alerts import send_ops_alert
from app.services.chain_query import HttpChainQueryClient
from app.workers.asyncio_runner import run_async_job
from app.workers.celery_app import celery_app

logger = structlog.get_logger(__name__)

CHAIN_ERROR_ALERT_THRESHOLD = 10


async def expire_crypto_requests_async() -> dict[str, int]:
    expired = await CryptoPaymentService.expire_stale_requests()
    result = {"expired_requests": expired}
    logger.info("crypto_requests_expiry_finished", **result)
    return result


async def recheck_crypto_payments_async(*, batch_size: int = 100) -> dict[str, int]:
    summary = await CryptoPaymentService.recheck_awaiting(
        chain_client=HttpChainQueryClient(),
        batch_size=batch_size,
    )
    result: dict[str, int] = {
        "examined": summary.examined,
        "chain_errors": summary.chain_errors,
        "failed": summary.failed,
        **summary.outcomes,
    }
    if summary.chain_errors >= CHAIN_ERROR_ALERT_THRESHOLD:
        await send_ops_alert(event="crypto_recheck_chain_errors", payload=result)
    review_count = summary.outcomes.get("partial_payment", 0) + summary.outcomes.get("manual_review", 0)
    if review_count > 0:
        await send_ops_alert(event="crypto_payment_manual_review_required", payload=result)

    logger.info("crypto_payments_recheck_finished", **result)
    return result


@celery_app.task(name="app.workers.tasks.crypto_maintenance.expire_crypto_requests")
def expire_crypto_requests() -> dict[str, int]:
    return run_async_job(expire_crypto_requests_async(), job_name="expire_crypto_requests")


@celery_app.task(name="app.workers.tasks.crypto_maintenance.recheck_crypto_payments")
def recheck_crypto_payments(batch_size: int = 100) -> dict[str, int]:
    return run_async_job(
        recheck_crypto_payments_async(batch_size=batch_size),
        job_name="recheck_crypto_payments",
    )


celery_app.conf.beat_schedule = celery_app.conf.beat_schedule or {}
celery_app.conf.beat_schedule.update(
    {
        "expire-crypto-requests-every-minute": {
            "task": "app.workers.tasks.crypto_maintenance.expire_crypto_requests",
            "schedule": 60.0,
            "options": {"queue": "q_normal"},
        },
        "recheck-crypto-payments-every-2-minutes": {
            "task": "app.workers.tasks.crypto_maintenance.recheck_crypto_payments",
            "schedule": 120.0,
            "options": {"queue": "q_high"},
        },
    }
)
