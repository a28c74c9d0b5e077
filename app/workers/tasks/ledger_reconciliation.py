from __future__ import annotations

import structlog

from app.db.session import SessionLocal
from app.economy.ledger.reconciliation import repair_balance_cache, scan_balance_drifts
from app.services.alerts import send_ops_alert
from app.services.ledger_reliability import BalanceDrift, reconciliation_status
from app.workers.asyncio_runner import run_async_job
from app.workers.celery_app import celery_app

logger = structlog.get_logger(__name__)

RECONCILIATION_PAGE_SIZE = 500
ALERT_SAMPLE_SIZE = 20


async def _repair_drift(drift: BalanceDrift) -> BalanceDrift | None:
    async with SessionLocal.begin() as session:
        return await repair_balance_cache(session, user_id=drift.user_id)


async def run_ledger_reconciliation_async(*, page_size: int = RECONCILIATION_PAGE_SIZE) -> dict[str, object]:
    scanned = 0
    repaired: list[BalanceDrift] = []
    after_user_id: int | None = None

    while True:
        async with SessionLocal.begin() as session:
            drifts, last_user_id, page_count = await scan_balance_drifts(
                session,
                after_user_id=after_user_id,
                limit=page_size,
            )
        scanned += page_count

        for drift in drifts:
            fixed = await _repair_drift(drift)
            if fixed is not None:
                repaired.append(fixed)

        if last_user_id is None or page_count < page_size:
            break
        after_user_id = last_user_id

    result: dict[str, object] = {
        "scanned_users": scanned,
        "drift_count": len(repaired),
        "status": reconciliation_status(len(repaired)),
    }
    if repaired:
        alert_payload = dict(result)
        alert_payload["drifts"] = [
            {
                "user_id": drift.user_id,
                "cached_balance": drift.cached_balance,
                "ledger_balance": drift.ledger_balance,
                "delta": drift.delta,
            }
            for drift in repaired[:ALERT_SAMPLE_SIZE]
        ]
        await send_ops_alert(event="ledger_balance_drift_detected", payload=alert_payload)
        logger.warning("ledger_balance_drift_detected", **result)
    else:
        logger.info("ledger_reconciliation_finished", **result)
    return result


@celery_app.task(name="app.workers.tasks.ledger_reconciliation.run_ledger_reconciliation")
def run_ledger_reconciliation(page_size: int = RECONCILIATION_PAGE_SIZE) -> dict[str, object]:
    return run_async_job(
        run_ledger_reconciliation_async(page_size=page_size),
        job_name="ledger_reconciliation",
    )


celery_app.conf.beat_schedule = celery_app.conf.beat_schedule or {}
celery_app.conf.beat_schedule.update(
    {
        "ledger-reconciliation-hourly": {
            "task": "app.workers.tasks.ledger_reconciliation.run_ledger_reconciliation",
            "schedule": 3600.0,
            "options": {"queue": "q_normal"},
        },
    }
)
