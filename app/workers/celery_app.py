from __future__ import annotations

from celery import Celery, signals

from app.core.config import Settings, get_settings
from app.core.logging import configure_logging

TASK_MODULES = (
    "app.workers.tasks.crypto_maintenance",
    "app.workers.tasks.ledger_reconciliation",
)

# Rechecks can credit users, so they never queue behind expiry and reconciliation sweeps.
TASK_ROUTES = {
    "app.workers.tasks.crypto_maintenance.recheck_crypto_payments": {"queue": "q_high"},
    "app.workers.tasks.crypto_maintenance.expire_crypto_requests": {"queue": "q_normal"},
    "app.workers.tasks.ledger_reconciliation.*": {"queue": "q_normal"},
}

RESULT_TTL_SECONDS = 24 * 60 * 60


def build_celery_app(settings: Settings) -> Celery:
    app = Celery(
        "credit_ledger",
        broker=settings.celery_broker_url,
        backend=settings.celery_result_backend,
        include=list(TASK_MODULES),
    )
    app.conf.update(
        task_default_queue="q_normal",
        task_routes=TASK_ROUTES,
        task_acks_late=True,
        task_reject_on_worker_lost=True,
        worker_prefetch_multiplier=1,
        task_serializer="json",
        result_serializer="json",
        accept_content=["json"],
        result_expires=RESULT_TTL_SECONDS,
        timezone="UTC",
        enable_utc=True,
    )
    return app


celery_app = build_celery_app(get_settings())


@signals.setup_logging.connect
def _configure_worker_logging(**_kwargs) -> None:
    configure_logging(get_settings().log_level)
