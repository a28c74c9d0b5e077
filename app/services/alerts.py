from __future__ import annotations

from datetime import datetime, timezone

import httpx
import structlog

from app.core.config import get_settings

logger = structlog.get_logger(__name__)

DEFAULT_SEVERITY = "warning"
EVENT_SEVERITY = {
    "ledger_balance_drift_detected": "critical",
    "ledger_invariant_violation": "error",
    "crypto_payment_manual_review_required": "warning",
    "crypto_recheck_chain_errors": "warning",
}
ALERT_TIMEOUT_SECONDS = 5.0


def _webhook_url(settings: object) -> str:
    value = getattr(settings, "ops_alert_webhook_url", "")
    return value.strip() if isinstance(value, str) else ""


def build_alert_body(
    *,
    event: str,
    payload: dict[str, object],
    sent_at: datetime,
    app_env: str,
) -> dict[str, object]:
    return {
        "event": event,
        "severity": EVENT_SEVERITY.get(event, DEFAULT_SEVERITY),
        "environment": app_env,
        "source": f"credit-ledger/{app_env}",
        "payload": payload,
        "sent_at": sent_at.isoformat(),
    }


async def send_ops_alert(*, event: str, payload: dict[str, object]) -> bool:
    settings = get_settings()
    url = _webhook_url(settings)
    if not url:
        return False

    body = build_alert_body(
        event=event,
        payload=payload,
        sent_at=datetime.now(timezone.utc),
        app_env=getattr(settings, "app_env", "") or "dev",
    )
    try:
        async with httpx.AsyncClient(timeout=ALERT_TIMEOUT_SECONDS) as client:
            response = await client.post(url, json=body)
            response.raise_for_status()
    except httpx.HTTPError:
        logger.exception("ops_alert_delivery_failed", alert_event=event)
        return False

    logger.info("ops_alert_delivered", alert_event=event, severity=body["severity"])
    return True
