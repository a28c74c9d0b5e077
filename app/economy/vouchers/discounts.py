from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.crypto_payment_requests import CryptoPaymentRequest
from app.db.models.voucher_redemptions import VoucherRedemption
from app.db.repo.crypto_payments_repo import CryptoPaymentsRepo
from app.db.repo.vouchers_repo import VouchersRepo
from app.economy.vouchers.codes import calculate_discount_usd
from app.economy.vouchers.errors import DiscountNotApplicableError
from app.economy.vouchers.types import DiscountDescriptor


def holds_discount(payment_request: CryptoPaymentRequest | None, *, now_utc: datetime) -> bool:
    """True while the attached request can still be paid or has already been paid."""
    if payment_request is None:
        return False
    if payment_request.status == "confirmed":
        return True
    if payment_request.status == "pending":
        return payment_request.expires_at > now_utc
    if payment_request.status == "awaiting_verification":
        deadline = payment_request.verification_deadline_at
        return deadline is None or deadline > now_utc
    return False


async def lock_discount_for_payment(
    session: AsyncSession,
    *,
    redemption_id: UUID,
    user_id: int,
    base_usd: Decimal,
    now_utc: datetime | None = None,
) -> tuple[VoucherRedemption, Decimal]:
    now_utc = now_utc or datetime.now(timezone.utc)
    redemption = await VouchersRepo.get_redemption_by_id_for_update(session, redemption_id)
    if redemption is None or redemption.user_id != user_id:
        raise DiscountNotApplicableError
    if redemption.discount_type is None or redemption.discount_value is None:
        raise DiscountNotApplicableError

    # Expired and failed checkouts hand the discount back for the next request.
    if redemption.applied_payment_request_id is not None:
        attached = await CryptoPaymentsRepo.get_request_by_id(session, redemption.applied_payment_request_id)
        if holds_discount(attached, now_utc=now_utc):
            raise DiscountNotApplicableError

    discount_usd = calculate_discount_usd(
        base_usd,
        DiscountDescriptor(
            value_type=redemption.discount_type,
            value=Decimal(redemption.discount_value),
        ),
    )
    if discount_usd <= 0:
        raise DiscountNotApplicableError
    return redemption, discount_usd
