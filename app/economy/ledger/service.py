from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.ledger_entries import LedgerEntry
from app.db.models.users import User
from app.db.repo.ledger_repo import LedgerRepo
from app.db.repo.users_repo import UsersRepo
from app.economy.entitlements.service import EntitlementService
from app.economy.ledger.constants import (
    CREDIT_ENTRY_TYPES,
    DEBIT_ENTRY_TYPES,
    ENTRY_TYPES,
    LEDGER_SOURCES,
    MAX_EXTERNAL_REF_LENGTH,
    TIER_OVERRIDE_METADATA_KEY,
    usd_to_credits,
)
from app.economy.ledger.errors import (
    InsufficientBalanceError,
    LedgerIdempotencyConflictError,
    LedgerUserNotFoundError,
    LedgerValidationError,
    NegativeBalanceInvariantError,
    PaymentCaptureValidationError,
)
from app.economy.ledger.types import BalanceSnapshot, CreditStats, LedgerAppendResult, PaymentCaptureEvent

logger = structlog.get_logger(__name__)

HISTORY_MAX_LIMIT = 200


def validate_entry(
    *,
    entry_type: str,
    amount: int,
    source: str,
    external_ref: str | None,
    metadata: dict[str, object] | None = None,
) -> None:
    if entry_type not in ENTRY_TYPES:
        raise LedgerValidationError(f"unknown entry type: {entry_type}")
    if source not in LEDGER_SOURCES:
        raise LedgerValidationError(f"unknown source: {source}")
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise LedgerValidationError("amount must be an integer")
    if external_ref is not None and not (0 < len(external_ref) <= MAX_EXTERNAL_REF_LENGTH):
        raise LedgerValidationError("external_ref length is out of range")

    if entry_type in CREDIT_ENTRY_TYPES and amount <= 0:
        raise LedgerValidationError(f"{entry_type} amount must be positive")
    if entry_type in DEBIT_ENTRY_TYPES and amount >= 0:
        raise LedgerValidationError(f"{entry_type} amount must be negative")
    if entry_type == "ADJUSTMENT" and amount == 0:
        if not metadata or TIER_OVERRIDE_METADATA_KEY not in metadata:
            raise LedgerValidationError("zero ADJUSTMENT is allowed only as a tier override")


class LedgerService:
    @staticmethod
    async def _get_user_for_update(session: AsyncSession, *, user_id: int) -> User:
        user = await UsersRepo.get_by_id_for_update(session, user_id)
        if user is None:
            raise LedgerUserNotFoundError
        return user

    @staticmethod
    async def append(
        session: AsyncSession,
        *,
        user_id: int,
        entry_type: str,
        amount: int,
        source: str,
        external_ref: str | None = None,
        metadata: dict[str, object] | None = None,
        now_utc: datetime | None = None,
    ) -> LedgerAppendResult:
        now_utc = now_utc or datetime.now(timezone.utc)
        validate_entry(
            entry_type=entry_type,
            amount=amount,
            source=source,
            external_ref=external_ref,
            metadata=metadata,
        )

        user = await LedgerService._get_user_for_update(session, user_id=user_id)

        if external_ref is not None:
            existing = await LedgerRepo.get_by_source_external_ref(
                session,
                source=source,
                external_ref=external_ref,
            )
            if existing is not None:
                if existing.user_id != user_id:
                    logger.error(
                        "ledger_idempotency_conflict",
                        source=source,
                        external_ref=external_ref,
                        user_id=user_id,
                        existing_user_id=existing.user_id,
                    )
                    raise LedgerIdempotencyConflictError
                resolution = await EntitlementService.resolve_tier(
                    session,
                    user_id=user_id,
                    now_utc=now_utc,
                )
                return LedgerAppendResult(
                    entry=existing,
                    balance=user.credit_balance,
                    tier=resolution.tier,
                    idempotent_replay=True,
                )

        balance_after = user.credit_balance + amount
        if amount < 0 and balance_after < 0 and not user.credit_exempt:
            raise InsufficientBalanceError

        entry = await LedgerRepo.create(
            session,
            entry=LedgerEntry(
                user_id=user_id,
                entry_type=entry_type,
                amount=amount,
                balance_after=balance_after,
                source=source,
                external_ref=external_ref,
                metadata_=metadata or {},
                created_at=now_utc,
            ),
        )
        user.credit_balance = balance_after
        await session.flush()

        resolution = await EntitlementService.resolve_tier(session, user_id=user_id, now_utc=now_utc)
        return LedgerAppendResult(
            entry=entry,
            balance=balance_after,
            tier=resolution.tier,
            idempotent_replay=False,
        )

    @staticmethod
    async def get_balance(session: AsyncSession, *, user_id: int) -> int:
        user = await UsersRepo.get_by_id(session, user_id)
        if user is None:
            raise LedgerUserNotFoundError
        return user.credit_balance

    @staticmethod
    async def recompute_balance(session: AsyncSession, *, user_id: int) -> int:
        user = await UsersRepo.get_by_id(session, user_id)
        if user is None:
            raise LedgerUserNotFoundError
        return await LedgerRepo.sum_for_user(session, user_id=user_id)

    @staticmethod
    async def get_balance_snapshot(session: AsyncSession, *, user_id: int) -> BalanceSnapshot:
        user = await UsersRepo.get_by_id(session, user_id)
        if user is None:
            raise LedgerUserNotFoundError
        recomputed = await LedgerRepo.sum_for_user(session, user_id=user_id)
        if recomputed < 0 and not user.credit_exempt:
            logger.error("ledger_negative_balance_detected", user_id=user_id, balance=recomputed)
            raise NegativeBalanceInvariantError
        return BalanceSnapshot(
            user_id=user_id,
            balance=user.credit_balance,
            recomputed_balance=recomputed,
            credit_exempt=user.credit_exempt,
        )

    @staticmethod
    async def get_history(
        session: AsyncSession,
        *,
        user_id: int,
        limit: int = 50,
        offset: int = 0,
    ) -> list[LedgerEntry]:
        if limit <= 0 or offset < 0:
            raise LedgerValidationError("limit must be positive and offset non-negative")
        return await LedgerRepo.list_for_user(
            session,
            user_id=user_id,
            limit=min(limit, HISTORY_MAX_LIMIT),
            offset=offset,
        )

    @staticmethod
    async def get_credit_stats(session: AsyncSession, *, user_id: int) -> CreditStats:
        balance = await LedgerService.get_balance(session, user_id=user_id)
        totals = await LedgerRepo.totals_by_type(session, user_id=user_id)
        return CreditStats(
            user_id=user_id,
            balance=balance,
            total_purchased=totals.get("PURCHASE", 0),
            total_bonus=totals.get("BONUS", 0),
            total_used=-(totals.get("USAGE", 0) + totals.get("CONSUMPTION", 0)),
            total_adjusted=totals.get("ADJUSTMENT", 0),
        )

    @staticmethod
    async def apply_payment_capture(
        session: AsyncSession,
        *,
        event: PaymentCaptureEvent,
        now_utc: datetime | None = None,
    ) -> LedgerAppendResult:
        if event.currency.upper() != "USD":
            raise PaymentCaptureValidationError("only USD captures are supported")
        if not event.gateway_transaction_id.strip():
            raise PaymentCaptureValidationError("gateway transaction id is required")
        amount = Decimal(event.amount)
        if amount <= 0:
            raise PaymentCaptureValidationError("capture amount must be positive")

        credits = usd_to_credits(amount)
        if credits <= 0:
            raise PaymentCaptureValidationError("capture amount is below one credit")

        return await LedgerService.append(
            session,
            user_id=event.user_id,
            entry_type="PURCHASE",
            amount=credits,
            source="PayPal",
            external_ref=event.gateway_transaction_id.strip(),
            metadata={"amount_usd": str(amount), "currency": "USD"},
            now_utc=now_utc,
        )
