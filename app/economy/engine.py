from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.db.models.ledger_entries import LedgerEntry
from app.db.session import SessionLocal
from app.economy.crypto.service import CryptoPaymentService, RecheckSummary
from app.economy.crypto.types import (
    ChainQueryClient,
    CryptoPaymentRequestResult,
    ExchangeQuote,
    ExchangeRateFeed,
    VerificationResult,
    WalletProvisioner,
)
from app.economy.entitlements.features import FeatureFlagRegistry
from app.economy.entitlements.service import EntitlementService
from app.economy.entitlements.types import Entitlements, TierResolution
from app.economy.ledger import admin as ledger_admin
from app.economy.ledger import usage as ledger_usage
from app.economy.ledger.service import LedgerService
from app.economy.ledger.types import BalanceSnapshot, CreditStats, LedgerAppendResult, PaymentCaptureEvent
from app.economy.referrals.service import ReferralService, ReferralStats
from app.economy.vouchers import admin as voucher_admin
from app.economy.vouchers.service import VoucherService
from app.economy.vouchers.types import VoucherRedeemResult, VoucherSummary


class LedgerEngine:
    """Transactional entry point for balances, vouchers, referrals and crypto checkout.

    Every call runs in its own transaction from ``session_factory``. Crypto
    verification manages its own transactions so no lock spans the chain lookup.
    """

    def __init__(
        self,
        *,
        rate_feed: ExchangeRateFeed | None = None,
        chain_client: ChainQueryClient | None = None,
        provisioner: WalletProvisioner | None = None,
        session_factory: async_sessionmaker[AsyncSession] = SessionLocal,
    ) -> None:
        self._rate_feed = rate_feed
        self._chain_client = chain_client
        self._provisioner = provisioner
        self._session_factory = session_factory

    def _require_rate_feed(self) -> ExchangeRateFeed:
        if self._rate_feed is None:
            raise RuntimeError("exchange rate feed is not configured")
        return self._rate_feed

    def _require_chain_client(self) -> ChainQueryClient:
        if self._chain_client is None:
            raise RuntimeError("chain query client is not configured")
        return self._chain_client

    def _require_provisioner(self) -> WalletProvisioner:
        if self._provisioner is None:
            raise RuntimeError("wallet provisioner is not configured")
        return self._provisioner

    async def get_balance(self, user_id: int) -> int:
        async with self._session_factory.begin() as session:
            return await LedgerService.get_balance(session, user_id=user_id)

    async def recompute_balance(self, user_id: int) -> int:
        async with self._session_factory.begin() as session:
            return await LedgerService.recompute_balance(session, user_id=user_id)

    async def get_balance_snapshot(self, user_id: int) -> BalanceSnapshot:
        async with self._session_factory.begin() as session:
            return await LedgerService.get_balance_snapshot(session, user_id=user_id)

    async def get_history(self, user_id: int, *, limit: int = 50, offset: int = 0) -> list[LedgerEntry]:
        async with self._session_factory.begin() as session:
            return await LedgerService.get_history(session, user_id=user_id, limit=limit, offset=offset)

    async def get_credit_stats(self, user_id: int) -> CreditStats:
        async with self._session_factory.begin() as session:
            return await LedgerService.get_credit_stats(session, user_id=user_id)

    async def append(
        self,
        *,
        user_id: int,
        entry_type: str,
        amount: int,
        source: str,
        external_ref: str | None = None,
        metadata: dict[str, object] | None = None,
        now_utc: datetime | None = None,
    ) -> LedgerAppendResult:
        async with self._session_factory.begin() as session:
            return await LedgerService.append(
                session,
                user_id=user_id,
                entry_type=entry_type,
                amount=amount,
                source=source,
                external_ref=external_ref,
                metadata=metadata,
                now_utc=now_utc,
            )

    async def apply_payment_capture(self, event: PaymentCaptureEvent) -> LedgerAppendResult:
        async with self._session_factory.begin() as session:
            return await LedgerService.apply_payment_capture(session, event=event)

    async def charge_operation(
        self,
        *,
        user_id: int,
        operation: str,
        quantity: int = 1,
        external_ref: str | None = None,
    ) -> LedgerAppendResult:
        async with self._session_factory.begin() as session:
            return await ledger_usage.charge_operation(
                session,
                user_id=user_id,
                operation=operation,
                quantity=quantity,
                external_ref=external_ref,
            )

    async def consume_credits(
        self,
        *,
        user_id: int,
        amount: int,
        reason: str,
        external_ref: str | None = None,
    ) -> LedgerAppendResult:
        async with self._session_factory.begin() as session:
            return await ledger_usage.consume_credits(
                session,
                user_id=user_id,
                amount=amount,
                reason=reason,
                external_ref=external_ref,
            )

    async def adjust_credits(
        self,
        *,
        user_id: int,
        amount: int,
        reason: str,
        admin_id: str,
        external_ref: str | None = None,
    ) -> LedgerAppendResult:
        async with self._session_factory.begin() as session:
            return await ledger_admin.adjust_credits(
                session,
                user_id=user_id,
                amount=amount,
                reason=reason,
                admin_id=admin_id,
                external_ref=external_ref,
            )

    async def override_tier(self, *, user_id: int, tier: str, reason: str, admin_id: str) -> LedgerAppendResult:
        async with self._session_factory.begin() as session:
            return await ledger_admin.override_tier(
                session,
                user_id=user_id,
                tier=tier,
                reason=reason,
                admin_id=admin_id,
            )

    async def set_credit_exempt(self, *, user_id: int, exempt: bool, admin_id: str) -> bool:
        async with self._session_factory.begin() as session:
            user = await ledger_admin.set_credit_exempt(
                session,
                user_id=user_id,
                exempt=exempt,
                admin_id=admin_id,
            )
            return user.credit_exempt

    async def redeem_voucher(
        self,
        *,
        user_id: int,
        code: str,
        idempotency_key: str | None = None,
    ) -> VoucherRedeemResult:
        async with self._session_factory.begin() as session:
            return await VoucherService.redeem(
                session,
                user_id=user_id,
                code=code,
                idempotency_key=idempotency_key,
            )

    async def create_voucher(
        self,
        *,
        code: str,
        voucher_type: str,
        value_type: str,
        value_amount: Decimal,
        created_by: str,
        max_uses: int | None = None,
        per_user_limit: int = 1,
        expires_at: datetime | None = None,
        tier_restriction: str | None = None,
        referral_source_user_id: int | None = None,
    ) -> VoucherSummary:
        async with self._session_factory.begin() as session:
            voucher = await voucher_admin.create_voucher(
                session,
                code=code,
                voucher_type=voucher_type,
                value_type=value_type,
                value_amount=value_amount,
                created_by=created_by,
                max_uses=max_uses,
                per_user_limit=per_user_limit,
                expires_at=expires_at,
                tier_restriction=tier_restriction,
                referral_source_user_id=referral_source_user_id,
            )
            return voucher_admin.to_summary(voucher)

    async def list_vouchers(
        self,
        *,
        voucher_type: str | None = None,
        is_active: bool | None = None,
        limit: int = 50,
    ) -> list[VoucherSummary]:
        async with self._session_factory.begin() as session:
            return await voucher_admin.list_vouchers(
                session,
                voucher_type=voucher_type,
                is_active=is_active,
                limit=limit,
            )

    async def set_voucher_active(self, *, voucher_id: int, is_active: bool) -> VoucherSummary:
        async with self._session_factory.begin() as session:
            return await voucher_admin.set_voucher_active(
                session,
                voucher_id=voucher_id,
                is_active=is_active,
            )

    async def get_referral_code(self, user_id: int) -> str:
        async with self._session_factory.begin() as session:
            return await ReferralService.get_or_create_referral_code(session, user_id=user_id)

    async def get_referral_stats(self, user_id: int) -> ReferralStats:
        async with self._session_factory.begin() as session:
            return await ReferralService.get_referral_stats(session, user_id=user_id)

    async def resolve_tier(self, user_id: int) -> TierResolution:
        async with self._session_factory.begin() as session:
            return await EntitlementService.resolve_tier(session, user_id=user_id)

    async def get_entitlements(
        self,
        user_id: int,
        *,
        registry: FeatureFlagRegistry | None = None,
    ) -> Entitlements:
        async with self._session_factory.begin() as session:
            return await EntitlementService.get_entitlements(session, user_id=user_id, registry=registry)

    async def create_crypto_payment_request(
        self,
        *,
        user_id: int,
        crypto_type: str,
        plan_code: str | None = None,
        amount_usd: Decimal | None = None,
        discount_redemption_id: UUID | None = None,
    ) -> CryptoPaymentRequestResult:
        rate_feed = self._require_rate_feed()
        provisioner = self._require_provisioner()
        async with self._session_factory.begin() as session:
            return await CryptoPaymentService.create_payment_request(
                session,
                user_id=user_id,
                crypto_type=crypto_type,
                rate_feed=rate_feed,
                provisioner=provisioner,
                plan_code=plan_code,
                amount_usd=amount_usd,
                discount_redemption_id=discount_redemption_id,
            )

    async def verify_crypto_payment(
        self,
        *,
        user_id: int,
        transaction_hash: str,
        crypto_type: str,
        reference_id: str | None = None,
    ) -> VerificationResult:
        return await CryptoPaymentService.verify_payment(
            user_id=user_id,
            transaction_hash=transaction_hash,
            crypto_type=crypto_type,
            chain_client=self._require_chain_client(),
            reference_id=reference_id,
            session_factory=self._session_factory,
        )

    async def get_exchange_quote(self, *, crypto_type: str, amount_usd: Decimal) -> ExchangeQuote:
        return await CryptoPaymentService.get_exchange_quote(
            self._require_rate_feed(),
            crypto_type=crypto_type,
            amount_usd=amount_usd,
        )

    async def expire_stale_crypto_requests(self) -> int:
        return await CryptoPaymentService.expire_stale_requests(session_factory=self._session_factory)

    async def recheck_awaiting_crypto_payments(self) -> RecheckSummary:
        return await CryptoPaymentService.recheck_awaiting(
            chain_client=self._require_chain_client(),
            session_factory=self._session_factory,
        )
