"""credit_ledger_initial

Revision ID: 0001_credit_ledger
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "0001_credit_ledger"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None

CRYPTO_TYPES_SQL = "('bitcoin','solana','usdt_erc20','usdt_trc20')"
TIERS_SQL = "('free','basic','premium','enterprise')"


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("external_user_id", sa.String(128), nullable=False),
        sa.Column("username", sa.Text(), nullable=True),
        sa.Column("credit_balance", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("credit_exempt", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("referral_code", sa.String(16), nullable=True),
        sa.Column("referred_by_user_id", sa.BigInteger(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint(
            "referred_by_user_id IS NULL OR referred_by_user_id <> id",
            name="ck_users_no_self_referral",
        ),
        sa.ForeignKeyConstraint(["referred_by_user_id"], ["users.id"]),
        sa.UniqueConstraint("external_user_id", name="uq_users_external_user_id"),
        sa.UniqueConstraint("referral_code", name="uq_users_referral_code"),
    )
    op.create_index("idx_users_username", "users", ["username"])
    op.create_index("idx_users_referred_by", "users", ["referred_by_user_id"])
    op.create_index("idx_users_created_at", "users", ["created_at"])

    op.create_table(
        "ledger_entries",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("user_id", sa.BigInteger(), nullable=False),
        sa.Column("entry_type", sa.String(16), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("balance_after", sa.Integer(), nullable=False),
        sa.Column("source", sa.String(16), nullable=False),
        sa.Column("external_ref", sa.String(128), nullable=True),
        sa.Column(
            "metadata",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "entry_type IN ('PURCHASE','USAGE','BONUS','ADJUSTMENT','CONSUMPTION')",
            name="ck_ledger_entries_entry_type",
        ),
        sa.CheckConstraint(
            "source IN ('PayPal','Bitcoin','Solana','USDT-ERC20','USDT-TRC20',"
            "'Voucher','Referral','Manual','System')",
            name="ck_ledger_entries_source",
        ),
        sa.CheckConstraint(
            "(entry_type IN ('PURCHASE','BONUS') AND amount > 0) "
            "OR (entry_type IN ('USAGE','CONSUMPTION') AND amount < 0) "
            "OR entry_type = 'ADJUSTMENT'",
            name="ck_ledger_entries_amount_sign",
        ),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
    )
    op.create_index("idx_ledger_user_created", "ledger_entries", ["user_id", "created_at"])
    op.create_index("idx_ledger_user_source", "ledger_entries", ["user_id", "source"])
    op.create_index("idx_ledger_type", "ledger_entries", ["entry_type"])
    op.create_index(
        "uq_ledger_entries_source_external_ref",
        "ledger_entries",
        ["source", "external_ref"],
        unique=True,
        postgresql_where=sa.text("external_ref IS NOT NULL"),
    )
    op.execute(
        """
        CREATE OR REPLACE FUNCTION fn_ledger_entries_append_only()
        RETURNS trigger AS $$
        BEGIN
            RAISE EXCEPTION 'ledger_entries is append-only';
        END;
        $$ LANGUAGE plpgsql;
        """
    )
    op.execute(
        """
        CREATE TRIGGER trg_ledger_entries_append_only
        BEFORE UPDATE OR DELETE ON ledger_entries
        FOR EACH ROW EXECUTE FUNCTION fn_ledger_entries_append_only();
        """
    )

    op.create_table(
        "vouchers",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("code", sa.String(50), nullable=False),
        sa.Column("voucher_type", sa.String(16), nullable=False),
        sa.Column("value_type", sa.String(32), nullable=False),
        sa.Column("value_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("max_uses", sa.Integer(), nullable=True),
        sa.Column("per_user_limit", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("tier_restriction", sa.String(16), nullable=True),
        sa.Column("referral_source_user_id", sa.BigInteger(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("total_uses", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("created_by", sa.String(64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("voucher_type IN ('discount','referral')", name="ck_vouchers_type"),
        sa.CheckConstraint(
            "value_type IN ('credits','percentage_discount','dollar_discount')",
            name="ck_vouchers_value_type",
        ),
        sa.CheckConstraint("value_amount > 0", name="ck_vouchers_value_amount_positive"),
        sa.CheckConstraint(
            "value_type <> 'percentage_discount' OR value_amount <= 100",
            name="ck_vouchers_percentage_le_100",
        ),
        sa.CheckConstraint("max_uses IS NULL OR max_uses > 0", name="ck_vouchers_max_uses_positive"),
        sa.CheckConstraint("per_user_limit >= 1", name="ck_vouchers_per_user_limit_positive"),
        sa.CheckConstraint("total_uses >= 0", name="ck_vouchers_total_uses_non_negative"),
        sa.CheckConstraint("max_uses IS NULL OR total_uses <= max_uses", name="ck_vouchers_total_uses_le_max"),
        sa.CheckConstraint(
            "voucher_type <> 'referral' OR referral_source_user_id IS NOT NULL",
            name="ck_vouchers_referral_source_present",
        ),
        sa.ForeignKeyConstraint(["referral_source_user_id"], ["users.id"]),
        sa.UniqueConstraint("code", name="uq_vouchers_code"),
    )
    op.create_index("idx_vouchers_referral_source", "vouchers", ["referral_source_user_id"])
    op.create_index("idx_vouchers_created_at", "vouchers", ["created_at"])

    op.create_table(
        "crypto_wallets",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("user_id", sa.BigInteger(), nullable=False),
        sa.Column("crypto_type", sa.String(16), nullable=False),
        sa.Column("wallet_address", sa.String(128), nullable=False),
        sa.Column("public_key", sa.Text(), nullable=True),
        sa.Column("encrypted_private_key", sa.Text(), nullable=False),
        sa.Column("balance", sa.Numeric(30, 10), nullable=False, server_default=sa.text("0")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(f"crypto_type IN {CRYPTO_TYPES_SQL}", name="ck_crypto_wallets_crypto_type"),
        sa.CheckConstraint("balance >= 0", name="ck_crypto_wallets_balance_non_negative"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.UniqueConstraint("wallet_address", name="uq_crypto_wallets_wallet_address"),
    )
    op.create_index(
        "uq_crypto_wallets_active_user_type",
        "crypto_wallets",
        ["user_id", "crypto_type"],
        unique=True,
        postgresql_where=sa.text("is_active = true"),
    )

    op.create_table(
        "crypto_payment_requests",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("reference_id", sa.String(32), nullable=False),
        sa.Column("user_id", sa.BigInteger(), nullable=False),
        sa.Column("wallet_id", sa.BigInteger(), nullable=False),
        sa.Column("crypto_type", sa.String(16), nullable=False),
        sa.Column("plan_code", sa.String(32), nullable=True),
        sa.Column("amount_usd", sa.Numeric(12, 2), nullable=False),
        sa.Column("discount_usd", sa.Numeric(12, 2), nullable=False),
        sa.Column("credits_amount", sa.Integer(), nullable=False),
        sa.Column("rate_usd", sa.Numeric(20, 8), nullable=False),
        sa.Column("expected_amount_crypto", sa.Numeric(30, 10), nullable=False),
        sa.Column("status", sa.String(24), nullable=False),
        sa.Column("transaction_hash", sa.String(128), nullable=True),
        sa.Column("failure_reason", sa.String(32), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("verification_deadline_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "status IN ('pending','awaiting_verification','confirmed','expired','failed')",
            name="ck_crypto_payment_requests_status",
        ),
        sa.CheckConstraint(
            f"crypto_type IN {CRYPTO_TYPES_SQL}",
            name="ck_crypto_payment_requests_crypto_type",
        ),
        sa.CheckConstraint("amount_usd > 0", name="ck_crypto_payment_requests_amount_usd_positive"),
        sa.CheckConstraint(
            "expected_amount_crypto > 0",
            name="ck_crypto_payment_requests_expected_amount_positive",
        ),
        sa.CheckConstraint("credits_amount > 0", name="ck_crypto_payment_requests_credits_positive"),
        sa.CheckConstraint(
            "status <> 'awaiting_verification' OR transaction_hash IS NOT NULL",
            name="ck_crypto_payment_requests_awaiting_has_hash",
        ),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["wallet_id"], ["crypto_wallets.id"]),
        sa.UniqueConstraint("reference_id", name="uq_crypto_payment_requests_reference_id"),
    )
    op.create_index(
        "idx_crypto_payment_requests_user_status",
        "crypto_payment_requests",
        ["user_id", "status"],
    )
    op.create_index(
        "idx_crypto_payment_requests_status_expires",
        "crypto_payment_requests",
        ["status", "expires_at"],
    )
    op.create_index(
        "idx_crypto_payment_requests_transaction_hash",
        "crypto_payment_requests",
        ["transaction_hash"],
    )

    op.create_table(
        "voucher_redemptions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("voucher_id", sa.BigInteger(), nullable=False),
        sa.Column("user_id", sa.BigInteger(), nullable=False),
        sa.Column("idempotency_key", sa.String(128), nullable=False),
        sa.Column("credits_awarded", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("discount_type", sa.String(32), nullable=True),
        sa.Column("discount_value", sa.Numeric(12, 2), nullable=True),
        sa.Column("ledger_entry_id", sa.BigInteger(), nullable=True),
        sa.Column("referrer_user_id", sa.BigInteger(), nullable=True),
        sa.Column("referrer_credits_awarded", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("applied_payment_request_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("redeemed_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["voucher_id"], ["vouchers.id"]),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["ledger_entry_id"], ["ledger_entries.id"]),
        sa.ForeignKeyConstraint(["referrer_user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["applied_payment_request_id"], ["crypto_payment_requests.id"]),
        sa.UniqueConstraint("idempotency_key", name="uq_voucher_redemptions_idempotency_key"),
    )
    op.create_index(
        "idx_voucher_redemptions_voucher_user",
        "voucher_redemptions",
        ["voucher_id", "user_id"],
    )
    op.create_index("idx_voucher_redemptions_user", "voucher_redemptions", ["user_id"])
    op.create_index(
        "uq_voucher_redemptions_applied_payment_request",
        "voucher_redemptions",
        ["applied_payment_request_id"],
        unique=True,
        postgresql_where=sa.text("applied_payment_request_id IS NOT NULL"),
    )

    op.create_table(
        "crypto_transactions",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("transaction_hash", sa.String(128), nullable=False),
        sa.Column("wallet_id", sa.BigInteger(), nullable=False),
        sa.Column("payment_request_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("amount", sa.Numeric(30, 10), nullable=False),
        sa.Column("amount_usd", sa.Numeric(12, 2), nullable=True),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("confirmations", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("block_height", sa.BigInteger(), nullable=True),
        sa.Column(
            "raw_data",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "status IN ('pending','confirming','confirmed','failed')",
            name="ck_crypto_transactions_status",
        ),
        sa.CheckConstraint("confirmations >= 0", name="ck_crypto_transactions_confirmations_non_negative"),
        sa.ForeignKeyConstraint(["wallet_id"], ["crypto_wallets.id"]),
        sa.ForeignKeyConstraint(["payment_request_id"], ["crypto_payment_requests.id"]),
        sa.UniqueConstraint("transaction_hash", name="uq_crypto_transactions_transaction_hash"),
    )
    op.create_index("idx_crypto_transactions_wallet", "crypto_transactions", ["wallet_id"])
    op.create_index(
        "idx_crypto_transactions_payment_request",
        "crypto_transactions",
        ["payment_request_id"],
    )

    op.create_table(
        "subscriptions",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("user_id", sa.BigInteger(), nullable=False),
        sa.Column("plan_code", sa.String(32), nullable=False),
        sa.Column("tier", sa.String(16), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("current_period_start", sa.DateTime(timezone=True), nullable=False),
        sa.Column("current_period_end", sa.DateTime(timezone=True), nullable=False),
        sa.Column("payment_request_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("status IN ('active','canceled','expired')", name="ck_subscriptions_status"),
        sa.CheckConstraint(f"tier IN {TIERS_SQL}", name="ck_subscriptions_tier"),
        sa.CheckConstraint(
            "current_period_end > current_period_start",
            name="ck_subscriptions_period_order",
        ),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["payment_request_id"], ["crypto_payment_requests.id"]),
    )
    op.create_index("idx_subscriptions_user_status", "subscriptions", ["user_id", "status"])
    op.create_index("idx_subscriptions_period_end", "subscriptions", ["current_period_end"])
    op.create_index(
        "uq_subscriptions_active_per_user",
        "subscriptions",
        ["user_id"],
        unique=True,
        postgresql_where=sa.text("status = 'active'"),
    )

    op.create_table(
        "feature_flags",
        sa.Column("feature_name", sa.String(64), primary_key=True),
        sa.Column("is_enabled", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("min_tier", sa.String(16), nullable=False, server_default=sa.text("'free'")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint(f"min_tier IN {TIERS_SQL}", name="ck_feature_flags_min_tier"),
    )
    op.execute(
        """
        INSERT INTO feature_flags (feature_name, is_enabled, min_tier) VALUES
            ('content_generation', true, 'free'),
            ('ai_shield', true, 'premium'),
            ('clone_me', true, 'premium'),
            ('plagiarism_check', true, 'basic'),
            ('export', true, 'free'),
            ('high_word_count', true, 'premium')
        """
    )


def downgrade() -> None:
    op.drop_table("feature_flags")
    op.drop_index("uq_subscriptions_active_per_user", table_name="subscriptions")
    op.drop_index("idx_subscriptions_period_end", table_name="subscriptions")
    op.drop_index("idx_subscriptions_user_status", table_name="subscriptions")
    op.drop_table("subscriptions")
    op.drop_index("idx_crypto_transactions_payment_request", table_name="crypto_transactions")
    op.drop_index("idx_crypto_transactions_wallet", table_name="crypto_transactions")
    op.drop_table("crypto_transactions")
    op.drop_index("uq_voucher_redemptions_applied_payment_request", table_name="voucher_redemptions")
    op.drop_index("idx_voucher_redemptions_user", table_name="voucher_redemptions")
    op.drop_index("idx_voucher_redemptions_voucher_user", table_name="voucher_redemptions")
    op.drop_table("voucher_redemptions")
    op.drop_index("idx_crypto_payment_requests_transaction_hash", table_name="crypto_payment_requests")
    op.drop_index("idx_crypto_payment_requests_status_expires", table_name="crypto_payment_requests")
    op.drop_index("idx_crypto_payment_requests_user_status", table_name="crypto_payment_requests")
    op.drop_table("crypto_payment_requests")
    op.drop_index("uq_crypto_wallets_active_user_type", table_name="crypto_wallets")
    op.drop_table("crypto_wallets")
    op.drop_index("idx_vouchers_created_at", table_name="vouchers")
    op.drop_index("idx_vouchers_referral_source", table_name="vouchers")
    op.drop_table("vouchers")
    op.execute("DROP TRIGGER IF EXISTS trg_ledger_entries_append_only ON ledger_entries")
    op.execute("DROP FUNCTION IF EXISTS fn_ledger_entries_append_only()")
    op.drop_index("uq_ledger_entries_source_external_ref", table_name="ledger_entries")
    op.drop_index("idx_ledger_type", table_name="ledger_entries")
    op.drop_index("idx_ledger_user_source", table_name="ledger_entries")
    op.drop_index("idx_ledger_user_created", table_name="ledger_entries")
    op.drop_table("ledger_entries")
    op.drop_index("idx_users_created_at", table_name="users")
    op.drop_index("idx_users_referred_by", table_name="users")
    op.drop_index("idx_users_username", table_name="users")
    op.drop_table("users")
