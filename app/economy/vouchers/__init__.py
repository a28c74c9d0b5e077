from app.economy.vouchers.service import VoucherService

__all__ = ["VoucherService"]
