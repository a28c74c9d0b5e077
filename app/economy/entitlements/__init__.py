from app.economy.entitlements.service import EntitlementService

__all__ = ["EntitlementService"]
