from app.economy.engine import LedgerEngine

__all__ = ["LedgerEngine"]
