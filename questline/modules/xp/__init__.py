"""XP ledger collaborator."""

from .ledger_service import XPGrantResult, XPLedgerService

__all__ = ["XPLedgerService", "XPGrantResult"]
