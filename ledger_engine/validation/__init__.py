"""Input validation package."""

from ledger_engine.validation.validator import LedgerValidator

__all__ = ["LedgerValidator"]
