"""Ledger adapters."""

from certikas.ledger.port import FeeQuote, LedgerPort, LedgerSubmission, explorer_url_for
from certikas.ledger.simulated import SimulatedLedger

__all__ = ["FeeQuote", "LedgerPort", "LedgerSubmission", "SimulatedLedger", "explorer_url_for"]
