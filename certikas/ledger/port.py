"""Ledger adapter contract."""

import abc
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from certikas.provenance.digest import DigestValue

EXPLORER_BASE_URLS = {
    "mainnet": "https://explorer.kaspa.org/txs",
    "testnet": "https://explorer-tn10.kaspa.org/txs",
}


@dataclass(frozen=True)
class LedgerSubmission:
    """Receipt for an accepted anchoring transaction."""

    reference: str
    submitted_at: datetime
    block_height: Optional[int] = None


@dataclass(frozen=True)
class FeeQuote:
    """Ledger fee estimate."""

    fee: float
    unit: str


class LedgerPort(abc.ABC):
    """Anchors digests in an external ledger and reports settlement depth.

    Implementations raise ``LedgerUnavailable`` for any transport or node
    failure from ``submit``, ``confirmations`` and ``estimate_fee``.
    """

    @abc.abstractmethod
    async def submit(self, content_digest: DigestValue, payload: dict[str, Any]) -> LedgerSubmission:
        """Submit an anchoring transaction for a digest."""

    @abc.abstractmethod
    async def confirmations(self, reference: str) -> int:
        """Return the current confirmation depth (>= 0) of a transaction."""

    @abc.abstractmethod
    def explorer_url(self, reference: str) -> str:
        """Human-readable locator for a transaction."""

    async def estimate_fee(self) -> FeeQuote:
        """Estimate the fee of one anchoring transaction."""
        return FeeQuote(fee=0.0, unit="KAS")


def explorer_url_for(network: str, reference: str) -> str:
    """Explorer URL for a transaction on a named network (mainnet fallback)."""
    base_url = EXPLORER_BASE_URLS.get(network, EXPLORER_BASE_URLS["mainnet"])
    return f"{base_url}/{reference}"
