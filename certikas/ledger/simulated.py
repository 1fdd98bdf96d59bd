"""In-process ledger for development, demos and tests (mock mode)."""

import asyncio
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from certikas.errors import LedgerUnavailable
from certikas.ledger.anchor import encode_anchor_payload
from certikas.ledger.port import FeeQuote, LedgerPort, LedgerSubmission, explorer_url_for
from certikas.provenance.digest import DigestValue

logger = logging.getLogger(__name__)


@dataclass
class _Transaction:
    reference: str
    inclusion_height: int
    anchor_hex: str


class SimulatedLedger(LedgerPort):
    """Simulated append-only chain.

    A submitted transaction is included in the next block; its depth is the
    number of blocks mined since (inclusive). ``blocks_per_poll`` advances the
    chain on every confirmation query so trackers settle without a driver.
    """

    def __init__(
        self,
        network: str = "mainnet",
        start_height: int = 1_000_000,
        blocks_per_poll: int = 0,
        fee: float = 0.001,
    ):
        """Initialize simulated chain."""
        self.network = network
        self.height = start_height
        self.blocks_per_poll = blocks_per_poll
        self.fee = fee
        self.available = True
        self._transactions: dict[str, _Transaction] = {}
        self._lock = asyncio.Lock()

    def _ensure_available(self):
        if not self.available:
            raise LedgerUnavailable(f"Simulated {self.network} node is unavailable")

    def mine(self, blocks: int = 1) -> int:
        """Advance the chain and return the new tip height."""
        if blocks < 0:
            raise ValueError("blocks must be non-negative")
        self.height += blocks
        return self.height

    async def submit(self, content_digest: DigestValue, payload: dict[str, Any]) -> LedgerSubmission:
        """Record an anchoring transaction for inclusion in the next block."""
        self._ensure_available()
        async with self._lock:
            reference = f"kaspa:tx:{secrets.token_hex(32)}"
            self._transactions[reference] = _Transaction(
                reference=reference,
                inclusion_height=self.height + 1,
                anchor_hex=encode_anchor_payload(content_digest, payload),
            )
        logger.debug(f"Simulated transaction {reference} queued at height {self.height + 1}")
        return LedgerSubmission(
            reference=reference,
            submitted_at=datetime.now(timezone.utc),
            block_height=self.height,
        )

    async def confirmations(self, reference: str) -> int:
        """Depth of a transaction; unknown references are unconfirmed."""
        self._ensure_available()
        if self.blocks_per_poll:
            self.mine(self.blocks_per_poll)
        tx = self._transactions.get(reference)
        if tx is None:
            return 0
        return max(0, self.height - tx.inclusion_height + 1)

    def anchor_payload(self, reference: str) -> str:
        """Raw hex anchor payload recorded for a transaction."""
        return self._transactions[reference].anchor_hex

    def explorer_url(self, reference: str) -> str:
        return explorer_url_for(self.network, reference)

    async def estimate_fee(self) -> FeeQuote:
        self._ensure_available()
        return FeeQuote(fee=self.fee, unit="KAS")
