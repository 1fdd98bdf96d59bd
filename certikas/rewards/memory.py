"""In-process reward adapters."""

import logging
import secrets
from typing import Optional

from certikas.rewards.port import RewardPort, RewardReceipt

logger = logging.getLogger(__name__)


class DisabledRewards(RewardPort):
    """Reward adapter used while the token program is not live."""

    async def reward(self, claimant_id: str, amount: int, certificate_id: str) -> Optional[RewardReceipt]:
        logger.info("Rewards disabled; skipping certification reward")
        return None


class InMemoryRewardLedger(RewardPort):
    """Records payouts in memory, at most once per certificate."""

    def __init__(self):
        """Initialize empty payout ledger."""
        self.receipts: dict[str, RewardReceipt] = {}
        self.balances: dict[str, int] = {}

    async def reward(self, claimant_id: str, amount: int, certificate_id: str) -> Optional[RewardReceipt]:
        """Credit a claimant; repeated calls for the same certificate return the first receipt."""
        if amount < 0:
            raise ValueError("Cannot reward a negative amount")
        existing = self.receipts.get(certificate_id)
        if existing is not None:
            return existing

        receipt = RewardReceipt(
            reference=f"reward:tx:{secrets.token_hex(16)}",
            claimant_id=claimant_id,
            amount=amount,
            certificate_id=certificate_id,
        )
        self.receipts[certificate_id] = receipt
        self.balances[claimant_id] = self.balances.get(claimant_id, 0) + amount
        return receipt

    def balance(self, claimant_id: str) -> int:
        return self.balances.get(claimant_id, 0)
