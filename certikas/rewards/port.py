"""Reward adapter contract and reward formula."""

import abc
import math
from dataclasses import dataclass
from typing import Mapping, Optional

from certikas.certificates.entity import ContentCategory

DEFAULT_BASE_AMOUNTS = {
    ContentCategory.ARTICLE: 10,
    ContentCategory.VIDEO: 15,
    ContentCategory.IMAGE: 5,
    ContentCategory.DOCUMENT: 8,
    ContentCategory.AUDIO: 7,
    ContentCategory.SHORT_POST: 3,
    ContentCategory.GENERIC_POST: 5,
}
FALLBACK_BASE_AMOUNT = 5


@dataclass(frozen=True)
class RewardReceipt:
    """Outcome of a paid reward."""

    reference: str
    claimant_id: str
    amount: int
    certificate_id: str
    reason: str = "certification_reward"


class RewardPort(abc.ABC):
    """Pays incentives for completed certifications.

    Failures are advisory: the certification pipeline logs them and moves on.
    """

    @abc.abstractmethod
    async def reward(self, claimant_id: str, amount: int, certificate_id: str) -> Optional[RewardReceipt]:
        """Pay ``amount`` to a claimant; return None when rewards are disabled."""


def calculate_reward(
    eligibility_score: float,
    category: ContentCategory,
    base_amounts: Optional[Mapping] = None,
) -> int:
    """``floor(base[category] * eligibility / 100)``."""
    amounts = base_amounts or DEFAULT_BASE_AMOUNTS
    base = amounts.get(category, amounts.get(category.value, FALLBACK_BASE_AMOUNT))
    return math.floor(base * eligibility_score / 100)
