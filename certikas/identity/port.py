"""Claimant identity contract."""

import abc
from dataclasses import dataclass

TRUST_LEVELS = (
    (95, "platinum"),
    (85, "gold"),
    (70, "silver"),
    (50, "bronze"),
)


@dataclass(frozen=True)
class Claimant:
    """Read-only view of a claimant's eligibility."""

    claimant_id: str
    eligibility_score: float
    verified: bool

    @property
    def trust_level(self) -> str:
        """Display tier derived from the eligibility score."""
        for floor, label in TRUST_LEVELS:
            if self.eligibility_score >= floor:
                return label
        return "unranked"

    def is_eligible(self, threshold: float) -> bool:
        return self.verified and self.eligibility_score >= threshold


class ClaimantPort(abc.ABC):
    """Resolves claimants and records their activity."""

    @abc.abstractmethod
    async def resolve(self, claimant_id: str) -> Claimant:
        """Return the claimant or raise ``ClaimantNotFound``."""

    @abc.abstractmethod
    async def record_issuance(self, claimant_id: str) -> None:
        """Increment the claimant's issuance counter."""
