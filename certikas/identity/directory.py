"""In-memory claimant directory."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from certikas.errors import ClaimantNotFound
from certikas.identity.port import Claimant, ClaimantPort


@dataclass
class ClaimantRecord:
    """Mutable directory entry behind a Claimant view."""

    claimant_id: str
    eligibility_score: float = 100.0
    verified: bool = False
    total_certifications: int = 0
    last_active_at: Optional[datetime] = None
    attributes: dict = field(default_factory=dict)

    def to_claimant(self) -> Claimant:
        return Claimant(
            claimant_id=self.claimant_id,
            eligibility_score=self.eligibility_score,
            verified=self.verified,
        )


class InMemoryClaimantDirectory(ClaimantPort):
    """Claimant store for development and tests."""

    def __init__(self, records: Optional[list[ClaimantRecord]] = None):
        """Initialize directory with optional seed records."""
        self._records: dict[str, ClaimantRecord] = {}
        for record in records or []:
            self.register(record)

    def register(self, record: ClaimantRecord) -> ClaimantRecord:
        """Add or replace a claimant."""
        if not 0 <= record.eligibility_score <= 100:
            raise ValueError("Eligibility score must be between 0 and 100")
        self._records[record.claimant_id] = record
        return record

    def get_record(self, claimant_id: str) -> ClaimantRecord:
        record = self._records.get(claimant_id)
        if record is None:
            raise ClaimantNotFound(claimant_id)
        return record

    async def resolve(self, claimant_id: str) -> Claimant:
        return self.get_record(claimant_id).to_claimant()

    async def record_issuance(self, claimant_id: str) -> None:
        record = self.get_record(claimant_id)
        record.total_certifications += 1
        record.last_active_at = datetime.now(timezone.utc)
