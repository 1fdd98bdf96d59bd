"""Shared fixtures and port doubles."""

from datetime import datetime, timezone
from typing import Any, Optional

import pytest
import pytest_asyncio

from certikas.certificates.entity import Certificate
from certikas.certificates.service import CertificationEngine
from certikas.errors import LedgerUnavailable
from certikas.identity.directory import ClaimantRecord, InMemoryClaimantDirectory
from certikas.ledger.port import LedgerPort, LedgerSubmission
from certikas.provenance.digest import DigestValue
from certikas.rewards.memory import InMemoryRewardLedger
from certikas.settings import Settings
from certikas.storage.memory import InMemoryCertificateStore
from certikas.webhooks.events import InMemoryPublisher

FIXED_NOW = datetime(2026, 10, 17, 12, 0, 0, tzinfo=timezone.utc)


class ScriptedLedger(LedgerPort):
    """Ledger double returning scripted confirmation depths.

    ``depths`` is consumed one value per query; the last value repeats once
    the script runs out. Exception instances in the script are raised.
    """

    def __init__(self, depths: Optional[list] = None, references: Optional[list[str]] = None):
        self.depths = list(depths or [0])
        self.references = list(references or [])
        self.submissions: list[tuple[DigestValue, dict[str, Any]]] = []
        self.queries: list[str] = []
        self.submit_error: Optional[Exception] = None
        self._position = 0

    async def submit(self, content_digest: DigestValue, payload: dict[str, Any]) -> LedgerSubmission:
        if self.submit_error is not None:
            raise self.submit_error
        self.submissions.append((content_digest, payload))
        if self.references:
            reference = self.references.pop(0)
        else:
            reference = f"R{len(self.submissions)}"
        return LedgerSubmission(reference=reference, submitted_at=FIXED_NOW)

    async def confirmations(self, reference: str) -> int:
        self.queries.append(reference)
        index = min(self._position, len(self.depths) - 1)
        self._position += 1
        value = self.depths[index]
        if isinstance(value, Exception):
            raise value
        return value

    def explorer_url(self, reference: str) -> str:
        return f"https://explorer.test/txs/{reference}"


class RecordingStore(InMemoryCertificateStore):
    """In-memory store that records every successful write."""

    def __init__(self):
        super().__init__()
        self.writes: list[Certificate] = []

    async def compare_and_set(self, certificate: Certificate, expected_version: int) -> bool:
        applied = await super().compare_and_set(certificate, expected_version)
        if applied:
            self.writes.append(certificate)
        return applied


@pytest.fixture
def settings() -> Settings:
    """Settings with instant polling."""
    return Settings(
        poll_interval_seconds=0,
        max_poll_attempts=40,
        confirmation_threshold=6,
        eligibility_threshold=50,
        webhook_url=None,
        webhook_secret=None,
    )


@pytest.fixture
def claimants() -> InMemoryClaimantDirectory:
    return InMemoryClaimantDirectory(
        [
            ClaimantRecord("kaspa:alice", eligibility_score=85, verified=True),
            ClaimantRecord("kaspa:edge", eligibility_score=50, verified=True),
            ClaimantRecord("kaspa:low", eligibility_score=49, verified=True),
            ClaimantRecord("kaspa:unverified", eligibility_score=99, verified=False),
        ]
    )


@pytest.fixture
def ledger() -> ScriptedLedger:
    return ScriptedLedger(depths=[0])


@pytest.fixture
def store() -> RecordingStore:
    return RecordingStore()


@pytest.fixture
def rewards() -> InMemoryRewardLedger:
    return InMemoryRewardLedger()


@pytest.fixture
def publisher() -> InMemoryPublisher:
    return InMemoryPublisher()


@pytest_asyncio.fixture
async def engine(ledger, claimants, store, rewards, publisher, settings):
    """Certification engine wired to in-memory doubles; trackers are stopped afterwards."""
    engine = CertificationEngine(
        ledger=ledger,
        claimants=claimants,
        store=store,
        rewards=rewards,
        publisher=publisher,
        settings=settings,
        clock=lambda: FIXED_NOW,
    )
    yield engine
    await engine.shutdown()


def unavailable(message: str = "node offline") -> LedgerUnavailable:
    return LedgerUnavailable(message)
