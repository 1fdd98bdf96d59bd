"""Certificate repository contract."""

import abc
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Iterable, Iterator, Mapping, Optional

from certikas.certificates.entity import Certificate, CertificateState
from certikas.provenance.digest import DigestValue


@dataclass(frozen=True)
class CertificateStatistics:
    """Aggregate counts over stored certificates."""

    total: int = 0
    pending: int = 0
    confirmed: int = 0
    revoked: int = 0
    by_category: dict[str, int] = field(default_factory=dict)
    today: int = 0
    this_week: int = 0
    this_month: int = 0


class CertificateStore(abc.ABC):
    """Durable keyed storage for certificates.

    ``insert_if_absent`` and ``compare_and_set`` must be atomic: the first
    closes the race between concurrent issuances of the same content, the
    second the race between concurrent writers of the same certificate.
    """

    @abc.abstractmethod
    async def insert_if_absent(self, certificate: Certificate) -> tuple[Certificate, bool]:
        """Insert unless an active certificate shares the digest.

        Returns ``(stored, inserted)``; when not inserted, ``stored`` is the
        existing active certificate.
        """

    @abc.abstractmethod
    async def get(self, certificate_id: str) -> Certificate:
        """Load a certificate or raise ``CertificateNotFound``."""

    @abc.abstractmethod
    async def compare_and_set(self, certificate: Certificate, expected_version: int) -> bool:
        """Replace the stored certificate if its version still equals ``expected_version``."""

    @abc.abstractmethod
    async def find_active_by_digest(self, content_digest: DigestValue) -> Optional[Certificate]:
        """Return the non-revoked certificate for a digest, if any."""

    @abc.abstractmethod
    async def find_by_digest(self, content_digest: DigestValue) -> Optional[Certificate]:
        """Active certificate for a digest, else the most recent revoked one."""

    @abc.abstractmethod
    async def list_by_claimant(
        self,
        claimant_id: str,
        state: Optional[CertificateState] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Certificate]:
        """Claimant's certificates, newest first."""

    @abc.abstractmethod
    async def search(self, query: str, limit: int = 50, offset: int = 0) -> list[Certificate]:
        """Certificates whose claimant id or metadata values contain ``query``, newest first."""

    @abc.abstractmethod
    async def statistics(self, now: datetime) -> CertificateStatistics:
        """Aggregate counts relative to ``now``."""


def summarize(certificates: Iterable[Certificate], now: datetime) -> CertificateStatistics:
    """Compute statistics from an iterable of certificates."""
    counts = {state: 0 for state in CertificateState}
    by_category: dict[str, int] = {}
    today = this_week = this_month = 0
    start_of_day, week_ago, month_ago = statistics_windows(now)

    total = 0
    for certificate in certificates:
        total += 1
        counts[certificate.state] += 1
        key = certificate.category.value
        by_category[key] = by_category.get(key, 0) + 1
        if certificate.created_at >= start_of_day:
            today += 1
        if certificate.created_at >= week_ago:
            this_week += 1
        if certificate.created_at >= month_ago:
            this_month += 1

    return CertificateStatistics(
        total=total,
        pending=counts[CertificateState.PENDING],
        confirmed=counts[CertificateState.CONFIRMED],
        revoked=counts[CertificateState.REVOKED],
        by_category=by_category,
        today=today,
        this_week=this_week,
        this_month=this_month,
    )


def statistics_windows(now: datetime) -> tuple[datetime, datetime, datetime]:
    """Start of today, seven days ago and thirty days ago."""
    start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)
    return start_of_day, now - timedelta(days=7), now - timedelta(days=30)


def matches_query(certificate: Certificate, query: str) -> bool:
    """Case-insensitive substring match on claimant id and metadata values."""
    needle = query.lower()
    if needle in certificate.claimant_id.lower():
        return True
    return any(needle in value.lower() for value in _metadata_values(certificate.metadata))


def _metadata_values(value: Any) -> Iterator[str]:
    if isinstance(value, Mapping):
        for item in value.values():
            yield from _metadata_values(item)
    elif isinstance(value, (list, tuple)):
        for item in value:
            yield from _metadata_values(item)
    elif value is not None:
        yield str(value)
