"""In-memory certificate store."""

import asyncio
from datetime import datetime
from typing import Optional

from certikas.certificates.entity import Certificate, CertificateState
from certikas.errors import CertificateNotFound
from certikas.provenance.digest import DigestValue
from certikas.storage.base import CertificateStatistics, CertificateStore, matches_query, summarize


class InMemoryCertificateStore(CertificateStore):
    """Dictionary-backed store; a single asyncio lock makes writes atomic."""

    def __init__(self):
        """Initialize empty store."""
        self._certificates: dict[str, Certificate] = {}
        self._active_by_digest: dict[DigestValue, str] = {}
        self._lock = asyncio.Lock()

    async def insert_if_absent(self, certificate: Certificate) -> tuple[Certificate, bool]:
        async with self._lock:
            existing_id = self._active_by_digest.get(certificate.content_digest)
            if existing_id is not None:
                return self._certificates[existing_id], False
            if certificate.id in self._certificates:
                raise ValueError(f"Duplicate certificate id: {certificate.id}")
            self._certificates[certificate.id] = certificate
            if not certificate.is_revoked:
                self._active_by_digest[certificate.content_digest] = certificate.id
            return certificate, True

    async def get(self, certificate_id: str) -> Certificate:
        certificate = self._certificates.get(certificate_id)
        if certificate is None:
            raise CertificateNotFound(certificate_id)
        return certificate

    async def compare_and_set(self, certificate: Certificate, expected_version: int) -> bool:
        async with self._lock:
            current = self._certificates.get(certificate.id)
            if current is None:
                raise CertificateNotFound(certificate.id)
            if current.version != expected_version:
                return False
            self._certificates[certificate.id] = certificate
            if certificate.is_revoked and self._active_by_digest.get(certificate.content_digest) == certificate.id:
                del self._active_by_digest[certificate.content_digest]
            return True

    async def find_active_by_digest(self, content_digest: DigestValue) -> Optional[Certificate]:
        certificate_id = self._active_by_digest.get(content_digest)
        return self._certificates[certificate_id] if certificate_id else None

    async def find_by_digest(self, content_digest: DigestValue) -> Optional[Certificate]:
        active = await self.find_active_by_digest(content_digest)
        if active is not None:
            return active
        revoked = [c for c in self._certificates.values() if c.content_digest == content_digest]
        if not revoked:
            return None
        return max(revoked, key=lambda c: c.created_at)

    async def list_by_claimant(
        self,
        claimant_id: str,
        state: Optional[CertificateState] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Certificate]:
        matches = [
            c
            for c in self._certificates.values()
            if c.claimant_id == claimant_id and (state is None or c.state is state)
        ]
        matches.sort(key=lambda c: c.created_at, reverse=True)
        return matches[offset : offset + limit]

    async def search(self, query: str, limit: int = 50, offset: int = 0) -> list[Certificate]:
        matches = [c for c in self._certificates.values() if matches_query(c, query)]
        matches.sort(key=lambda c: c.created_at, reverse=True)
        return matches[offset : offset + limit]

    async def statistics(self, now: datetime) -> CertificateStatistics:
        return summarize(list(self._certificates.values()), now)

    def __len__(self) -> int:
        return len(self._certificates)
