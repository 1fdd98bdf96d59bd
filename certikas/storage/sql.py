"""SQLAlchemy-backed certificate store.

Digest uniqueness among active certificates is enforced by a partial unique
index, so ``insert_if_absent`` is a plain INSERT that falls back to a lookup
on IntegrityError. ``compare_and_set`` is an UPDATE guarded by ``version``.
Session work runs in a worker thread to keep the event loop free.
"""

import asyncio
import logging
from datetime import datetime, timezone
from itertools import islice
from typing import Optional

from sqlalchemy import String, cast, func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from certikas.certificates.entity import Certificate, CertificateState, ContentCategory
from certikas.errors import CertificateNotFound
from certikas.models import CertificateRecord
from certikas.provenance.digest import DigestValue
from certikas.storage.base import (
    CertificateStatistics,
    CertificateStore,
    matches_query,
    statistics_windows,
)

logger = logging.getLogger(__name__)


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def to_record(certificate: Certificate) -> CertificateRecord:
    """Map a certificate to a new ORM row."""
    return CertificateRecord(
        id=certificate.id,
        content_digest=certificate.content_digest.hex,
        category=certificate.category.value,
        ledger_reference=certificate.ledger_reference,
        claimant_id=certificate.claimant_id,
        metadata_json=dict(certificate.metadata),
        state=certificate.state.value,
        confirmation_depth=certificate.confirmation_depth,
        version=certificate.version,
        created_at=certificate.created_at,
        confirmed_at=certificate.confirmed_at,
    )


def from_record(record: CertificateRecord) -> Certificate:
    """Map an ORM row to a certificate."""
    return Certificate(
        id=record.id,
        content_digest=DigestValue(record.content_digest),
        category=ContentCategory(record.category),
        ledger_reference=record.ledger_reference,
        claimant_id=record.claimant_id,
        metadata=dict(record.metadata_json or {}),
        state=CertificateState(record.state),
        confirmation_depth=record.confirmation_depth,
        version=record.version,
        created_at=_aware(record.created_at),
        confirmed_at=_aware(record.confirmed_at),
    )


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SqlCertificateStore(CertificateStore):
    """Certificate store on a relational database."""

    def __init__(self, session_factory: sessionmaker):
        """Initialize store with a session factory."""
        self.session_factory = session_factory

    def _active_query(self, db: Session, digest_hex: str):
        return db.query(CertificateRecord).filter(
            CertificateRecord.content_digest == digest_hex,
            CertificateRecord.state != CertificateState.REVOKED.value,
        )

    def _insert_if_absent(self, certificate: Certificate) -> tuple[Certificate, bool]:
        with self.session_factory() as db:
            existing = self._active_query(db, certificate.content_digest.hex).first()
            if existing is not None:
                return from_record(existing), False
            db.add(to_record(certificate))
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                existing = self._active_query(db, certificate.content_digest.hex).first()
                if existing is None:
                    raise
                logger.info(
                    f"Concurrent insert for digest {certificate.content_digest.truncated()} lost the race"
                )
                return from_record(existing), False
            return certificate, True

    def _get(self, certificate_id: str) -> Certificate:
        with self.session_factory() as db:
            record = db.query(CertificateRecord).filter(CertificateRecord.id == certificate_id).first()
            if record is None:
                raise CertificateNotFound(certificate_id)
            return from_record(record)

    def _compare_and_set(self, certificate: Certificate, expected_version: int) -> bool:
        with self.session_factory() as db:
            updated = (
                db.query(CertificateRecord)
                .filter(
                    CertificateRecord.id == certificate.id,
                    CertificateRecord.version == expected_version,
                )
                .update(
                    {
                        CertificateRecord.metadata_json: dict(certificate.metadata),
                        CertificateRecord.state: certificate.state.value,
                        CertificateRecord.confirmation_depth: certificate.confirmation_depth,
                        CertificateRecord.confirmed_at: certificate.confirmed_at,
                        CertificateRecord.version: certificate.version,
                    },
                    synchronize_session=False,
                )
            )
            if updated == 0:
                exists = db.query(CertificateRecord.id).filter(CertificateRecord.id == certificate.id).first()
                db.rollback()
                if exists is None:
                    raise CertificateNotFound(certificate.id)
                return False
            db.commit()
            return True

    def _find_active_by_digest(self, digest_hex: str) -> Optional[Certificate]:
        with self.session_factory() as db:
            record = self._active_query(db, digest_hex).first()
            return from_record(record) if record else None

    def _find_by_digest(self, digest_hex: str) -> Optional[Certificate]:
        with self.session_factory() as db:
            record = self._active_query(db, digest_hex).first()
            if record is None:
                record = (
                    db.query(CertificateRecord)
                    .filter(CertificateRecord.content_digest == digest_hex)
                    .order_by(CertificateRecord.created_at.desc())
                    .first()
                )
            return from_record(record) if record else None

    def _list_by_claimant(
        self, claimant_id: str, state: Optional[CertificateState], limit: int, offset: int
    ) -> list[Certificate]:
        with self.session_factory() as db:
            query = db.query(CertificateRecord).filter(CertificateRecord.claimant_id == claimant_id)
            if state is not None:
                query = query.filter(CertificateRecord.state == state.value)
            records = query.order_by(CertificateRecord.created_at.desc()).offset(offset).limit(limit).all()
            return [from_record(r) for r in records]

    def _search(self, query: str, limit: int, offset: int) -> list[Certificate]:
        with self.session_factory() as db:
            candidates = db.query(CertificateRecord)
            # JSON text escapes quotes, backslashes and non-ASCII, so only plain queries can prefilter
            if query.isascii() and '"' not in query and "\\" not in query:
                pattern = f"%{_escape_like(query)}%"
                candidates = candidates.filter(
                    or_(
                        CertificateRecord.claimant_id.ilike(pattern, escape="\\"),
                        cast(CertificateRecord.metadata_json, String).ilike(pattern, escape="\\"),
                    )
                )
            records = candidates.order_by(CertificateRecord.created_at.desc()).yield_per(500)
            matches = (c for c in map(from_record, records) if matches_query(c, query))
            return list(islice(matches, offset, offset + limit))

    def _statistics(self, now: datetime) -> CertificateStatistics:
        start_of_day, week_ago, month_ago = statistics_windows(now)
        with self.session_factory() as db:
            by_state = dict(
                db.query(CertificateRecord.state, func.count(CertificateRecord.id))
                .group_by(CertificateRecord.state)
                .all()
            )
            by_category = dict(
                db.query(CertificateRecord.category, func.count(CertificateRecord.id))
                .group_by(CertificateRecord.category)
                .all()
            )

            def created_since(moment: datetime) -> int:
                return (
                    db.query(func.count(CertificateRecord.id))
                    .filter(CertificateRecord.created_at >= moment)
                    .scalar()
                )

            return CertificateStatistics(
                total=sum(by_state.values()),
                pending=by_state.get(CertificateState.PENDING.value, 0),
                confirmed=by_state.get(CertificateState.CONFIRMED.value, 0),
                revoked=by_state.get(CertificateState.REVOKED.value, 0),
                by_category=by_category,
                today=created_since(start_of_day),
                this_week=created_since(week_ago),
                this_month=created_since(month_ago),
            )

    async def insert_if_absent(self, certificate: Certificate) -> tuple[Certificate, bool]:
        return await asyncio.to_thread(self._insert_if_absent, certificate)

    async def get(self, certificate_id: str) -> Certificate:
        return await asyncio.to_thread(self._get, certificate_id)

    async def compare_and_set(self, certificate: Certificate, expected_version: int) -> bool:
        return await asyncio.to_thread(self._compare_and_set, certificate, expected_version)

    async def find_active_by_digest(self, content_digest: DigestValue) -> Optional[Certificate]:
        return await asyncio.to_thread(self._find_active_by_digest, content_digest.hex)

    async def find_by_digest(self, content_digest: DigestValue) -> Optional[Certificate]:
        return await asyncio.to_thread(self._find_by_digest, content_digest.hex)

    async def list_by_claimant(
        self,
        claimant_id: str,
        state: Optional[CertificateState] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Certificate]:
        return await asyncio.to_thread(self._list_by_claimant, claimant_id, state, limit, offset)

    async def search(self, query: str, limit: int = 50, offset: int = 0) -> list[Certificate]:
        return await asyncio.to_thread(self._search, query, limit, offset)

    async def statistics(self, now: datetime) -> CertificateStatistics:
        return await asyncio.to_thread(self._statistics, now)
