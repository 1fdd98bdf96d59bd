"""Certificate persistence model."""

from datetime import datetime

from sqlalchemy import Column, DateTime, Index, Integer, JSON, String, text

from certikas.db.base import Base


class CertificateRecord(Base):
    """Row form of a certificate."""

    __tablename__ = "certificates"

    id = Column(String(64), primary_key=True)
    content_digest = Column(String(64), nullable=False, index=True)
    category = Column(String(32), nullable=False, index=True)
    ledger_reference = Column(String(255), nullable=False)
    claimant_id = Column(String(255), nullable=False, index=True)
    metadata_json = Column(JSON, nullable=False, default=dict)
    state = Column(String(16), nullable=False, default="pending", index=True)
    confirmation_depth = Column(Integer, nullable=False, default=0)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False, index=True)
    confirmed_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        # At most one non-revoked certificate per digest
        Index(
            "uq_certificates_active_digest",
            "content_digest",
            unique=True,
            sqlite_where=text("state != 'revoked'"),
            postgresql_where=text("state != 'revoked'"),
        ),
    )
