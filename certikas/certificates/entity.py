"""Certificate entity and lifecycle transitions.

A certificate is an immutable value. Lifecycle changes are expressed as
transition functions that return a new certificate with ``version`` bumped;
callers persist the result through the store's compare-and-set so that a
stale writer can never overwrite a newer state.

State machine::

    pending --(depth >= threshold)--> confirmed
    pending --(revoke)--------------> revoked
    confirmed --(revoke)------------> revoked

``revoked`` is terminal.
"""

import enum
import json
import math
import secrets
import time
from copy import deepcopy
from dataclasses import dataclass, field, replace
from datetime import datetime
from types import MappingProxyType
from typing import Any, Mapping, Optional

from certikas.errors import AlreadyRevoked, InvalidCategory, InvalidStateTransition
from certikas.provenance.digest import DigestValue

DEFAULT_CONFIRMATION_THRESHOLD = 6


class ContentCategory(str, enum.Enum):
    """Supported content categories."""

    ARTICLE = "article"
    VIDEO = "video"
    IMAGE = "image"
    DOCUMENT = "document"
    AUDIO = "audio"
    SHORT_POST = "short_post"
    GENERIC_POST = "generic_post"

    @classmethod
    def parse(cls, value) -> "ContentCategory":
        """Coerce a category name, raising InvalidCategory on unknown values."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower().replace("-", "_"))
        except ValueError:
            raise InvalidCategory(f"Invalid content category: {value!r}") from None


class CertificateState(str, enum.Enum):
    """Certificate lifecycle states."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    REVOKED = "revoked"


def generate_certificate_id() -> str:
    """Generate a time-ordered random certificate id (``cert_<ms36>_<hex16>``)."""
    millis = int(time.time() * 1000)
    return f"cert_{_base36(millis)}_{secrets.token_hex(8)}"


def _base36(number: int) -> str:
    alphabet = "0123456789abcdefghijklmnopqrstuvwxyz"
    if number == 0:
        return "0"
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(alphabet[remainder])
    return "".join(reversed(digits))


@dataclass(frozen=True)
class Certificate:
    """Settlement record binding a content digest to a claimant and a ledger anchor."""

    id: str
    content_digest: DigestValue
    category: ContentCategory
    ledger_reference: str
    claimant_id: str
    created_at: datetime
    metadata: Mapping[str, Any] = field(default_factory=dict)
    state: CertificateState = CertificateState.PENDING
    confirmation_depth: int = 0
    confirmed_at: Optional[datetime] = None
    version: int = 1

    def __post_init__(self):
        if self.confirmation_depth < 0:
            raise ValueError("confirmation_depth must be non-negative")
        # Read-only snapshot; amendments go through a transition that copies it
        object.__setattr__(self, "metadata", MappingProxyType(deepcopy(dict(self.metadata))))

    @classmethod
    def issue(
        cls,
        content_digest: DigestValue,
        category: ContentCategory,
        ledger_reference: str,
        claimant_id: str,
        created_at: datetime,
        metadata: Optional[dict] = None,
        certificate_id: Optional[str] = None,
    ) -> "Certificate":
        """Create a new pending certificate."""
        return cls(
            id=certificate_id or generate_certificate_id(),
            content_digest=content_digest,
            category=category,
            ledger_reference=ledger_reference,
            claimant_id=claimant_id,
            created_at=created_at,
            metadata=metadata or {},
        )

    @property
    def is_pending(self) -> bool:
        return self.state is CertificateState.PENDING

    @property
    def is_confirmed(self) -> bool:
        return self.state is CertificateState.CONFIRMED

    @property
    def is_revoked(self) -> bool:
        return self.state is CertificateState.REVOKED

    def verification_url(self, base_url: str = "https://certikas.org") -> str:
        """Public verification URL for this certificate."""
        return f"{base_url.rstrip('/')}/verify/{self.id}"

    def qr_payload(self, base_url: str = "https://certikas.org") -> str:
        """JSON payload encoded in mobile verification QR codes."""
        return json.dumps(
            {
                "certificateId": self.id,
                "contentHash": self.content_digest.hex,
                "verificationUrl": self.verification_url(base_url),
            }
        )

    def age_in_days(self, now: datetime) -> int:
        """Age in whole days, rounded up."""
        seconds = abs((now - self.created_at).total_seconds())
        return math.ceil(seconds / 86400)

    def to_dict(self, now: Optional[datetime] = None, base_url: str = "https://certikas.org") -> dict:
        """Snake-case JSON view."""
        data = {
            "id": self.id,
            "content_hash": self.content_digest.hex,
            "content_type": self.category.value,
            "ledger_reference": self.ledger_reference,
            "claimant_id": self.claimant_id,
            "metadata": deepcopy(dict(self.metadata)),
            "status": self.state.value,
            "created_at": self.created_at.isoformat(),
            "confirmed_at": self.confirmed_at.isoformat() if self.confirmed_at else None,
            "confirmation_depth": self.confirmation_depth,
            "verification_url": self.verification_url(base_url),
            "is_confirmed": self.is_confirmed,
        }
        if now is not None:
            data["age_in_days"] = self.age_in_days(now)
        return data


def record_confirmations(
    certificate: Certificate,
    depth: int,
    now: datetime,
    threshold: int = DEFAULT_CONFIRMATION_THRESHOLD,
) -> Certificate:
    """Apply an observed confirmation depth.

    Returns the same object when nothing changes: a depth lower than or equal
    to the stored one is a stale read and is discarded, and confirmed
    certificates are settled. Crossing the threshold while pending confirms
    the certificate and stamps ``confirmed_at``.
    """
    if depth < 0:
        raise ValueError(f"Confirmation depth must be non-negative, got {depth}")
    if certificate.is_revoked:
        raise InvalidStateTransition(
            f"Certificate {certificate.id} is revoked; confirmations are no longer tracked"
        )
    if certificate.is_confirmed or depth <= certificate.confirmation_depth:
        return certificate

    if depth >= threshold:
        return replace(
            certificate,
            confirmation_depth=depth,
            state=CertificateState.CONFIRMED,
            confirmed_at=now,
            version=certificate.version + 1,
        )
    return replace(certificate, confirmation_depth=depth, version=certificate.version + 1)


def revoke_certificate(certificate: Certificate, reason: str, now: datetime) -> Certificate:
    """Revoke a pending or confirmed certificate, annotating metadata."""
    if certificate.is_revoked:
        raise AlreadyRevoked(certificate.id)
    metadata = deepcopy(dict(certificate.metadata))
    metadata["revocation_reason"] = reason
    metadata["revoked_at"] = now.isoformat()
    return replace(
        certificate,
        state=CertificateState.REVOKED,
        metadata=metadata,
        version=certificate.version + 1,
    )
