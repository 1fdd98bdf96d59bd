"""Error taxonomy for the certification pipeline."""

from typing import Optional


class CertificationError(Exception):
    """Base class for certification domain errors."""

    code = "certification_error"

    def to_dict(self) -> dict:
        """Serialize error for batch results and event payloads."""
        return {"error_code": self.code, "message": str(self)}


class InvalidDigestFormat(CertificationError, ValueError):
    """Digest string is not 64 hex characters."""

    code = "invalid_digest_format"


class InvalidCategory(CertificationError, ValueError):
    """Content category is not one of the supported categories."""

    code = "invalid_category"


class ClaimantNotFound(CertificationError):
    """Claimant could not be resolved."""

    code = "claimant_not_found"

    def __init__(self, claimant_id: str):
        self.claimant_id = claimant_id
        super().__init__(f"Claimant not found: {claimant_id}")


class ClaimantIneligible(CertificationError):
    """Claimant does not pass the eligibility gate."""

    code = "claimant_ineligible"

    def __init__(self, claimant_id: str, score: float, verified: bool):
        self.claimant_id = claimant_id
        self.score = score
        self.verified = verified
        super().__init__(
            f"Claimant {claimant_id} cannot certify (eligibility: {score}, verified: {verified})"
        )

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update({"eligibility_score": self.score, "verified": self.verified})
        return data


class DuplicateContent(CertificationError):
    """Content already has an active certificate."""

    code = "duplicate_content"

    def __init__(self, existing_id: str, content_digest: Optional[str] = None):
        self.existing_id = existing_id
        self.content_digest = content_digest
        super().__init__(f"Content already certified (Certificate ID: {existing_id})")

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["existing_certificate_id"] = self.existing_id
        return data


class LedgerUnavailable(CertificationError):
    """Ledger could not accept or answer a request."""

    code = "ledger_unavailable"


class CertificateNotFound(CertificationError):
    """No certificate with the requested id."""

    code = "not_found"

    def __init__(self, certificate_id: str):
        self.certificate_id = certificate_id
        super().__init__(f"Certificate not found: {certificate_id}")


class InvalidStateTransition(CertificationError):
    """Requested lifecycle transition is not allowed from the current state."""

    code = "invalid_state_transition"


class AlreadyRevoked(InvalidStateTransition):
    """Certificate is already revoked."""

    code = "already_revoked"

    def __init__(self, certificate_id: str):
        self.certificate_id = certificate_id
        super().__init__(f"Certificate is already revoked: {certificate_id}")
