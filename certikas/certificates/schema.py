"""Result and request models for certification operations."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class VerificationResult(BaseModel):
    """Outcome of verifying content against stored certificates."""

    certified: bool
    confirmed: bool = False
    confirmation_depth: Optional[int] = None  # freshly observed on the ledger
    certificate: Optional[Dict[str, Any]] = None
    explorer_url: Optional[str] = None
    ledger_error: Optional[str] = None
    message: Optional[str] = None


class DigestLookup(BaseModel):
    """Existence check for a content digest."""

    exists: bool
    certified: bool
    certificate_id: Optional[str] = None
    certified_at: Optional[datetime] = None
    is_confirmed: bool = False


class BulkIssueItem(BaseModel):
    """One piece of content in a bulk issuance."""

    content: bytes
    category: str
    metadata: Dict[str, Any] = Field(default_factory=dict)


class BulkSuccess(BaseModel):
    index: int
    certificate_id: str
    content_digest: str
    metadata: Dict[str, Any] = Field(default_factory=dict)


class BulkFailure(BaseModel):
    index: int
    error_code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class BulkIssueResult(BaseModel):
    """Independent per-item results of a bulk issuance."""

    successes: List[BulkSuccess] = Field(default_factory=list)
    failures: List[BulkFailure] = Field(default_factory=list)


class CostQuote(BaseModel):
    """Estimated cost of certifying one piece of content."""

    ledger_fee: float
    size_premium: float
    total_cost: float
    unit: str
