"""Certification engine: issuance, verification and revocation of certificates."""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, Optional, Sequence, Union

from certikas.certificates.entity import (
    Certificate,
    CertificateState,
    ContentCategory,
    revoke_certificate,
)
from certikas.certificates.schema import (
    BulkFailure,
    BulkIssueItem,
    BulkIssueResult,
    BulkSuccess,
    CostQuote,
    DigestLookup,
    VerificationResult,
)
from certikas.certificates.tracker import ConfirmationMonitor, TrackerPolicy
from certikas.errors import (
    CertificationError,
    ClaimantIneligible,
    DuplicateContent,
    InvalidStateTransition,
    LedgerUnavailable,
)
from certikas.identity.port import Claimant, ClaimantPort
from certikas.ledger.port import LedgerPort
from certikas.provenance.digest import DigestValue, digest
from certikas.rewards.memory import DisabledRewards, InMemoryRewardLedger
from certikas.rewards.port import RewardPort, calculate_reward
from certikas.settings import Settings, get_settings
from certikas.storage.base import CertificateStatistics, CertificateStore
from certikas.utils import metrics
from certikas.webhooks.events import EventPublisher, LoggingPublisher
from certikas.webhooks.service import WebhookPublisher

logger = logging.getLogger(__name__)

MAX_REVOKE_CONFLICTS = 5

Content = Union[bytes, bytearray, memoryview, str]


class CertificationEngine:
    """Orchestrates certificate issuance and lifecycle."""

    def __init__(
        self,
        ledger: LedgerPort,
        claimants: ClaimantPort,
        store: CertificateStore,
        rewards: Optional[RewardPort] = None,
        publisher: Optional[EventPublisher] = None,
        settings: Optional[Settings] = None,
        monitor: Optional[ConfirmationMonitor] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """Initialize engine with its ports."""
        self.ledger = ledger
        self.claimants = claimants
        self.store = store
        self.settings = settings or get_settings()
        self.rewards = rewards or self._default_rewards()
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.policy = TrackerPolicy.from_settings(self.settings)
        self.monitor = monitor or ConfirmationMonitor(
            ledger=ledger,
            store=store,
            publisher=publisher or self._default_publisher(),
            policy=self.policy,
            clock=self.clock,
        )

    def _default_rewards(self) -> RewardPort:
        if self.settings.rewards_enabled:
            return InMemoryRewardLedger()
        return DisabledRewards()

    def _default_publisher(self) -> EventPublisher:
        """Deliver to the configured webhook when one is set, else log events."""
        if self.settings.webhook_url and self.settings.webhook_secret:
            logger.info(f"Settlement events will be delivered to {self.settings.webhook_url}")
            return WebhookPublisher.from_settings(self.settings)
        if self.settings.webhook_url:
            logger.warning("WEBHOOK_URL is set without WEBHOOK_SECRET; settlement events are only logged")
        return LoggingPublisher()

    async def issue(
        self,
        content: Content,
        category: Union[ContentCategory, str],
        claimant_id: str,
        metadata: Optional[dict] = None,
    ) -> Certificate:
        """Certify content and anchor it on the ledger.

        Returns once the pending certificate is persisted; settlement is
        tracked in the background.
        """
        metadata = dict(metadata or {})
        log_extra = {"claimant_id": claimant_id, "category": str(category)}
        logger.info("Starting content certification", extra=log_extra)

        try:
            category = ContentCategory.parse(category)
            claimant = await self.claimants.resolve(claimant_id)
            if not claimant.is_eligible(self.settings.eligibility_threshold):
                raise ClaimantIneligible(claimant_id, claimant.eligibility_score, claimant.verified)

            content_digest = digest(content)
            log_extra["content_digest"] = content_digest.truncated()

            existing = await self.store.find_active_by_digest(content_digest)
            if existing is not None:
                raise DuplicateContent(existing.id, content_digest.hex)

            now = self.clock()
            payload = {
                "digest": content_digest.hex,
                "category": category.value,
                "claimant_id": claimant_id,
                "timestamp": now.isoformat(),
                "metadata": metadata,
            }
            with metrics.ledger_submit_duration.time():
                submission = await self.ledger.submit(content_digest, payload)
            logger.info(
                f"Ledger transaction created: {submission.reference}",
                extra=log_extra,
            )

            certificate = Certificate.issue(
                content_digest=content_digest,
                category=category,
                ledger_reference=submission.reference,
                claimant_id=claimant_id,
                created_at=now,
                metadata=metadata,
            )
            stored, inserted = await self.store.insert_if_absent(certificate)
            if not inserted:
                logger.warning(
                    f"Ledger transaction {submission.reference} orphaned: "
                    f"content certified concurrently as {stored.id}",
                    extra=log_extra,
                )
                raise DuplicateContent(stored.id, content_digest.hex)
        except CertificationError as e:
            metrics.issuance_failures.labels(error_code=e.code).inc()
            logger.warning(f"Certification failed: {e}", extra=log_extra)
            raise

        log_extra["certificate_id"] = certificate.id
        logger.info("Certificate saved", extra=log_extra)
        metrics.certificates_issued.labels(category=category.value).inc()

        await self._record_issuance(claimant_id)
        await self._reward(claimant, certificate)
        self.monitor.start(certificate)
        return certificate

    async def _record_issuance(self, claimant_id: str) -> None:
        try:
            await self.claimants.record_issuance(claimant_id)
        except Exception as e:
            logger.warning(f"Failed to record issuance for claimant {claimant_id} (non-critical): {e}")

    async def _reward(self, claimant: Claimant, certificate: Certificate) -> None:
        amount = calculate_reward(
            claimant.eligibility_score, certificate.category, self.settings.reward_base_amounts
        )
        try:
            receipt = await self.rewards.reward(claimant.claimant_id, amount, certificate.id)
        except Exception as e:
            metrics.rewards.labels(status="failed").inc()
            logger.warning(
                f"Reward failed (non-critical): {e}",
                extra={"certificate_id": certificate.id, "amount": amount},
            )
            return
        if receipt is None:
            metrics.rewards.labels(status="disabled").inc()
            return
        metrics.rewards.labels(status="paid").inc()
        logger.info(
            f"Reward issued: {amount}",
            extra={"certificate_id": certificate.id, "reward_reference": receipt.reference},
        )

    async def bulk_issue(
        self,
        items: Sequence[BulkIssueItem],
        claimant_id: str,
        concurrency: Optional[int] = None,
    ) -> BulkIssueResult:
        """Issue each item independently; one failure never aborts the batch."""
        limit = max(1, concurrency or self.settings.bulk_issue_concurrency)
        semaphore = asyncio.Semaphore(limit)
        logger.info(f"Starting bulk certification of {len(items)} items", extra={"claimant_id": claimant_id})

        async def issue_one(index: int, item: BulkIssueItem):
            async with semaphore:
                try:
                    certificate = await self.issue(item.content, item.category, claimant_id, item.metadata)
                except CertificationError as e:
                    details = e.to_dict()
                    return BulkFailure(
                        index=index,
                        error_code=details.pop("error_code"),
                        message=details.pop("message"),
                        details=details,
                        metadata=item.metadata,
                    )
                except Exception as e:
                    logger.error(f"Unexpected error certifying bulk item {index}: {e}", exc_info=True)
                    return BulkFailure(index=index, error_code="internal_error", message=str(e), metadata=item.metadata)
                return BulkSuccess(
                    index=index,
                    certificate_id=certificate.id,
                    content_digest=certificate.content_digest.hex,
                    metadata=item.metadata,
                )

        outcomes = await asyncio.gather(*(issue_one(i, item) for i, item in enumerate(items)))
        result = BulkIssueResult(
            successes=[o for o in outcomes if isinstance(o, BulkSuccess)],
            failures=[o for o in outcomes if isinstance(o, BulkFailure)],
        )
        logger.info(
            f"Bulk certification completed: {len(result.successes)} succeeded, {len(result.failures)} failed",
            extra={"claimant_id": claimant_id},
        )
        return result

    async def verify(self, content: Content) -> VerificationResult:
        """Look up content and report its freshly observed settlement status.

        The confirmed flag comes from a new ledger query, not from stored
        state. The observed depth is reported but not written back.
        """
        content_digest = digest(content)
        certificate = await self.store.find_by_digest(content_digest)
        if certificate is None:
            return VerificationResult(certified=False, message="Content not found in CertiKAS records")

        result = VerificationResult(
            certified=True,
            certificate=certificate.to_dict(now=self.clock(), base_url=self.settings.verification_base_url),
            explorer_url=self.ledger.explorer_url(certificate.ledger_reference),
        )
        try:
            depth = await self.ledger.confirmations(certificate.ledger_reference)
        except LedgerUnavailable as e:
            logger.warning(f"Ledger unavailable while verifying {certificate.id}: {e}")
            result.ledger_error = str(e)
            return result

        result.confirmation_depth = depth
        result.confirmed = depth >= self.policy.confirmation_threshold
        return result

    async def revoke(self, certificate_id: str, reason: str) -> Certificate:
        """Revoke a certificate and stop its tracker."""
        for _ in range(MAX_REVOKE_CONFLICTS):
            current = await self.store.get(certificate_id)
            revoked = revoke_certificate(current, reason, self.clock())
            if await self.store.compare_and_set(revoked, expected_version=current.version):
                break
        else:
            raise InvalidStateTransition(
                f"Certificate {certificate_id} changed concurrently; revocation not applied"
            )

        self.monitor.cancel(certificate_id, revoked=True)
        metrics.certificates_revoked.inc()
        logger.warning("Certificate revoked", extra={"certificate_id": certificate_id, "reason": reason})
        return revoked

    async def get_certificate(self, certificate_id: str) -> Certificate:
        """Load a certificate by id."""
        return await self.store.get(certificate_id)

    async def check_digest(self, content_digest: Union[DigestValue, str]) -> DigestLookup:
        """Check whether a digest has been certified."""
        if not isinstance(content_digest, DigestValue):
            content_digest = DigestValue.parse(content_digest)
        certificate = await self.store.find_by_digest(content_digest)
        if certificate is None:
            return DigestLookup(exists=False, certified=False)
        return DigestLookup(
            exists=True,
            certified=not certificate.is_revoked,
            certificate_id=certificate.id,
            certified_at=certificate.created_at,
            is_confirmed=certificate.is_confirmed,
        )

    async def certificates_by_claimant(
        self,
        claimant_id: str,
        limit: int = 50,
        offset: int = 0,
        state: Optional[Union[CertificateState, str]] = None,
    ) -> list[Certificate]:
        if state is not None:
            state = CertificateState(state)
        return await self.store.list_by_claimant(claimant_id, state=state, limit=limit, offset=offset)

    async def search_certificates(self, query: str, limit: int = 50, offset: int = 0) -> list[Certificate]:
        """Find certificates by claimant id or metadata value (case-insensitive substring)."""
        query = (query or "").strip()
        if not query:
            raise ValueError("Search query must not be empty")
        return await self.store.search(query, limit=limit, offset=offset)

    async def statistics(self) -> CertificateStatistics:
        return await self.store.statistics(self.clock())

    async def quote_cost(self, category: Union[ContentCategory, str], content_size: int) -> CostQuote:
        """Estimate ledger fee plus the large-content premium."""
        ContentCategory.parse(category)
        fee = await self.ledger.estimate_fee()
        premium = self.settings.large_content_premium if content_size > self.settings.large_content_bytes else 0.0
        return CostQuote(
            ledger_fee=fee.fee,
            size_premium=premium,
            total_cost=fee.fee + premium,
            unit=fee.unit,
        )

    async def shutdown(self) -> None:
        """Stop all confirmation trackers."""
        await self.monitor.shutdown()
