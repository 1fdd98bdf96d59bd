"""Confirmation tracking for in-flight certificates.

Every accepted certificate gets one ``ConfirmationTracker`` running as an
asyncio task. The tracker polls the ledger on a fixed interval, waiting on
its cancellation event between polls so a revocation stops it immediately.
Writes go through the store's compare-and-set and are never lower than the
stored depth, so a late or inconsistent ledger read cannot regress a
certificate.
"""

import asyncio
import enum
import logging
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from certikas.certificates.entity import Certificate, record_confirmations
from certikas.errors import CertificateNotFound, LedgerUnavailable
from certikas.ledger.port import LedgerPort
from certikas.settings import Settings
from certikas.storage.base import CertificateStore
from certikas.utils import metrics
from certikas.webhooks.events import (
    CERTIFICATE_CONFIRMED,
    CONFIRMATION_TIMEOUT,
    EventPublisher,
    SettlementEvent,
)

logger = logging.getLogger(__name__)

MAX_WRITE_CONFLICTS = 5


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TrackerOutcome(str, enum.Enum):
    """Terminal outcomes of a tracker."""

    CONFIRMED = "confirmed"
    REVOKED = "revoked"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class TrackerPolicy:
    """Polling cadence and settlement threshold."""

    confirmation_threshold: int = 6
    poll_interval_seconds: float = 30.0
    max_attempts: int = 40

    @classmethod
    def from_settings(cls, settings: Settings) -> "TrackerPolicy":
        return cls(
            confirmation_threshold=settings.confirmation_threshold,
            poll_interval_seconds=settings.poll_interval_seconds,
            max_attempts=settings.max_poll_attempts,
        )


class ConfirmationTracker:
    """Watches one certificate's ledger anchor until it settles, is revoked or times out."""

    def __init__(
        self,
        certificate_id: str,
        ledger_reference: str,
        ledger: LedgerPort,
        store: CertificateStore,
        publisher: EventPublisher,
        policy: TrackerPolicy,
        initial_depth: int = 0,
        clock: Callable[[], datetime] = utcnow,
    ):
        """Initialize tracker in the running state."""
        self.certificate_id = certificate_id
        self.ledger_reference = ledger_reference
        self.ledger = ledger
        self.store = store
        self.publisher = publisher
        self.policy = policy
        self.clock = clock
        self.depth = initial_depth
        self.attempts = 0
        self.outcome: Optional[TrackerOutcome] = None
        self._stop = asyncio.Event()
        self._revoked = False

    @property
    def running(self) -> bool:
        return self.outcome is None

    def cancel(self, revoked: bool = False) -> None:
        """Signal the tracker to stop before its next write."""
        self._revoked = self._revoked or revoked
        self._stop.set()

    def _stopped_outcome(self) -> TrackerOutcome:
        return TrackerOutcome.REVOKED if self._revoked else TrackerOutcome.CANCELLED

    def _finish(self, outcome: TrackerOutcome) -> TrackerOutcome:
        self.outcome = outcome
        logger.info(
            f"Stopped confirmation tracking for {self.certificate_id}: {outcome.value}",
            extra={
                "certificate_id": self.certificate_id,
                "attempts": self.attempts,
                "confirmation_depth": self.depth,
            },
        )
        return outcome

    async def run(self) -> TrackerOutcome:
        """Poll until a terminal outcome is reached."""
        logger.info(
            f"Starting confirmation tracking for {self.certificate_id}",
            extra={"certificate_id": self.certificate_id, "ledger_reference": self.ledger_reference},
        )
        try:
            while self.attempts < self.policy.max_attempts:
                if self._stop.is_set():
                    return self._finish(self._stopped_outcome())

                self.attempts += 1
                outcome = await self._poll_once()
                if outcome is not None:
                    return self._finish(outcome)

                if self.attempts < self.policy.max_attempts:
                    await self._wait_interval()

            if self._stop.is_set():
                return self._finish(self._stopped_outcome())
            await self._publish(
                SettlementEvent(
                    event_type=CONFIRMATION_TIMEOUT,
                    certificate_id=self.certificate_id,
                    data={
                        "ledger_reference": self.ledger_reference,
                        "attempts": self.attempts,
                        "confirmation_depth": self.depth,
                    },
                )
            )
            metrics.tracker_timeouts.inc()
            return self._finish(TrackerOutcome.TIMED_OUT)
        except asyncio.CancelledError:
            self.outcome = TrackerOutcome.CANCELLED
            raise

    async def _wait_interval(self) -> None:
        interval = self.policy.poll_interval_seconds
        if interval <= 0:
            await asyncio.sleep(0)
            return
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=interval)
        except asyncio.TimeoutError:
            pass

    async def _poll_once(self) -> Optional[TrackerOutcome]:
        try:
            depth = await self.ledger.confirmations(self.ledger_reference)
        except LedgerUnavailable as e:
            metrics.ledger_polls.labels(outcome="error").inc()
            logger.warning(
                f"Confirmation poll {self.attempts} for {self.certificate_id} failed: {e}",
                extra={"certificate_id": self.certificate_id},
            )
            return None
        except Exception as e:
            metrics.ledger_polls.labels(outcome="error").inc()
            logger.error(
                f"Unexpected ledger error polling {self.certificate_id}: {e}",
                exc_info=True,
                extra={"certificate_id": self.certificate_id},
            )
            return None

        if depth < 0:
            metrics.ledger_polls.labels(outcome="error").inc()
            logger.warning(f"Ledger reported negative depth {depth} for {self.ledger_reference}")
            return None
        return await self._apply(depth)

    async def _apply(self, depth: int) -> Optional[TrackerOutcome]:
        """Persist an observed depth through compare-and-set."""
        for _ in range(MAX_WRITE_CONFLICTS):
            if self._stop.is_set():
                return self._stopped_outcome()
            try:
                current = await self.store.get(self.certificate_id)
            except CertificateNotFound:
                logger.error(f"Tracked certificate {self.certificate_id} disappeared from the store")
                return TrackerOutcome.CANCELLED

            if current.is_revoked:
                self._revoked = True
                return TrackerOutcome.REVOKED
            if current.is_confirmed:
                self.depth = current.confirmation_depth
                return TrackerOutcome.CONFIRMED

            updated = record_confirmations(
                current, depth, self.clock(), threshold=self.policy.confirmation_threshold
            )
            if updated is current:
                outcome = "stale" if depth < current.confirmation_depth else "unchanged"
                metrics.ledger_polls.labels(outcome=outcome).inc()
                if outcome == "stale":
                    logger.debug(
                        f"Discarding stale depth {depth} < {current.confirmation_depth} for {self.certificate_id}"
                    )
                self.depth = current.confirmation_depth
                return None

            if await self.store.compare_and_set(updated, expected_version=current.version):
                self.depth = updated.confirmation_depth
                metrics.ledger_polls.labels(outcome="advanced").inc()
                logger.info(
                    f"Certificate {self.certificate_id} confirmations updated to {depth}",
                    extra={"certificate_id": self.certificate_id, "confirmation_depth": depth},
                )
                if updated.is_confirmed:
                    metrics.certificates_confirmed.inc()
                    await self._publish(self._confirmed_event(updated))
                    return TrackerOutcome.CONFIRMED
                return None

        logger.warning(
            f"Gave up writing depth {depth} for {self.certificate_id} after {MAX_WRITE_CONFLICTS} conflicts"
        )
        return None

    def _confirmed_event(self, certificate: Certificate) -> SettlementEvent:
        return SettlementEvent(
            event_type=CERTIFICATE_CONFIRMED,
            certificate_id=certificate.id,
            data={
                "content_digest": certificate.content_digest.hex,
                "category": certificate.category.value,
                "claimant_id": certificate.claimant_id,
                "ledger_reference": certificate.ledger_reference,
                "confirmation_depth": certificate.confirmation_depth,
                "confirmed_at": certificate.confirmed_at.isoformat(),
            },
        )

    async def _publish(self, event: SettlementEvent) -> None:
        try:
            await self.publisher.publish(event)
        except Exception as e:
            logger.error(
                f"Failed to publish {event.event_type} for {event.certificate_id}: {e}",
                exc_info=True,
            )


class ConfirmationMonitor:
    """Owns the running trackers, at most one per certificate."""

    def __init__(
        self,
        ledger: LedgerPort,
        store: CertificateStore,
        publisher: EventPublisher,
        policy: Optional[TrackerPolicy] = None,
        clock: Callable[[], datetime] = utcnow,
        history_size: int = 1024,
    ):
        """Initialize monitor with no running trackers."""
        self.ledger = ledger
        self.store = store
        self.publisher = publisher
        self.policy = policy or TrackerPolicy()
        self.clock = clock
        self.history_size = history_size
        self._trackers: dict[str, ConfirmationTracker] = {}
        self._tasks: dict[str, asyncio.Task] = {}
        self._finished: OrderedDict[str, TrackerOutcome] = OrderedDict()

    @property
    def active_count(self) -> int:
        return len(self._tasks)

    def tracker(self, certificate_id: str) -> Optional[ConfirmationTracker]:
        return self._trackers.get(certificate_id)

    def start(self, certificate: Certificate) -> ConfirmationTracker:
        """Spawn a tracker task for a certificate; must be called inside a running loop."""
        running = self._trackers.get(certificate.id)
        if running is not None and certificate.id in self._tasks:
            return running

        tracker = ConfirmationTracker(
            certificate_id=certificate.id,
            ledger_reference=certificate.ledger_reference,
            ledger=self.ledger,
            store=self.store,
            publisher=self.publisher,
            policy=self.policy,
            initial_depth=certificate.confirmation_depth,
            clock=self.clock,
        )
        task = asyncio.create_task(tracker.run(), name=f"confirmations:{certificate.id}")
        self._trackers[certificate.id] = tracker
        self._tasks[certificate.id] = task
        metrics.active_trackers.inc()
        task.add_done_callback(lambda t, cid=certificate.id: self._on_done(cid, t))
        return tracker

    def _on_done(self, certificate_id: str, task: asyncio.Task) -> None:
        metrics.active_trackers.dec()
        if self._tasks.get(certificate_id) is task:
            del self._tasks[certificate_id]
            tracker = self._trackers.pop(certificate_id)
            self._finished[certificate_id] = tracker.outcome or TrackerOutcome.CANCELLED
            while len(self._finished) > self.history_size:
                self._finished.popitem(last=False)
        if not task.cancelled() and task.exception() is not None:
            logger.error(
                f"Confirmation tracker for {certificate_id} crashed: {task.exception()}",
                exc_info=task.exception(),
            )

    def cancel(self, certificate_id: str, revoked: bool = False) -> bool:
        """Signal a tracker to stop; returns False when none is running."""
        tracker = self._trackers.get(certificate_id)
        if tracker is None:
            return False
        tracker.cancel(revoked=revoked)
        return True

    async def wait(self, certificate_id: str) -> Optional[TrackerOutcome]:
        """Wait for a tracker to finish and return its outcome."""
        task = self._tasks.get(certificate_id)
        if task is not None:
            return await asyncio.shield(task)
        return self._finished.get(certificate_id)

    async def shutdown(self) -> None:
        """Cancel every running tracker and wait for them to unwind."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
