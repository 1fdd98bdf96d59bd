"""Settlement events emitted to external subscribers."""

import abc
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

CERTIFICATE_CONFIRMED = "certificate.confirmed"
CONFIRMATION_TIMEOUT = "certificate.confirmation_timeout"


def _now() -> datetime:
    return datetime.now(timezone.utc)


class SettlementEvent(BaseModel):
    """Notification about a certificate's settlement progress."""

    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    event_type: str
    certificate_id: str
    occurred_at: datetime = Field(default_factory=_now)
    data: Dict[str, Any] = Field(default_factory=dict)

    def to_payload(self) -> dict:
        """JSON-ready payload for delivery."""
        return self.model_dump(mode="json")


class EventPublisher(abc.ABC):
    """Delivers settlement events; implementations must not raise into the tracker."""

    @abc.abstractmethod
    async def publish(self, event: SettlementEvent) -> None:
        """Deliver an event."""


class LoggingPublisher(EventPublisher):
    """Default publisher: records events in the application log."""

    async def publish(self, event: SettlementEvent) -> None:
        logger.info(
            f"Settlement event {event.event_type} for certificate {event.certificate_id}",
            extra={"event_type": event.event_type, "certificate_id": event.certificate_id},
        )


class InMemoryPublisher(EventPublisher):
    """Collects events in order; for embedding applications and tests."""

    def __init__(self):
        """Initialize empty event list."""
        self.events: list[SettlementEvent] = []

    async def publish(self, event: SettlementEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: str) -> list[SettlementEvent]:
        return [e for e in self.events if e.event_type == event_type]
