"""Settlement notifications."""

from certikas.webhooks.events import (
    CERTIFICATE_CONFIRMED,
    CONFIRMATION_TIMEOUT,
    EventPublisher,
    InMemoryPublisher,
    LoggingPublisher,
    SettlementEvent,
)

__all__ = [
    "CERTIFICATE_CONFIRMED",
    "CONFIRMATION_TIMEOUT",
    "EventPublisher",
    "InMemoryPublisher",
    "LoggingPublisher",
    "SettlementEvent",
]
