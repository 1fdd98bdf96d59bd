"""Webhook delivery of settlement events with signatures and retries."""

import asyncio
import hashlib
import hmac
import json
import logging
import time
from typing import Dict, Optional

import httpx

from certikas.settings import Settings
from certikas.utils import metrics
from certikas.webhooks.events import EventPublisher, SettlementEvent

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Certikas-Signature"
TIMESTAMP_HEADER = "X-Certikas-Timestamp"
EVENT_HEADER = "X-Certikas-Event"
EVENT_ID_HEADER = "X-Certikas-Event-Id"


def compute_signature(payload: bytes, secret: str, timestamp: str) -> str:
    """HMAC-SHA256 over ``timestamp + "." + body``."""
    message = timestamp.encode("utf-8") + b"." + payload
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def verify_webhook(
    headers: Dict[str, str],
    raw_body: bytes,
    secret: str,
    tolerance_seconds: int = 300,
    now: Optional[float] = None,
) -> bool:
    """
    Verify a delivered webhook's signature and timestamp.

    Args:
        headers: Request headers
        raw_body: Raw request body bytes, exactly as received
        secret: Shared webhook secret
        tolerance_seconds: Maximum accepted timestamp age (replay window)
        now: Current epoch seconds (defaults to the system clock)

    Returns:
        True if the signature matches and the timestamp is fresh
    """
    signature_header = headers.get(SIGNATURE_HEADER, "")
    timestamp_str = headers.get(TIMESTAMP_HEADER, "")
    if not signature_header.startswith("sha256=") or not timestamp_str:
        return False

    try:
        timestamp = int(timestamp_str)
    except ValueError:
        return False
    current = int(now if now is not None else time.time())
    if abs(current - timestamp) > tolerance_seconds:
        return False

    expected = compute_signature(raw_body, secret, timestamp_str)
    return hmac.compare_digest(signature_header[len("sha256="):], expected)


class WebhookPublisher(EventPublisher):
    """POSTs signed settlement events to a subscriber URL."""

    def __init__(
        self,
        url: str,
        secret: str,
        timeout_seconds: float = 10,
        max_retries: int = 3,
        backoff_seconds: float = 1.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize publisher for one subscriber."""
        self.url = url
        self.secret = secret
        self.timeout_seconds = timeout_seconds
        self.max_retries = max(1, max_retries)
        self.backoff_seconds = backoff_seconds
        self.transport = transport

    @classmethod
    def from_settings(cls, settings: Settings) -> "WebhookPublisher":
        if not settings.webhook_url or not settings.webhook_secret:
            raise ValueError("WEBHOOK_URL and WEBHOOK_SECRET must both be set")
        return cls(
            url=settings.webhook_url,
            secret=settings.webhook_secret,
            timeout_seconds=settings.webhook_timeout_seconds,
            max_retries=settings.webhook_max_retries,
        )

    def _headers(self, event: SettlementEvent, body: bytes) -> dict:
        timestamp = str(int(time.time()))
        signature = compute_signature(body, self.secret, timestamp)
        return {
            "Content-Type": "application/json",
            SIGNATURE_HEADER: f"sha256={signature}",
            TIMESTAMP_HEADER: timestamp,
            EVENT_HEADER: event.event_type,
            EVENT_ID_HEADER: event.event_id,
        }

    async def publish(self, event: SettlementEvent) -> None:
        """Deliver with retries; final failure is logged, not raised."""
        body = json.dumps(event.to_payload(), sort_keys=True).encode("utf-8")
        log_extra = {"event_type": event.event_type, "certificate_id": event.certificate_id}

        async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self.transport) as client:
            for attempt in range(1, self.max_retries + 1):
                try:
                    response = await client.post(self.url, content=body, headers=self._headers(event, body))
                    if 200 <= response.status_code < 300:
                        metrics.webhook_deliveries.labels(status="success").inc()
                        return
                    logger.warning(
                        f"Webhook delivery attempt {attempt} returned {response.status_code}",
                        extra=log_extra,
                    )
                except httpx.HTTPError as e:
                    logger.warning(f"Webhook delivery attempt {attempt} failed: {e}", extra=log_extra)

                if attempt < self.max_retries:
                    await asyncio.sleep(self.backoff_seconds * (2 ** (attempt - 1)))

        metrics.webhook_deliveries.labels(status="failed").inc()
        logger.error(
            f"Webhook delivery for {event.event_type} failed after {self.max_retries} attempts",
            extra=log_extra,
        )
