"""Outbound webhook delivery of notification events.

Payloads are signed with HMAC-SHA256 (``X-FunFarm-Signature`` header) so
the realtime layer can verify them.  As an event bus handler the notifier
only queues the event; a single worker thread posts events in order, so a
slow endpoint never delays the decision that produced the event.  Delivery
failures are logged and swallowed.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Optional

import httpx

from funfarm.notifications.events import NotificationEvent

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-FunFarm-Signature"
EVENT_HEADER = "X-FunFarm-Event"


def sign_payload(body: bytes, secret: str) -> str:
    return "sha256=" + hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def verify_signature(body: bytes, secret: str, signature: str) -> bool:
    return hmac.compare_digest(sign_payload(body, secret), signature)


class WebhookNotifier:
    """Event bus handler that POSTs each event as JSON in the background."""

    def __init__(
        self,
        url: str,
        secret: str = "",
        timeout: float = 5.0,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self.url = url
        self._secret = secret
        self._client = client or httpx.Client(timeout=timeout)
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="funfarm-webhook")
        self.last_status: int = 0
        self.last_duration_ms: int = 0

    def __call__(self, event: NotificationEvent) -> Future:
        return self._executor.submit(self._deliver_logged, event)

    def _deliver_logged(self, event: NotificationEvent) -> bool:
        try:
            return self.deliver(event)
        except Exception:
            logger.exception("Webhook delivery of %s crashed", event.type)
            return False

    def deliver(self, event: NotificationEvent) -> bool:
        """Send *event*; return True on a 2xx response."""
        body = json.dumps(event.to_dict(), default=str).encode("utf-8")
        headers = {"Content-Type": "application/json", EVENT_HEADER: event.type}
        if self._secret:
            headers[SIGNATURE_HEADER] = sign_payload(body, self._secret)

        start = time.monotonic()
        try:
            response = self._client.post(self.url, content=body, headers=headers)
        except httpx.HTTPError as exc:
            logger.warning("Webhook delivery of %s to %s failed: %s", event.type, self.url, exc)
            self.last_status = 0
            return False
        finally:
            self.last_duration_ms = int((time.monotonic() - start) * 1000)

        self.last_status = response.status_code
        if response.is_success:
            return True
        logger.warning(
            "Webhook %s answered %s for event %s", self.url, response.status_code, event.type
        )
        return False

    def close(self) -> None:
        """Deliver everything already queued, then release the HTTP client."""
        self._executor.shutdown(wait=True)
        self._client.close()
