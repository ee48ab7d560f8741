"""
Webhook notifications.

Posts a JSON event to a configured URL when the stream goes live. Delivery
is best-effort: failures are logged and never interrupt playout.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional
import logging
import httpx

from segmentstream.config import NotifyConfig

logger = logging.getLogger(__name__)


class NotificationEvent(str, Enum):
    """Events sent to the webhook."""
    STREAM_LIVE = "stream_live"


@dataclass
class Notification:
    """An event to be posted."""

    event: NotificationEvent
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": self.event.value,
            "data": self.data,
        }


class WebhookNotifier:
    """
    Sends notifications to a webhook with a bearer token.

    Usage:
        async with WebhookNotifier(config.notify) as notifier:
            await notifier.notify_stream_live(queue="...", url="...")
    """

    def __init__(
        self,
        config: NotifyConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self._transport = transport
        self._http_client: Optional[httpx.AsyncClient] = None

    @property
    def is_enabled(self) -> bool:
        return bool(self.config.url)

    async def __aenter__(self):
        self._http_client = httpx.AsyncClient(
            timeout=self.config.timeout,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    async def send(self, notification: Notification) -> bool:
        """
        Post one notification.

        Returns:
            True if the webhook answered with a 2xx status.
        """
        if not self.is_enabled:
            return False
        if self._http_client is None:
            raise RuntimeError("WebhookNotifier must be used as an async context manager")

        try:
            response = await self._http_client.post(
                self.config.url,
                json=notification.to_dict(),
                headers={"Authorization": f"Bearer {self.config.secret}"},
            )
        except httpx.HTTPError as e:
            logger.warning(f"Webhook failed (non-fatal): {e}")
            return False

        if not response.is_success:
            logger.warning(f"Webhook returned HTTP {response.status_code} (non-fatal)")
            return False

        try:
            delivered = response.json().get("delivered", "ok")
        except (ValueError, AttributeError):
            delivered = "ok"
        logger.info(f"Notified: {delivered}")
        return True

    async def notify_stream_live(self, queue: str, url: Optional[str]) -> bool:
        """Announce that the engine has started streaming."""
        notification = Notification(
            event=NotificationEvent.STREAM_LIVE,
            data={
                "show": self.config.show,
                "queue": queue,
                "url": "(live)" if url else None,
            },
        )
        return await self.send(notification)
