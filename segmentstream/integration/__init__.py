"""External integrations for segment-stream."""

from segmentstream.integration.notifications import (
    Notification,
    NotificationEvent,
    WebhookNotifier,
)

__all__ = [
    "Notification",
    "NotificationEvent",
    "WebhookNotifier",
]
