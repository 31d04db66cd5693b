"""Push notification dispatch."""

from coinwatch.notifications.base import PushTransport
from coinwatch.notifications.service import (
    NotificationService,
    build_price_alert_payload,
    format_price,
)

__all__ = ["NotificationService", "PushTransport", "build_price_alert_payload", "format_price"]
