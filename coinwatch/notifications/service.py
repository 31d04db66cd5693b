"""Push notification dispatch."""

import asyncio
import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional, Union

from coinwatch.config import FirebaseSettings
from coinwatch.errors import (
    FIREBASE_CONFIG_MISSING,
    FIREBASE_NOT_INITIALIZED,
    INVALID_DEVICE_TOKEN,
    INVALID_PAYLOAD,
    ConfigurationError,
    PushTransportError,
)
from coinwatch.models import (
    BulkNotificationResult,
    Direction,
    NotificationPayload,
    PriceAlertNotification,
    PushNotificationRequest,
    PushResult,
)
from coinwatch.notifications.base import PushTransport

logger = logging.getLogger(__name__)


def format_price(value: Union[float, Decimal]) -> str:
    """Format a price with thousands separators and 2 to 8 decimals.

    >>> format_price(50000)
    '50,000.00'
    >>> format_price(0.000123)
    '0.000123'
    """
    text = f"{Decimal(str(value)):,.8f}"
    whole, _, decimals = text.partition(".")
    decimals = decimals.rstrip("0").ljust(2, "0")
    return f"{whole}.{decimals}"


def build_price_alert_payload(data: PriceAlertNotification) -> NotificationPayload:
    """Build the title, body and data payload for a fired alert."""
    if data.direction == Direction.CROSS_UP:
        emoji, direction_text = "📈", "up to"
    else:
        emoji, direction_text = "📉", "down to"

    return NotificationPayload(
        title=f"{emoji} Price Alert",
        body=f"{data.symbol} {direction_text} ${format_price(data.current_price)}",
        data={
            "type": "price_alert",
            "symbol": data.symbol,
            "currentPrice": str(data.current_price),
            "targetPrice": str(data.target_price),
            "direction": data.direction.value,
            "alertId": data.alert_id,
        },
    )


class NotificationService:
    """Sends push notifications through a PushTransport.

    Send methods never raise: every failure comes back as an unsuccessful
    PushResult and is logged.
    """

    def __init__(self, settings: FirebaseSettings, transport: Optional[PushTransport] = None):
        """Initialize the service.

        Args:
            settings: Firebase service-account settings.
            transport: Push transport; a FirebaseTransport is built on
                initialize() when omitted.
        """
        self.settings = settings
        self._transport = transport
        self._initialized = False

    def initialize(self) -> None:
        """Set up the push transport.

        Raises:
            ConfigurationError: If Firebase settings are incomplete or the
                transport cannot be initialized.
        """
        if self._initialized:
            return
        if not self.settings.is_complete():
            raise ConfigurationError(FIREBASE_CONFIG_MISSING)

        if self._transport is None:
            from coinwatch.notifications.firebase import FirebaseTransport

            self._transport = FirebaseTransport(self.settings)
        try:
            self._transport.initialize()
        except ValueError as e:
            raise ConfigurationError(f"Failed to initialize Firebase: {e}") from e
        self._initialized = True

    def is_initialized(self) -> bool:
        return self._initialized

    def get_project_info(self) -> dict:
        return {"project_id": self.settings.project_id, "initialized": self._initialized}

    async def send_push_notification(self, request: PushNotificationRequest) -> PushResult:
        if not self._initialized:
            logger.error("Push to %s skipped: %s", _mask(request.device_token), FIREBASE_NOT_INITIALIZED)
            return PushResult(success=False, error=FIREBASE_NOT_INITIALIZED)
        if not request.device_token.strip():
            return PushResult(success=False, error=INVALID_DEVICE_TOKEN)
        if not request.payload.title.strip() or not request.payload.body.strip():
            return PushResult(success=False, error=INVALID_PAYLOAD)

        try:
            message_id = await self._transport.send(request.device_token, request.payload)
        except PushTransportError as e:
            logger.error("Push to %s failed: %s", _mask(request.device_token), e)
            return PushResult(success=False, error=str(e))
        except Exception as e:
            logger.exception(
                "Push to %s failed unexpectedly (alert %s)",
                _mask(request.device_token),
                request.payload.data.get("alertId", "-"),
            )
            return PushResult(success=False, error=str(e) or type(e).__name__)

        logger.info("Push sent to %s (message %s)", _mask(request.device_token), message_id)
        return PushResult(success=True, message_id=message_id)

    async def send_price_alert_notification(
        self, device_token: str, data: PriceAlertNotification
    ) -> PushResult:
        payload = build_price_alert_payload(data)
        return await self.send_push_notification(
            PushNotificationRequest(device_token=device_token, payload=payload)
        )

    async def send_test_notification(self, device_token: str) -> PushResult:
        """Send a fixed test message to verify push delivery end to end."""
        payload = NotificationPayload(
            title="🧪 Test Notification",
            body="Push notifications are working.",
            data={"type": "test", "timestamp": datetime.now().isoformat()},
        )
        return await self.send_push_notification(
            PushNotificationRequest(device_token=device_token, payload=payload)
        )

    async def send_bulk_notifications(
        self, requests: list[PushNotificationRequest]
    ) -> BulkNotificationResult:
        """Send many pushes concurrently and tally the outcomes."""
        results = await asyncio.gather(
            *(self.send_push_notification(r) for r in requests),
            return_exceptions=True,
        )

        sent = 0
        errors = []
        for index, result in enumerate(results, start=1):
            if isinstance(result, PushResult) and result.success:
                sent += 1
                continue
            error = result.error if isinstance(result, PushResult) else str(result)
            errors.append(f"Device {index}: {error}")

        failed = len(results) - sent
        return BulkNotificationResult(success=failed == 0, sent=sent, failed=failed, errors=errors)


def _mask(token: str) -> str:
    return f"{token[:8]}..." if len(token) > 8 else token
