"""Push notification models."""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from coinwatch.models.alert import Direction


class NotificationPayload(BaseModel):
    title: str
    body: str
    data: dict[str, str] = Field(default_factory=dict)
    image_url: Optional[str] = None

    model_config = {"frozen": True}


class PushNotificationRequest(BaseModel):
    device_token: str
    payload: NotificationPayload

    model_config = {"frozen": True}


class PushResult(BaseModel):
    """Outcome of one push attempt."""

    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None

    model_config = {"frozen": True}


class PriceAlertNotification(BaseModel):
    """Fields describing a fired price alert."""

    symbol: str
    current_price: float
    target_price: Decimal
    direction: Direction
    alert_id: str

    model_config = {"frozen": True}


class BulkNotificationResult(BaseModel):
    success: bool
    sent: int = 0
    failed: int = 0
    errors: list[str] = Field(default_factory=list)

    model_config = {"frozen": True}
