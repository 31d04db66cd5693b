"""Alert data models."""

import re
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

# Tickers are uppercase alphanumeric (BTC, ETH, 1INCH)
SYMBOL_PATTERN = re.compile(r"^[A-Z0-9]+$")


class Direction(str, Enum):
    """Price crossing direction of an alert."""

    CROSS_UP = "CROSS_UP"
    CROSS_DOWN = "CROSS_DOWN"


class Alert(BaseModel):
    """A user's standing request to be notified when a price crosses a target."""

    id: str = Field(..., min_length=1, description="Alert identifier")
    user_id: str = Field(..., min_length=1, description="Owning user")
    symbol: str = Field(..., pattern=SYMBOL_PATTERN.pattern, description="Ticker")
    target_price: Decimal = Field(..., gt=0, description="Target price in USD")
    direction: Direction = Field(..., description="Crossing direction")
    active: bool = Field(default=True, description="Whether the alert is armed")
    last_notified_at: Optional[datetime] = Field(
        default=None, description="When the alert last fired"
    )
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    model_config = {"frozen": True}


class AlertWithOwner(Alert):
    """An alert joined with its owner's push device token."""

    device_token: Optional[str] = Field(
        default=None, description="Owner's device token, if registered"
    )
