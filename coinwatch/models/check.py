"""Evaluation run results."""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from coinwatch.models.alert import Direction


class CheckResult(BaseModel):
    """Outcome of evaluating one alert against the current price."""

    alert_id: str
    symbol: str
    target_price: Decimal
    current_price: float
    direction: Direction
    condition_met: bool
    user_id: str
    device_token: Optional[str] = None

    model_config = {"frozen": True}


class RunSummary(BaseModel):
    """Aggregate outcome of one evaluation run."""

    total_alerts: int = Field(default=0, ge=0)
    checked_alerts: int = Field(default=0, ge=0)
    triggered_alerts: int = Field(default=0, ge=0)
    errors: list[str] = Field(default_factory=list)
    results: list[CheckResult] = Field(default_factory=list)

    model_config = {"frozen": True}

    @classmethod
    def empty(cls) -> "RunSummary":
        return cls()
