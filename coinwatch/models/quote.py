"""Price quote, request and response models."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class PriceQuote(BaseModel):
    """A live price snapshot for one symbol. Never persisted."""

    symbol: str = Field(..., min_length=1, description="Ticker")
    name: str = Field(default="", description="Coin name, if the provider has it")
    price: float = Field(..., ge=0, description="Current price")
    currency: str = Field(default="USD", description="Quote currency")
    price_change_24h: float = Field(default=0.0, description="Absolute 24h change")
    price_change_percentage_24h: float = Field(default=0.0, description="24h change %")
    market_cap: Optional[float] = Field(default=None, description="Market cap")
    volume_24h: Optional[float] = Field(default=None, description="24h volume")
    fetched_at: datetime = Field(default_factory=datetime.now)
    source: str = Field(..., description="Provider that produced the quote")

    model_config = {"frozen": True}


class PriceRequest(BaseModel):
    """Symbols to price in one currency."""

    symbols: list[str] = Field(default_factory=list)
    currency: str = Field(default="USD")

    model_config = {"frozen": True}


class PriceResponse(BaseModel):
    """Normalized result of a provider or aggregator call."""

    success: bool
    data: list[PriceQuote] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
    source: str
    timestamp: datetime = Field(default_factory=datetime.now)

    model_config = {"frozen": True}

    @classmethod
    def failure(cls, source: str, *errors: str) -> "PriceResponse":
        return cls(success=False, errors=list(errors), source=source)
