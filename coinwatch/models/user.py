"""User data model."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class User(BaseModel):
    """Owner of price alerts and the device that receives their pushes."""

    id: str = Field(..., min_length=1, description="User identifier")
    name: str = Field(..., min_length=1, description="Display name")
    email: str = Field(..., min_length=3, description="E-mail address")
    device_token: Optional[str] = Field(
        default=None, description="Push notification device token"
    )
    created_at: datetime = Field(
        default_factory=datetime.now, description="Registration timestamp"
    )

    model_config = {"frozen": True}
