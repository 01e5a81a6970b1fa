"""Alert data model."""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator

from pricewatch.timeutil import utc_now

AlertCondition = Literal["GT", "LT"]

CONDITIONS: tuple[str, ...] = ("GT", "LT")


class Alert(BaseModel):
    """Represents one user's price watch on a symbol."""

    id: Optional[int] = Field(default=None, description="Database ID")
    owner_id: str = Field(..., min_length=1, description="Owning user")
    symbol: str = Field(..., min_length=1, description="Ticker symbol")
    condition: AlertCondition = Field(
        ..., description="GT fires above target, LT fires below target"
    )
    target_price: float = Field(..., gt=0, description="Alert threshold price")
    triggered: bool = Field(default=False, description="Whether alert has triggered")
    created_at: datetime = Field(
        default_factory=utc_now, description="Alert creation timestamp (UTC)"
    )
    triggered_at: Optional[datetime] = Field(
        default=None, description="When the alert was triggered"
    )

    model_config = {"frozen": True}

    @field_validator("symbol")
    @classmethod
    def _upper_symbol(cls, value: str) -> str:
        symbol = value.strip().upper()
        if not symbol:
            raise ValueError("symbol must not be blank")
        return symbol

    @property
    def is_pending(self) -> bool:
        """True while the alert is eligible for evaluation."""
        return not self.triggered
