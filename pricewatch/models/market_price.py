"""Market price data model."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class MarketPrice(BaseModel):
    """Latest known price for a symbol."""

    symbol: str = Field(..., min_length=1, description="Ticker symbol")
    price: float = Field(..., gt=0, description="Last known price")
    updated_at: datetime = Field(..., description="Time of last refresh")
    day_open: Optional[float] = Field(default=None, gt=0, description="First price of the day")
    day_high: Optional[float] = Field(default=None, gt=0, description="Day high")
    day_low: Optional[float] = Field(default=None, gt=0, description="Day low")

    model_config = {"frozen": True}

    @field_validator("symbol")
    @classmethod
    def _upper_symbol(cls, value: str) -> str:
        return value.strip().upper()

    @property
    def day_change_percent(self) -> Optional[float]:
        """Percentage move since the day open, if known."""
        if self.day_open is None:
            return None
        return (self.price - self.day_open) / self.day_open * 100
