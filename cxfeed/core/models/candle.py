"""Historical candle model."""

from pydantic import BaseModel, ConfigDict, Field


class CandleEntry(BaseModel):
    """One observation of the upstream per-ticker price history."""

    interval: str = Field(..., alias="Interval", description="Interval category, e.g. DAY_ONE")
    date_epoch_ms: int = Field(..., alias="DateEpochMs", description="Observation instant in epoch milliseconds")
    open: float = Field(..., alias="Open")
    close: float = Field(..., alias="Close")
    high: float = Field(..., alias="High")
    low: float = Field(..., alias="Low")
    traded: int | float = Field(..., alias="Traded", description="Traded volume")

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore", allow_inf_nan=False)

    @property
    def typical_price(self) -> float:
        """Mean of open, close, high and low."""
        return (self.open + self.close + self.high + self.low) / 4
