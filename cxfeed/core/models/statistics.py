"""Derived statistics attached to each price record."""

from pydantic import BaseModel, ConfigDict, Field

Number = int | float


class WindowStatistics(BaseModel):
    """Every derived field of a record; unknown values stay ``None`` and dump as null."""

    open_yesterday: Number | None = Field(None, alias="OpenYesterday")
    close_yesterday: Number | None = Field(None, alias="CloseYesterday")
    high_yesterday: Number | None = Field(None, alias="HighYesterday")
    low_yesterday: Number | None = Field(None, alias="LowYesterday")
    traded_yesterday: Number | None = Field(None, alias="TradedYesterday")
    twap_7d: Number | None = Field(None, alias="TWAP7D")
    vwap_7d: Number | None = Field(None, alias="VWAP7D")
    traded_7d: Number | None = Field(None, alias="Traded7D")
    average_traded_7d: Number | None = Field(None, alias="AverageTraded7D")
    twap_30d: Number | None = Field(None, alias="TWAP30D")
    vwap_30d: Number | None = Field(None, alias="VWAP30D")
    traded_30d: Number | None = Field(None, alias="Traded30D")
    average_traded_30d: Number | None = Field(None, alias="AverageTraded30D")

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    def to_fields(self) -> dict[str, Number | None]:
        """Record keys in canonical order with explicit ``None`` for missing data."""
        return self.model_dump(by_alias=True)


STATISTIC_FIELDS: tuple[str, ...] = tuple(
    info.alias or name for name, info in WindowStatistics.model_fields.items()
)
