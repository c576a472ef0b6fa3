"""Pydantic schemas for the valuation history series."""

from datetime import datetime
from decimal import Decimal

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field, TypeAdapter


class HistoryPoint(BaseModel):
    """One recorded portfolio total.

    Attributes:
        timestamp: When the valuation was taken (timezone-aware, UTC)
        value: Grand total in the base currency
        details: Section name -> section total in the base currency
    """

    model_config = ConfigDict(frozen=True)

    timestamp: AwareDatetime
    value: Decimal
    details: dict[str, Decimal] = Field(default_factory=dict)

    @property
    def epoch_seconds(self) -> float:
        return self.timestamp.timestamp()


class PeriodChange(BaseModel):
    """Change of the total value across a window of points."""

    model_config = ConfigDict(frozen=True)

    value: Decimal = Decimal("0")
    percent: Decimal = Decimal("0")


class HistoryWindowResult(BaseModel):
    """Points of a chart window together with their period change."""

    model_config = ConfigDict(frozen=True)

    window: str
    start: datetime | None
    points: list[HistoryPoint]
    change: PeriodChange


HistorySeriesAdapter: TypeAdapter[list[HistoryPoint]] = TypeAdapter(list[HistoryPoint])
