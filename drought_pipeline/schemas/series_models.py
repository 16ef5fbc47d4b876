from datetime import date, datetime, timezone
from typing import Literal, Optional, Tuple
from pydantic import BaseModel, ConfigDict, Field, field_validator

SENTINEL = -9999.0

class SeriesBaseModel(BaseModel):
    """Base configuration for immutable series models."""
    model_config = ConfigDict(frozen=True)

class DailySeriesPoint(SeriesBaseModel):
    """One day of a reconstructed series. Feb 29 never appears."""
    day: date
    value: Optional[float] = None
    interpolated: bool = False

    @field_validator("day")
    @classmethod
    def _reject_leap_day(cls, v: date) -> date:
        if v.month == 2 and v.day == 29:
            raise ValueError("February 29 is not part of the drought calendar")
        return v

class SeriesPolicy(SeriesBaseModel):
    """
    Output conventions for one series type: how values are labelled,
    rounded, and what happens to days without a value.
    """
    name: str
    value_label: str
    precision: Literal[2, 4] = 2
    omit_absent: bool = Field(False, description="Drop absent rows instead of writing the sentinel")
    zero_is_sentinel: bool = Field(True, description="Treat 0 readings as missing")
    sentinel: float = SENTINEL
    date_labels: Tuple[str, str, str] = Field(("yyyy", "mm", "dd"), description="CSV header labels of the date columns")

class DroughtSeriesRow(SeriesBaseModel):
    """
    Collection: tb_actualdrought_dam
    Purpose: Persisted reconstructed daily value for one region.
    Absent days are stored with data=None.
    """
    series: str
    sgg_cd: str
    yyyy: int
    mm: int = Field(..., ge=1, le=12)
    dd: int = Field(..., ge=1, le=31)
    jd: int = Field(..., ge=1, le=365)
    data: Optional[float] = None
    interpolated: bool = False
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
