from datetime import date
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field, model_validator

class RawBaseModel(BaseModel):
    """Base configuration for immutable collector-side models."""
    model_config = ConfigDict(frozen=True)

class ObservationPoint(RawBaseModel):
    """
    One raw reading as delivered by a source adapter.
    Collections: raw_dam_hourly, raw_flow_daily, raw_asos_daily,
    raw_reservoir_daily, raw_soil_moisture_daily
    """
    entity_id: str = Field(..., min_length=1, description="Station / facility / dam code")
    obs_date: date = Field(..., description="Calendar date as reported by the provider")
    source_hour: Optional[int] = Field(
        None, ge=0, le=24,
        description="Reporting hour 0..24; None for date-only sources"
    )
    value: Optional[float] = Field(None, description="None when the provider reported a missing marker")

class WeightEntry(RawBaseModel):
    entity_id: str
    weight: float = Field(..., ge=0)
    effective_from: Optional[date] = Field(
        None, description="Weight counts as 0 before this date"
    )

class RegionWeighting(RawBaseModel):
    """
    Collection: thiessen_weights (grouped by sgg_cd)
    Purpose: Station weights composing one administrative region.
    """
    region_code: str
    entries: List[WeightEntry]

class RegionCode(RawBaseModel):
    """
    Collection: drought_codes
    Purpose: Maps a region to the observation codes that feed one series type.
    """
    region_code: str
    sort: str = Field(..., description="Dam | Ar | FR | SM")
    obs_codes: List[str]

    @model_validator(mode="after")
    def _require_codes(self) -> "RegionCode":
        if not self.obs_codes:
            raise ValueError(f"region {self.region_code} has no observation codes")
        return self
