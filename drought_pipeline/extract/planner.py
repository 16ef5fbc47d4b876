from datetime import datetime, timedelta
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict


class StepUnit(str, Enum):
    HOURLY = "hourly"
    DAILY = "daily"

    @property
    def delta(self) -> timedelta:
        return timedelta(hours=1) if self is StepUnit.HOURLY else timedelta(days=1)


class FetchWindow(BaseModel):
    """Half-open request window [start, end) for one entity."""
    model_config = ConfigDict(frozen=True)

    entity_id: str
    start: datetime
    end: datetime


def plan_fetch(
    entity_id: str,
    cursor: Optional[datetime],
    step: StepUnit,
    default_lookback: timedelta,
    now: datetime
) -> Optional[FetchWindow]:
    """
    Decides what to request next for an entity.

    The window starts one step after the last persisted observation, or
    `default_lookback` before `now` for an entity never collected.
    Returns None when the entity is already up to date.
    """
    if cursor is not None:
        next_start = cursor + step.delta
    else:
        next_start = now - default_lookback

    if next_start >= now:
        return None

    return FetchWindow(entity_id=entity_id, start=next_start, end=now)
