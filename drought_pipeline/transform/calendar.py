"""
Leap-day-free drought calendar.

Every year has exactly 365 days: February 29 is dropped and the days after
it shift down by one, so 31 December is always day 365.
"""
import calendar
from datetime import date, timedelta
from typing import Dict, List, Mapping, Optional, Tuple

from drought_pipeline.schemas.series_models import DailySeriesPoint
from drought_pipeline.utils.errors import ReconstructionError


def is_leap_day(d: date) -> bool:
    return d.month == 2 and d.day == 29


def ordinal_day(d: date) -> int:
    """
    Day-of-year on the 365-day calendar.

    Raises:
        ReconstructionError: for February 29, which has no ordinal.
    """
    if is_leap_day(d):
        raise ReconstructionError(f"{d.isoformat()} has no ordinal day (leap day)")

    day_of_year = d.timetuple().tm_yday
    if calendar.isleap(d.year) and d.month > 2:
        day_of_year -= 1
    return day_of_year


def daily_spine(start: date, end: date) -> List[date]:
    """
    All dates from `start` to `end` inclusive, February 29 excluded.

    Raises:
        ReconstructionError: when start is after end.
    """
    if start > end:
        raise ReconstructionError(f"Invalid range: {start.isoformat()} > {end.isoformat()}")

    days = []
    current = start
    step = timedelta(days=1)
    while current <= end:
        if not is_leap_day(current):
            days.append(current)
        current += step
    return days


def build_daily_series(
    values: Mapping[date, Optional[float]],
    start: date,
    end: date
) -> List[DailySeriesPoint]:
    """
    Lays a sparse `date -> value` map over the spine. Days missing from the
    map become absent points; leap-day keys are dropped.
    """
    return [DailySeriesPoint(day=d, value=values.get(d)) for d in daily_spine(start, end)]


def clamp_range(
    start: date,
    end: date,
    start_year: int,
    today: date
) -> Tuple[date, date]:
    """Clamps a processing range to [1 Jan start_year, today]."""
    floor = date(start_year, 1, 1)
    return max(start, floor), min(end, today)


def data_span(values: Dict[date, Optional[float]]) -> Optional[Tuple[date, date]]:
    """First and last date carrying a value, or None for an empty map."""
    present = [d for d, v in values.items() if v is not None]
    if not present:
        return None
    return min(present), max(present)
