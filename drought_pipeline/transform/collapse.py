import logging
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional, Tuple

from drought_pipeline.schemas.raw_models import ObservationPoint
from drought_pipeline.schemas.series_models import SENTINEL

logger = logging.getLogger(__name__)


def is_valid_value(value: Optional[float], zero_is_sentinel: bool) -> bool:
    """A reading counts when it is present, not the sentinel, and (if flagged) not zero."""
    if value is None or value == SENTINEL:
        return False
    if zero_is_sentinel and value == 0:
        return False
    return True


class DailyCollapseAggregator:
    """
    Stateful collapse of sub-daily readings into one value per calendar day.

    Rules:
    - hour 24 belongs to the following calendar day (it is that day's 00:00);
    - hour 0 is discarded;
    - within a day, candidates are tried from the latest hour down, date-only
      readings last in arrival order; the first valid value wins.
    """

    def __init__(self, zero_is_sentinel: bool = True):
        self.zero_is_sentinel = zero_is_sentinel
        # Key: effective date
        # Value: [(sort_key, arrival, value)]
        self.groups: Dict[date, List[Tuple[int, int, Optional[float]]]] = {}
        self._arrival = 0
        self.discarded_hour_zero = 0

    def consume(self, point: ObservationPoint):
        """Ingest a single reading."""
        hour = point.source_hour
        effective_date = point.obs_date

        if hour == 0:
            self.discarded_hour_zero += 1
            return
        if hour == 24:
            effective_date = effective_date + timedelta(days=1)

        # Date-only readings rank below every hourly one
        sort_key = hour if hour is not None else -1
        self.groups.setdefault(effective_date, []).append((sort_key, self._arrival, point.value))
        self._arrival += 1

    def get_results(self) -> Dict[date, float]:
        """Sparse date -> value map; days without a valid candidate are left out."""
        results = {}
        for day, candidates in self.groups.items():
            ordered = sorted(candidates, key=lambda c: (-c[0], c[1]))
            for _, _, value in ordered:
                if is_valid_value(value, self.zero_is_sentinel):
                    results[day] = value
                    break
        return results


def collapse_daily(
    points: Iterable[ObservationPoint],
    zero_is_sentinel: bool = True
) -> Dict[date, float]:
    """Convenience wrapper around DailyCollapseAggregator for in-memory batches."""
    aggregator = DailyCollapseAggregator(zero_is_sentinel=zero_is_sentinel)
    for point in points:
        aggregator.consume(point)
    return aggregator.get_results()
