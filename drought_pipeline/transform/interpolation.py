import logging
from typing import List, Optional, Sequence, Tuple

from drought_pipeline.schemas.series_models import DailySeriesPoint
from drought_pipeline.transform.collapse import is_valid_value

logger = logging.getLogger(__name__)

GAP_WINDOW_DAYS = 31


def _nearest_valid_indices(valid: Sequence[bool]) -> Tuple[List[Optional[int]], List[Optional[int]]]:
    """
    For every index, the closest valid index strictly before and strictly after it.
    Two linear passes instead of a window scan per gap.
    """
    n = len(valid)
    previous: List[Optional[int]] = [None] * n
    following: List[Optional[int]] = [None] * n

    last = None
    for i in range(n):
        previous[i] = last
        if valid[i]:
            last = i

    nxt = None
    for i in range(n - 1, -1, -1):
        following[i] = nxt
        if valid[i]:
            nxt = i

    return previous, following


def fill_gaps(
    series: Sequence[DailySeriesPoint],
    window_days: int = GAP_WINDOW_DAYS,
    zero_is_sentinel: bool = True,
    log: Optional[logging.Logger] = None,
    context: str = ""
) -> List[DailySeriesPoint]:
    """
    Fills absent/sentinel days with the mean of the nearest valid neighbours.

    A gap is filled only when BOTH a predecessor and a successor exist within
    `window_days` calendar days; neighbours are taken from the input values,
    never from values filled earlier in the same pass. One-sided gaps stay absent.

    Args:
        series: Contiguous spine-aligned daily points.
        window_days: Max calendar-day distance to a usable neighbour.
        zero_is_sentinel: Whether 0 counts as a gap for this field.
        log: Logger for skipped-gap diagnostics (defaults to the module logger).
        context: Label (series/entity) prefixed to log lines.

    Returns:
        A new list of points; filled ones carry interpolated=True.
    """
    log = log or logger
    valid = [is_valid_value(p.value, zero_is_sentinel) for p in series]
    previous, following = _nearest_valid_indices(valid)

    filled: List[DailySeriesPoint] = []
    filled_count = 0
    one_sided = 0
    unreachable = 0

    for i, point in enumerate(series):
        if valid[i]:
            filled.append(point)
            continue

        before = previous[i]
        after = following[i]
        if before is not None and (point.day - series[before].day).days > window_days:
            before = None
        if after is not None and (series[after].day - point.day).days > window_days:
            after = None

        if before is not None and after is not None:
            mean = (series[before].value + series[after].value) / 2.0
            filled.append(DailySeriesPoint(day=point.day, value=mean, interpolated=True))
            filled_count += 1
            continue

        if before is not None or after is not None:
            one_sided += 1
            log.debug(f"[{context}] {point.day}: only one neighbour within {window_days} days, left absent")
        else:
            unreachable += 1

        filled.append(DailySeriesPoint(day=point.day, value=None, interpolated=False))

    if unreachable:
        log.warning(f"⚠️ [{context}] {unreachable} day(s) without any neighbour within {window_days} days")
    if filled_count or one_sided:
        log.info(f"🩹 [{context}] Interpolated {filled_count} day(s), {one_sided} one-sided gap(s) left absent")

    return filled
