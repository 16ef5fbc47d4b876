"""
Areal aggregation: combines station series into one regional series using
(possibly time-varying) station weights.

    region(d) = sum over stations of weight_effective(s, d) * value(s, d)

An absent station value contributes 0. What a day with no contributing
station becomes is an explicit policy (AllAbsentPolicy).
"""
import logging
import math
from datetime import date
from enum import Enum
from typing import List, Mapping, Sequence, Tuple

import numpy as np
import pandas as pd

from drought_pipeline.schemas.raw_models import RegionWeighting, WeightEntry
from drought_pipeline.schemas.series_models import DailySeriesPoint
from drought_pipeline.transform.collapse import is_valid_value
from drought_pipeline.utils.errors import ReconstructionError

logger = logging.getLogger(__name__)


class AllAbsentPolicy(str, Enum):
    ZERO = "zero"        # region value is 0.0
    ABSENT = "absent"    # region value is absent (emitted as sentinel / omitted)


def effective_weight(entry: WeightEntry, d: date) -> float:
    if entry.effective_from is not None and d < entry.effective_from:
        return 0.0
    return entry.weight


def validate_weighting(weighting: RegionWeighting) -> None:
    """
    Raises:
        ReconstructionError: empty table, duplicate station, negative or non-finite weight.
    """
    if not weighting.entries:
        raise ReconstructionError(f"Region {weighting.region_code} has an empty weighting table")

    seen = set()
    for entry in weighting.entries:
        if entry.entity_id in seen:
            raise ReconstructionError(
                f"Region {weighting.region_code} lists station {entry.entity_id} twice"
            )
        seen.add(entry.entity_id)
        if not math.isfinite(entry.weight) or entry.weight < 0:
            raise ReconstructionError(
                f"Region {weighting.region_code} has invalid weight {entry.weight} for {entry.entity_id}"
            )


def build_station_frame(
    weighting: RegionWeighting,
    station_series: Mapping[str, Sequence[DailySeriesPoint]],
    spine: Sequence[date],
    zero_is_sentinel: bool = False
) -> Tuple[pd.DataFrame, pd.DataFrame, pd.DataFrame]:
    """
    Aligns station series on the spine.

    Returns:
        (values, weights, interpolated) frames indexed by date with one column
        per station in weighting order. Absent values are NaN.
    """
    index = pd.Index(list(spine), name="date")
    columns = [entry.entity_id for entry in weighting.entries]

    values = pd.DataFrame(np.nan, index=index, columns=columns, dtype=float)
    interpolated = pd.DataFrame(False, index=index, columns=columns, dtype=bool)

    for station_id in columns:
        points = station_series.get(station_id)
        if not points:
            logger.debug(f"[{weighting.region_code}] station {station_id} has no series")
            continue
        by_day = {
            p.day: (p.value, p.interpolated)
            for p in points
            if is_valid_value(p.value, zero_is_sentinel)
        }
        if not by_day:
            continue
        station = pd.DataFrame.from_dict(by_day, orient="index", columns=["value", "interpolated"])
        station = station.reindex(index)
        values[station_id] = station["value"].astype(float)
        interpolated[station_id] = station["interpolated"].eq(True)

    weights = pd.DataFrame(
        {entry.entity_id: [effective_weight(entry, d) for d in spine] for entry in weighting.entries},
        index=index,
        columns=columns,
        dtype=float
    )
    return values, weights, interpolated


def aggregate_region(
    weighting: RegionWeighting,
    station_series: Mapping[str, Sequence[DailySeriesPoint]],
    spine: Sequence[date],
    all_absent: AllAbsentPolicy = AllAbsentPolicy.ZERO,
    zero_is_sentinel: bool = False
) -> Tuple[List[DailySeriesPoint], pd.DataFrame]:
    """
    Weighted regional series over `spine`.

    Returns:
        The regional points plus the aligned station value frame
        (used for per-station detail columns in the output).
    """
    validate_weighting(weighting)

    values, weights, interpolated = build_station_frame(
        weighting, station_series, spine, zero_is_sentinel
    )

    contributing = values.notna() & (weights > 0)
    region_values = (values.fillna(0.0) * weights).sum(axis=1)
    has_contributor = contributing.any(axis=1)
    any_interpolated = (interpolated & contributing).any(axis=1)

    if all_absent is AllAbsentPolicy.ABSENT:
        region_values = region_values.where(has_contributor)

    absent_days = int((~has_contributor).sum())
    if absent_days:
        logger.info(
            f"[{weighting.region_code}] {absent_days} day(s) without a contributing station "
            f"-> {all_absent.value}"
        )

    points = [
        DailySeriesPoint(
            day=d,
            value=None if pd.isna(v) else float(v),
            interpolated=bool(flag)
        )
        for d, v, flag in zip(spine, region_values.tolist(), any_interpolated.tolist())
    ]
    return points, values


def unit_weighting(region_code: str, entity_ids: Sequence[str]) -> RegionWeighting:
    """Plain sum of member stations (every weight 1.0)."""
    return RegionWeighting(
        region_code=region_code,
        entries=[WeightEntry(entity_id=e, weight=1.0) for e in entity_ids]
    )

