import logging
from datetime import date
from typing import Iterator, List, Optional, Sequence, Tuple

import pandas as pd

from drought_pipeline.schemas.series_models import DailySeriesPoint, DroughtSeriesRow, SeriesPolicy
from drought_pipeline.transform.calendar import ordinal_day
from drought_pipeline.transform.collapse import is_valid_value

logger = logging.getLogger(__name__)

EmittedRow = Tuple[int, int, int, int, Optional[float]]


class SeriesEmitter:
    """
    Maps a reconstructed series onto output rows
    (year, month, day, ordinal day, value or None for absent).
    The policy decides precision, the value label and whether absent rows
    are written as the sentinel or dropped.
    """

    def __init__(self, policy: SeriesPolicy):
        self.policy = policy

    def is_absent(self, value: Optional[float]) -> bool:
        return not is_valid_value(value, self.policy.zero_is_sentinel)

    def iter_rows(self, series: Sequence[DailySeriesPoint]) -> Iterator[EmittedRow]:
        for point in series:
            absent = self.is_absent(point.value)
            if absent and self.policy.omit_absent:
                continue
            d = point.day
            yield d.year, d.month, d.day, ordinal_day(d), None if absent else point.value

    def format_value(self, value: Optional[float], precision: Optional[int] = None) -> str:
        if value is None or value == self.policy.sentinel:
            return f"{self.policy.sentinel:.0f}"
        return f"{value:.{precision or self.policy.precision}f}"

    def header(self, detail_columns: Sequence[str] = ()) -> str:
        return ",".join([*self.policy.date_labels, "JD", self.policy.value_label, *detail_columns])

    def to_csv_lines(
        self,
        series: Sequence[DailySeriesPoint],
        detail: Optional[pd.DataFrame] = None,
        detail_precision: int = 1
    ) -> List[str]:
        """
        Header plus one `yyyy,mm,dd,JD,value[,detail...]` line per emitted row.

        Args:
            detail: Optional frame indexed by date whose columns are appended
                after the value (e.g. per-station rainfall); NaN -> sentinel.
        """
        detail_columns = list(detail.columns) if detail is not None else []
        lines = [self.header(detail_columns)]

        for yyyy, mm, dd, jd, value in self.iter_rows(series):
            fields = [str(yyyy), f"{mm:02d}", f"{dd:02d}", str(jd), self.format_value(value)]
            if detail is not None:
                row = detail.loc[date(yyyy, mm, dd)]
                fields.extend(
                    self.format_value(None if pd.isna(v) else float(v), detail_precision)
                    for v in row.tolist()
                )
            lines.append(",".join(fields))
        return lines

    def to_records(self, series: Sequence[DailySeriesPoint], sgg_cd: str) -> List[DroughtSeriesRow]:
        """Rows for the persistence gateway; absent values are stored as None."""
        interpolated = {p.day: p.interpolated for p in series}
        return [
            DroughtSeriesRow(
                series=self.policy.name,
                sgg_cd=sgg_cd,
                yyyy=yyyy, mm=mm, dd=dd, jd=jd,
                data=None if value is None else round(value, self.policy.precision),
                interpolated=interpolated[date(yyyy, mm, dd)]
            )
            for yyyy, mm, dd, jd, value in self.iter_rows(series)
        ]
