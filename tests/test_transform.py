import unittest
from datetime import date

from drought_pipeline.schemas.raw_models import ObservationPoint
from drought_pipeline.schemas.series_models import DailySeriesPoint
from drought_pipeline.transform.calendar import (
    build_daily_series,
    clamp_range,
    daily_spine,
    ordinal_day,
)
from drought_pipeline.transform.cleaning import (
    build_observation,
    clean_observation_doc,
    parse_observation_stamp,
    safe_cast_float,
)
from drought_pipeline.transform.collapse import DailyCollapseAggregator, collapse_daily
from drought_pipeline.transform.interpolation import fill_gaps
from drought_pipeline.utils.errors import ReconstructionError


def _obs(d, hour, value, entity="D1"):
    return ObservationPoint(entity_id=entity, obs_date=d, source_hour=hour, value=value)


class TestCalendar(unittest.TestCase):

    def test_ordinal_day(self):
        self.assertEqual(ordinal_day(date(2021, 3, 1)), 60)
        self.assertEqual(ordinal_day(date(2020, 3, 1)), 60)
        self.assertEqual(ordinal_day(date(2020, 12, 31)), 365)
        self.assertEqual(ordinal_day(date(2021, 12, 31)), 365)
        self.assertEqual(ordinal_day(date(2020, 2, 28)), 59)

    def test_ordinal_day_rejects_leap_day(self):
        with self.assertRaises(ReconstructionError):
            ordinal_day(date(2020, 2, 29))

    def test_spine_skips_leap_day(self):
        spine = daily_spine(date(2020, 1, 1), date(2020, 12, 31))
        self.assertEqual(len(spine), 365)
        self.assertNotIn(date(2020, 2, 29), spine)
        self.assertEqual(spine[59], date(2020, 3, 1))

    def test_spine_single_day_and_bad_range(self):
        self.assertEqual(daily_spine(date(2021, 5, 5), date(2021, 5, 5)), [date(2021, 5, 5)])
        with self.assertRaises(ReconstructionError):
            daily_spine(date(2021, 5, 6), date(2021, 5, 5))

    def test_build_daily_series_fills_absent_days(self):
        series = build_daily_series(
            {date(2020, 2, 28): 1.0, date(2020, 2, 29): 9.0, date(2020, 3, 2): 3.0},
            date(2020, 2, 28), date(2020, 3, 2)
        )
        self.assertEqual([p.day for p in series], [date(2020, 2, 28), date(2020, 3, 1), date(2020, 3, 2)])
        self.assertEqual([p.value for p in series], [1.0, None, 3.0])

    def test_clamp_range(self):
        start, end = clamp_range(date(1985, 6, 1), date(2030, 1, 1), 1991, date(2024, 5, 1))
        self.assertEqual(start, date(1991, 1, 1))
        self.assertEqual(end, date(2024, 5, 1))


class TestCleaning(unittest.TestCase):

    def test_safe_cast_float_markers(self):
        self.assertEqual(safe_cast_float("12.5"), 12.5)
        self.assertEqual(safe_cast_float("1,234.5"), 1234.5)
        self.assertIsNone(safe_cast_float("-9999"))
        self.assertIsNone(safe_cast_float("-9"))
        self.assertIsNone(safe_cast_float(""))
        self.assertIsNone(safe_cast_float("n/a"))
        self.assertIsNone(safe_cast_float(150, max_val=100))

    def test_parse_observation_stamp(self):
        self.assertEqual(parse_observation_stamp("2024010124"), (date(2024, 1, 1), 24))
        self.assertEqual(parse_observation_stamp("2024010106"), (date(2024, 1, 1), 6))
        self.assertEqual(parse_observation_stamp("20240101"), (date(2024, 1, 1), None))
        self.assertEqual(parse_observation_stamp("2024-01-01"), (date(2024, 1, 1), None))
        self.assertIsNone(parse_observation_stamp("2024010125"))
        self.assertIsNone(parse_observation_stamp("garbage"))

    def test_build_observation_keeps_missing_value_as_absent(self):
        point = build_observation("D1", "2024010112", "-9999")
        self.assertIsNotNone(point)
        self.assertIsNone(point.value)
        self.assertEqual(point.source_hour, 12)
        self.assertIsNone(build_observation("D1", None, "1.0"))

    def test_clean_observation_doc(self):
        from datetime import datetime
        doc = {"entity_id": "F1", "obs_date": datetime(2024, 1, 2), "source_hour": None, "value": 3.5}
        point = clean_observation_doc(doc)
        self.assertEqual(point.obs_date, date(2024, 1, 2))
        self.assertEqual(point.value, 3.5)
        self.assertIsNone(clean_observation_doc({"obs_date": datetime(2024, 1, 2)}))


class TestDailyCollapse(unittest.TestCase):

    def test_latest_valid_hour_wins_and_hour_24_moves(self):
        d = date(2024, 1, 1)
        points = [
            _obs(d, 0, 5.0),
            _obs(d, 6, 10.0),
            _obs(d, 12, 0.0),
            _obs(d, 18, 20.0),
            _obs(d, 24, 30.0),
        ]
        result = collapse_daily(points)
        self.assertEqual(result[d], 20.0)
        self.assertEqual(result[date(2024, 1, 2)], 30.0)

    def test_skips_sentinel_and_zero_candidates(self):
        d = date(2024, 1, 1)
        points = [_obs(d, 6, 10.0), _obs(d, 12, 0.0), _obs(d, 18, -9999.0), _obs(d, 20, None)]
        self.assertEqual(collapse_daily(points)[d], 10.0)

    def test_zero_is_kept_when_not_a_sentinel(self):
        d = date(2024, 1, 1)
        points = [_obs(d, 6, 10.0), _obs(d, 12, 0.0)]
        self.assertEqual(collapse_daily(points, zero_is_sentinel=False)[d], 0.0)

    def test_only_hour_zero_yields_nothing(self):
        d = date(2024, 1, 1)
        aggregator = DailyCollapseAggregator()
        aggregator.consume(_obs(d, 0, 5.0))
        self.assertEqual(aggregator.get_results(), {})
        self.assertEqual(aggregator.discarded_hour_zero, 1)

    def test_only_invalid_yields_nothing(self):
        d = date(2024, 1, 1)
        self.assertNotIn(d, collapse_daily([_obs(d, 3, 0.0), _obs(d, 4, None)]))

    def test_date_only_readings_first_valid_wins(self):
        d = date(2024, 1, 1)
        points = [_obs(d, None, None), _obs(d, None, 40.0), _obs(d, None, 41.0)]
        self.assertEqual(collapse_daily(points)[d], 40.0)

    def test_merged_dams_pool_candidates(self):
        d = date(2024, 1, 1)
        points = [_obs(d, 10, 55.0, entity="A"), _obs(d, 23, 0.0, entity="B"), _obs(d, 22, 60.0, entity="B")]
        self.assertEqual(collapse_daily(points)[d], 60.0)


class TestGapInterpolator(unittest.TestCase):

    def _series(self, start_day, values):
        spine = daily_spine(date(2021, 1, 1), date(2021, 12, 31))
        start = spine.index(start_day)
        return [DailySeriesPoint(day=spine[start + i], value=v) for i, v in enumerate(values)]

    def test_fills_gap_inside_window(self):
        series = self._series(date(2021, 1, 1), [10.0] + [None] * 29 + [20.0])
        filled = fill_gaps(series, window_days=31)
        for point in filled[1:30]:
            self.assertEqual(point.value, 15.0)
            self.assertTrue(point.interpolated)
        self.assertFalse(filled[0].interpolated)
        self.assertEqual(filled[30].value, 20.0)

    def test_gap_beyond_window_stays_absent(self):
        series = self._series(date(2021, 1, 1), [10.0] + [None] * 40 + [20.0])
        filled = fill_gaps(series, window_days=31)
        # Day 11 is within 31 days of both ends (10 back, 31 forward)
        self.assertEqual(filled[10].value, 15.0)
        # Day 5 sees the predecessor but the successor is 36 days away
        self.assertIsNone(filled[5].value)
        self.assertFalse(filled[5].interpolated)

    def test_distant_successor_fills_only_days_within_reach_of_both(self):
        # Values on day 1 and day 40; the gap is filled where both lie within 31 days
        series = self._series(date(2021, 1, 1), [10.0] + [None] * 38 + [20.0])
        filled = fill_gaps(series, window_days=31)
        self.assertIsNone(filled[7].value)  # day 8: 32 days before day 40
        self.assertEqual(filled[8].value, 15.0)  # day 9
        self.assertEqual(filled[19].value, 15.0)  # day 20
        self.assertEqual(filled[31].value, 15.0)  # day 32: 31 days after day 1
        self.assertIsNone(filled[32].value)  # day 33

    def test_one_sided_gap_not_filled(self):
        series = self._series(date(2021, 1, 1), [None, None, 20.0])
        filled = fill_gaps(series, window_days=31)
        self.assertIsNone(filled[0].value)
        self.assertIsNone(filled[1].value)

    def test_zero_is_gap_only_when_flagged(self):
        series = self._series(date(2021, 1, 1), [10.0, 0.0, 20.0])
        self.assertEqual(fill_gaps(series)[1].value, 15.0)
        self.assertEqual(fill_gaps(series, zero_is_sentinel=False)[1].value, 0.0)

    def test_window_counts_calendar_days_across_leap_day(self):
        spine = daily_spine(date(2020, 2, 27), date(2020, 3, 2))
        series = [DailySeriesPoint(day=d, value=v) for d, v in zip(spine, [4.0, None, None, 8.0])]
        filled = fill_gaps(series, window_days=2)
        # 2020-02-28: 1 day back, 3 calendar days forward -> out of window
        self.assertIsNone(filled[1].value)
        # 2020-03-01: 3 days back -> out of window
        self.assertIsNone(filled[2].value)
        self.assertEqual([p.value for p in fill_gaps(series, window_days=3)], [4.0, 6.0, 6.0, 8.0])


if __name__ == '__main__':
    unittest.main()
