import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from drought_pipeline.extract.source_adapter import SourceAdapter
from drought_pipeline.load.csv_writer import write_series_csv
from drought_pipeline.load.emitter import SeriesEmitter
from drought_pipeline.load.series_loader import SeriesStore
from drought_pipeline.schemas.raw_models import ObservationPoint, RegionWeighting
from drought_pipeline.schemas.series_models import DailySeriesPoint, SeriesPolicy
from drought_pipeline.transform.areal import AllAbsentPolicy, aggregate_region, unit_weighting
from drought_pipeline.transform.calendar import build_daily_series, clamp_range, daily_spine, data_span
from drought_pipeline.transform.collapse import collapse_daily
from drought_pipeline.transform.interpolation import fill_gaps
from drought_pipeline.jobs.orchestrator import EntityOutcome, EntityStage
from drought_pipeline.utils.errors import ReconstructionError, unwrap

logger = logging.getLogger(__name__)


class CombineMode(str, Enum):
    SINGLE = "single"      # one observation code per target
    MERGED = "merged"      # readings of every member pooled, then collapsed as one entity
    WEIGHTED = "weighted"  # member series combined by the areal aggregator


class RangeRule(str, Enum):
    DATA_SPAN = "data_span"                      # first..last valid date
    START_TO_DATA_END = "start_to_data_end"      # 1 Jan start_year..last valid date (today if none)
    START_TO_MASTER_END = "start_to_master_end"  # 1 Jan start_year..latest date of the whole source


DateWindow = Tuple[Optional[date], Optional[date]]


@dataclass(frozen=True)
class SeriesDefinition:
    policy: SeriesPolicy
    output_subdir: str
    combine: CombineMode
    range_rule: RangeRule
    interpolate: bool = True
    persist: bool = False
    all_absent: AllAbsentPolicy = AllAbsentPolicy.ABSENT
    detail_columns: bool = False
    region_windows: Mapping[str, DateWindow] = field(default_factory=dict)

    @property
    def name(self) -> str:
        return self.policy.name


@dataclass(frozen=True)
class ReconstructionTarget:
    key: str
    members: Tuple[str, ...] = ()
    weighting: Optional[RegionWeighting] = None


# Flow regions whose site readings are only trusted inside these windows (inclusive)
FLOW_REGION_WINDOWS: Dict[str, DateWindow] = {
    "42230": (date(2006, 1, 1), date(2020, 12, 31)),
    "42800": (date(2010, 1, 1), None),
    "47170": (date(2000, 1, 1), None),
    "47760": (date(2000, 1, 1), None),
}

# Agricultural reservoirs no longer reported; their files are padded to the common end date
DISCONTINUED_FACILITY_CODES: Tuple[str, ...] = (
    "2914010008", "2917010030", "2920010054", "2920010055", "4113010002",
    "4153010009", "4315010003", "4315010022", "4377010043", "4423010044",
    "4574010038", "4672010106", "4683010147", "4684010186", "4711010035",
    "4775010157", "4783010039", "4783010042", "4825010142",
)

DAM_RSRT = SeriesDefinition(
    policy=SeriesPolicy(name="dam_rsrt", value_label="RSRT", precision=2, omit_absent=True),
    output_subdir="DamRsrt",
    combine=CombineMode.MERGED,
    range_rule=RangeRule.DATA_SPAN,
    persist=True,
)

AR_DAM = SeriesDefinition(
    policy=SeriesPolicy(name="ar_dam", value_label="rsrt", precision=2, omit_absent=True),
    output_subdir="ArDam",
    combine=CombineMode.MERGED,
    range_rule=RangeRule.DATA_SPAN,
    persist=True,
)

FLOW_RATE = SeriesDefinition(
    policy=SeriesPolicy(name="flow_rate", value_label="Flow_Rate", precision=4),
    output_subdir="FlowRate",
    combine=CombineMode.WEIGHTED,
    range_rule=RangeRule.START_TO_MASTER_END,
    interpolate=False,
    persist=True,
    region_windows=FLOW_REGION_WINDOWS,
)

AGAG = SeriesDefinition(
    policy=SeriesPolicy(name="agag", value_label="rate", precision=2),
    output_subdir="AgAg",
    combine=CombineMode.SINGLE,
    range_rule=RangeRule.START_TO_DATA_END,
)

AREA_RAINFALL = SeriesDefinition(
    policy=SeriesPolicy(
        name="area_rainfall", value_label="AreaRainfall", precision=2,
        zero_is_sentinel=False, date_labels=("yyyy", "MM", "DD")
    ),
    output_subdir="AreaRainfall",
    combine=CombineMode.WEIGHTED,
    range_rule=RangeRule.START_TO_MASTER_END,
    interpolate=False,
    detail_columns=True,
)


def _in_window(point: ObservationPoint, window: Optional[DateWindow]) -> bool:
    if window is None:
        return True
    lo, hi = window
    return (lo is None or point.obs_date >= lo) and (hi is None or point.obs_date <= hi)


class SeriesReconstructor:
    """
    Rebuilds one series type from the full persisted history:
    fetch -> collapse -> range/spine -> interpolate -> aggregate -> emit.
    """

    def __init__(
        self,
        definition: SeriesDefinition,
        history: SourceAdapter,
        output_dir: Path,
        today: date,
        start_year: int = 1991,
        gap_window_days: int = 31,
        store: Optional[SeriesStore] = None,
        master_end: Optional[date] = None,
        weighting_loader: Optional[Callable[[str], RegionWeighting]] = None,
        log: Optional[logging.Logger] = None
    ):
        self.definition = definition
        self.history = history
        self.output_dir = Path(output_dir) / definition.output_subdir
        self.today = today
        self.start_year = start_year
        self.gap_window_days = gap_window_days
        self.store = store
        self.master_end = master_end
        self.weighting_loader = weighting_loader
        self.emitter = SeriesEmitter(definition.policy)
        self.log = log or logger

    # --- Stages ---

    def _weighting(self, target: ReconstructionTarget) -> Optional[RegionWeighting]:
        if self.definition.combine is not CombineMode.WEIGHTED:
            return None
        if target.weighting is not None:
            return target.weighting
        if self.weighting_loader is not None:
            return self.weighting_loader(target.key)
        return unit_weighting(target.key, target.members)

    def _fetch(self, key: str, members: Sequence[str]) -> Dict[str, List[ObservationPoint]]:
        # Whole history: the day before start_year catches hour-24 readings of 1 Jan
        start = datetime(self.start_year - 1, 12, 31)
        end = datetime.combine(self.today + timedelta(days=1), datetime.min.time())
        window = self.definition.region_windows.get(key)

        readings = {}
        for member in members:
            points = unwrap(self.history.fetch(member, start, end))
            readings[member] = [p for p in points if _in_window(p, window)]
        return readings

    def _resolve_range(self, values: Sequence[Dict[date, float]]) -> Optional[Tuple[date, date]]:
        rule = self.definition.range_rule
        floor = date(self.start_year, 1, 1)

        spans = [s for s in (data_span(v) for v in values) if s is not None]
        first = min(s[0] for s in spans) if spans else None
        last = max(s[1] for s in spans) if spans else None

        if rule is RangeRule.DATA_SPAN:
            if first is None:
                return None
            start, end = first, last
        elif rule is RangeRule.START_TO_DATA_END:
            start, end = floor, last or self.today
        else:
            start, end = floor, self.master_end or self.today

        start, end = clamp_range(start, end, self.start_year, self.today)
        if start > end:
            # Every valid reading predates start_year
            return None
        return start, end

    def process(self, target: ReconstructionTarget, outcome: EntityOutcome):
        definition = self.definition
        policy = definition.policy
        context = f"{policy.name}:{target.key}"

        outcome.advance(EntityStage.PLANNING)
        weighting = self._weighting(target)
        members = [e.entity_id for e in weighting.entries] if weighting is not None else list(target.members)
        if not members:
            raise ReconstructionError(f"{context} has no member stations")

        outcome.advance(EntityStage.FETCHING)
        readings = self._fetch(target.key, members)

        outcome.advance(EntityStage.COLLAPSING)
        if definition.combine is CombineMode.WEIGHTED:
            collapsed = {
                m: collapse_daily(readings[m], zero_is_sentinel=policy.zero_is_sentinel)
                for m in members
            }
        else:
            pooled = [p for m in members for p in readings[m]]
            collapsed = {target.key: collapse_daily(pooled, zero_is_sentinel=policy.zero_is_sentinel)}

        resolved = self._resolve_range(list(collapsed.values()))
        if resolved is None:
            outcome.skip("no valid observations in range")
            self.log.warning(f"⚠️ [{context}] No valid observations from {self.start_year} on, nothing emitted")
            return
        start, end = resolved
        spine = daily_spine(start, end)
        series_by_member = {
            m: build_daily_series(values, start, end) for m, values in collapsed.items()
        }

        outcome.advance(EntityStage.INTERPOLATING)
        if definition.interpolate:
            series_by_member = {
                m: fill_gaps(
                    s,
                    window_days=self.gap_window_days,
                    zero_is_sentinel=policy.zero_is_sentinel,
                    log=self.log,
                    context=f"{context}:{m}" if weighting is not None else context
                )
                for m, s in series_by_member.items()
            }

        outcome.advance(EntityStage.AGGREGATING)
        detail = None
        if weighting is not None:
            series, station_values = aggregate_region(
                weighting,
                series_by_member,
                spine,
                all_absent=definition.all_absent,
                zero_is_sentinel=policy.zero_is_sentinel
            )
            if definition.detail_columns:
                detail = station_values.rename(
                    columns={e.entity_id: f"{e.entity_id}_{e.weight:.4f}" for e in weighting.entries}
                )
        else:
            series = series_by_member[target.key]

        outcome.advance(EntityStage.EMITTING)
        self.emit(target.key, series, detail, outcome)

    def emit(self, key: str, series: List[DailySeriesPoint], detail, outcome: EntityOutcome):
        lines = self.emitter.to_csv_lines(series, detail)
        write_series_csv(self.output_dir / f"{key}.csv", lines)
        outcome.records = len(lines) - 1

        if self.definition.persist and self.store is not None:
            rows = self.emitter.to_records(series, key)
            unwrap(self.store.replace_range({"series": self.definition.name, "sgg_cd": key}, rows))
