import logging
from datetime import date
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence

import pandas as pd

from drought_pipeline.load.emitter import SeriesEmitter
from drought_pipeline.transform.calendar import daily_spine, ordinal_day

logger = logging.getLogger(__name__)


def write_series_csv(path: Path, lines: Sequence[str]) -> Path:
    """Writes emitter lines, replacing any previous file for the entity."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    logger.info(f"💾 Wrote {max(len(lines) - 1, 0)} row(s) to {path}")
    return path


def last_csv_date(path: Path) -> Optional[date]:
    """Date of the last data row of a `yyyy,mm,dd,...` file, or None."""
    if not path.exists():
        return None
    frame = pd.read_csv(path, usecols=[0, 1, 2], dtype=int)
    if frame.empty:
        return None
    yyyy, mm, dd = frame.iloc[-1].tolist()
    return date(int(yyyy), int(mm), int(dd))


def master_end_date(directory: Path) -> Optional[date]:
    """Latest last-row date across every CSV in `directory`."""
    latest = None
    for path in sorted(directory.glob("*.csv")):
        last = last_csv_date(path)
        if last is not None and (latest is None or last > latest):
            latest = last
    return latest


def extend_discontinued(
    directory: Path,
    entity_ids: Iterable[str],
    emitter: SeriesEmitter,
    end: Optional[date] = None,
    new_file_start: Optional[date] = None
) -> Dict[str, int]:
    """
    Pads the CSVs of discontinued entities with sentinel rows up to `end`
    (default: the master end date of the directory), so every series in the
    directory covers the same range. Missing files are created with a header.

    Returns:
        entity_id -> number of rows appended.
    """
    end = end or master_end_date(directory)
    if end is None:
        logger.warning(f"⚠️ No CSVs in {directory}; nothing to extend")
        return {}

    appended: Dict[str, int] = {}
    for entity_id in entity_ids:
        path = directory / f"{entity_id}.csv"
        last = last_csv_date(path)
        if last is not None and last >= end:
            appended[entity_id] = 0
            continue

        is_new = not path.exists()
        lines: List[str] = [emitter.header()] if is_new else []
        if last is None:
            start = new_file_start or date(end.year, 1, 1)
        else:
            start = date.fromordinal(last.toordinal() + 1)

        for d in daily_spine(start, end):
            lines.append(
                f"{d.year},{d.month:02d},{d.day:02d},{ordinal_day(d)},{emitter.format_value(None)}"
            )

        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("a", encoding="utf-8") as handle:
            handle.write("\n".join(lines) + "\n")

        rows = len(lines) - (1 if is_new else 0)
        appended[entity_id] = rows
        logger.info(f"🧩 [{entity_id}] Extended with {rows} sentinel row(s) to {end}")

    return appended
