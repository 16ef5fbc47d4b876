import logging
import math
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, Optional, Tuple

from drought_pipeline.schemas.raw_models import ObservationPoint

# Configure logger for data quality alerts
logger = logging.getLogger(__name__)

# Provider markers for "no observation"
MISSING_MARKERS = (-9999.0, -999.0, -9.0)


def safe_cast_float(
    value: Any,
    min_val: Optional[float] = None,
    max_val: Optional[float] = None,
    missing_markers: Iterable[float] = MISSING_MARKERS
) -> Optional[float]:
    """
    Safely casts input to float with optional range validation.

    Args:
        value: Input value (number or string).
        min_val: Optional lower bound (inclusive).
        max_val: Optional upper bound (inclusive).
        missing_markers: Values the provider uses to mean "no data".

    Returns:
        float: Casted value, or None if missing/invalid/out of bounds.
    """
    if value is None:
        return None

    if isinstance(value, str):
        value = value.strip().replace(",", "")
        if not value:
            return None

    try:
        f_val = float(value)
    except (ValueError, TypeError):
        return None

    if math.isnan(f_val) or math.isinf(f_val):
        return None
    if f_val in missing_markers:
        return None

    # Range Checks
    if min_val is not None and f_val < min_val:
        return None
    if max_val is not None and f_val > max_val:
        return None

    return f_val


def parse_observation_stamp(raw: Any) -> Optional[Tuple[date, Optional[int]]]:
    """
    Splits a provider timestamp into (calendar date, reporting hour).

    Accepted forms:
        'yyyyMMddHH' (HH may be 24), 'yyyyMMdd', 'yyyy-MM-dd',
        ISO datetimes, date and datetime objects.
    Date-only inputs return hour None. Hour 24 is kept as reported;
    moving it onto the next day is the collapse rule's job.
    """
    if raw is None:
        return None

    if isinstance(raw, datetime):
        return raw.date(), raw.hour
    if isinstance(raw, date):
        return raw, None

    text = str(raw).strip()
    try:
        if text.isdigit() and len(text) == 10:
            hour = int(text[8:])
            if hour > 24:
                return None
            return datetime.strptime(text[:8], "%Y%m%d").date(), hour
        if text.isdigit() and len(text) == 8:
            return datetime.strptime(text, "%Y%m%d").date(), None
        if len(text) == 10:
            return datetime.strptime(text, "%Y-%m-%d").date(), None
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        return parsed.date(), parsed.hour
    except ValueError:
        return None


def observation_timestamp(obs_date: date, source_hour: Optional[int]) -> datetime:
    """Naive datetime used as the collection cursor (hour 24 rolls into the next day)."""
    return datetime(obs_date.year, obs_date.month, obs_date.day) + timedelta(hours=source_hour or 0)


def build_observation(
    entity_id: str,
    raw_stamp: Any,
    raw_value: Any,
    min_val: Optional[float] = None,
    max_val: Optional[float] = None
) -> Optional[ObservationPoint]:
    """
    Builds an ObservationPoint from provider fields.
    Returns None when the timestamp is unusable; an unusable value
    becomes an absent reading so the day is still accounted for.
    """
    stamp = parse_observation_stamp(raw_stamp)
    if stamp is None:
        logger.warning(f"⚠️ [{entity_id}] Unparseable timestamp dropped: {raw_stamp!r}")
        return None

    obs_date, source_hour = stamp
    return ObservationPoint(
        entity_id=entity_id,
        obs_date=obs_date,
        source_hour=source_hour,
        value=safe_cast_float(raw_value, min_val, max_val)
    )


def clean_observation_doc(doc: Dict[str, Any]) -> Optional[ObservationPoint]:
    """
    Validates a persisted raw document (see raw_writer) back into an ObservationPoint.
    """
    entity_id = doc.get("entity_id")
    obs_date = doc.get("obs_date")
    if not entity_id or obs_date is None:
        return None

    if isinstance(obs_date, datetime):
        obs_date = obs_date.date()

    return ObservationPoint(
        entity_id=str(entity_id),
        obs_date=obs_date,
        source_hour=doc.get("source_hour"),
        value=safe_cast_float(doc.get("value"))
    )
