"""Record table normalization, date-range filtering and column cleanup."""

import logging
import re
from datetime import date, datetime
from typing import Any, Optional, Union

import pandas as pd

from ctrdata.config import ConfigurationError
from ctrdata.transform.patterns import DATE_SURVEY_FIELD, INTERNAL_FIELD_PATTERN

logger = logging.getLogger(__name__)

# Accepts 2024-01-31, 2024/01/31 and 2024:01:31
DATE_BOUND_PATTERN = re.compile(r"^\d{4}[-:/]\d{2}[-:/]\d{2}")

DateLike = Union[str, date, datetime, pd.Timestamp]


def records_to_frame(records: list[dict]) -> pd.DataFrame:
    """Build a record table from flat REDCap JSON records.

    Columns are the union of all record keys in first-seen order; rows
    missing a key get NaN.
    """
    frame = pd.DataFrame.from_records(records)
    logger.debug(f"Built table with {len(frame)} rows and {len(frame.columns)} columns")
    return frame


def concat_frames(frames: list[pd.DataFrame]) -> pd.DataFrame:
    """Stack tables, filling columns missing from some of them."""
    frames = [f for f in frames if f is not None and not f.empty]
    if not frames:
        return pd.DataFrame()
    return pd.concat(frames, ignore_index=True, sort=False)


def drop_internal_fields(
    data: pd.DataFrame,
    pattern: re.Pattern = INTERNAL_FIELD_PATTERN,
) -> pd.DataFrame:
    """Remove login, pre-CTR and REDCap bookkeeping columns."""
    dropped = [c for c in data.columns if pattern.search(c)]
    if dropped:
        logger.debug(f"Dropping {len(dropped)} internal fields", extra={"fields": dropped})
    return data.drop(columns=dropped)


def parse_date_bound(value: DateLike) -> pd.Timestamp:
    """Parse a date-range bound to a midnight timestamp.

    Raises:
        ValueError: If a string bound is not "yyyy-mm-dd"
    """
    if isinstance(value, str):
        if not DATE_BOUND_PATTERN.match(value.strip()):
            raise ValueError(f"Wrong date format '{value}'. Use 'yyyy-mm-dd'.")
        value = re.sub(r"[:/]", "-", value.strip()[:10])
    return pd.Timestamp(value).normalize()


def resolve_date_range(
    start_date: Optional[DateLike],
    end_date: Optional[DateLike],
    default_start: Optional[DateLike] = None,
) -> tuple[pd.Timestamp, pd.Timestamp]:
    """Resolve an inclusive date range, defaulting the end to today.

    Raises:
        ValueError: If the end date is before the start date
    """
    if start_date is None:
        if default_start is None:
            raise ValueError("start_date is required")
        start_date = default_start
    if end_date is None:
        end_date = pd.Timestamp.today()

    start = parse_date_bound(start_date)
    end = parse_date_bound(end_date)

    if end < start:
        raise ValueError(f"The end date {end.date()} is before the start date {start.date()}.")

    return start, end


def filter_by_date_range(
    data: pd.DataFrame,
    start: pd.Timestamp,
    end: pd.Timestamp,
    date_field: str = DATE_SURVEY_FIELD,
) -> pd.DataFrame:
    """Keep rows whose date falls within [start, end], both inclusive by day.

    Rows without a date are dropped.
    """
    if date_field not in data.columns:
        raise ConfigurationError(f"Date column '{date_field}' not found")

    days = pd.to_datetime(data[date_field], errors="coerce").dt.normalize()
    mask = days.between(start, end)

    logger.info(
        f"Date filter kept {int(mask.sum())} of {len(data)} rows",
        extra={
            "start_date": str(start.date()),
            "end_date": str(end.date()),
            "kept_count": int(mask.sum()),
            "undated_count": int(days.isna().sum()),
        }
    )

    return data.loc[mask]


def _record_id_key(value: Any) -> tuple:
    try:
        return (0, float(value), "")
    except (TypeError, ValueError):
        return (1, 0.0, str(value))


def sort_record_ids(record_ids) -> list:
    """Sort record ids numerically, non-numeric ids last in text order."""
    return sorted(pd.unique(pd.Series(list(record_ids), dtype=object)), key=_record_id_key)
