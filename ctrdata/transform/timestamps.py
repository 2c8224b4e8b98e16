"""Survey timestamp reconciliation.

REDCap survey timestamps are exported as ``<form>_timestamp`` and, for forms
that were migrated or re-opened, an archived copy ``<form>_timestamp_arch``.
Reconciliation keeps the live value when present, falls back to the archived
one otherwise, and derives ``date_survey``: the most recent timestamp known
for the record.
"""

import logging
from typing import Iterable

import pandas as pd

from ctrdata.config import ConfigurationError
from ctrdata.transform.patterns import (
    DATE_SURVEY_FIELD,
    RECORD_ID_FIELD,
    TIMESTAMP_FORMAT,
    archival_name,
    is_archival_timestamp,
    is_primary_timestamp,
)

logger = logging.getLogger(__name__)


class MissingArchivalColumnError(ConfigurationError):
    """Raised when a primary timestamp field has no archival column."""

    def __init__(self, field_name: str):
        self.field_name = field_name
        self.archival_field = archival_name(field_name)
        super().__init__(
            f"Timestamp field '{field_name}' has no archival column "
            f"'{self.archival_field}'"
        )


def discover_timestamp_fields(columns: Iterable[str]) -> tuple[list[str], list[str]]:
    """Find primary timestamp fields and their archival counterparts.

    Args:
        columns: Column names of a record table

    Returns:
        Tuple of (primary_fields, archival_fields), paired by position

    Raises:
        MissingArchivalColumnError: If a primary field has no "<name>_arch" column
        ConfigurationError: If an archival column pairs with no primary field
    """
    columns = list(columns)
    primaries = [c for c in columns if is_primary_timestamp(c)]

    for primary in primaries:
        if archival_name(primary) not in columns:
            raise MissingArchivalColumnError(primary)

    archivals = [archival_name(p) for p in primaries]
    orphans = [c for c in columns if is_archival_timestamp(c) and c not in archivals]
    if orphans:
        raise ConfigurationError(
            f"Timestamp columns not pairable with a primary field: {orphans}"
        )

    return primaries, archivals


def parse_timestamp_column(values: pd.Series) -> pd.Series:
    """Parse "YYYY-MM-DD HH:MM:SS" text into timestamps.

    Blank cells become NaT silently; non-blank cells that fail to parse
    become NaT and are reported with a warning.
    """
    if pd.api.types.is_datetime64_any_dtype(values):
        return values

    text = values.where(values.notna(), "").astype(str).str.strip()
    parsed = pd.to_datetime(text, format=TIMESTAMP_FORMAT, errors="coerce")

    failed = parsed.isna() & (text != "")
    if failed.any():
        logger.warning(
            f"Could not parse {int(failed.sum())} timestamp values in {values.name}",
            extra={
                "field": values.name,
                "failed_count": int(failed.sum()),
                "examples": text[failed].unique()[:3].tolist(),
            }
        )

    return parsed


def reconcile_timestamps(
    data: pd.DataFrame,
    record_id: str = RECORD_ID_FIELD,
) -> pd.DataFrame:
    """Reconcile survey timestamps and derive ``date_survey``.

    Args:
        data: Flat REDCap record table
        record_id: Name of the row identifier column

    Returns:
        New table where each primary timestamp holds its live value or, when
        blank, its archived value; archival columns are dropped and the
        columns start with ``record_id``, ``date_survey``.

    Raises:
        ConfigurationError: If ``record_id`` is missing or timestamp
            families cannot be paired

    Example:
        >>> df = pd.DataFrame({
        ...     "record_id": ["1"],
        ...     "visit_timestamp": [""],
        ...     "visit_timestamp_arch": ["2024-01-06 09:00:00"],
        ... })
        >>> reconcile_timestamps(df).columns.tolist()
        ['record_id', 'date_survey', 'visit_timestamp']
    """
    if record_id not in data.columns:
        raise ConfigurationError(f"Row identifier column '{record_id}' not found")

    primaries, archivals = discover_timestamp_fields(data.columns)

    result = data.copy()

    for name in primaries + archivals:
        result[name] = parse_timestamp_column(result[name])

    for primary, archival in zip(primaries, archivals):
        result[primary] = result[primary].fillna(result[archival])

    if primaries:
        result[DATE_SURVEY_FIELD] = pd.to_datetime(
            result[primaries + archivals].max(axis=1)
        )
    else:
        logger.warning("No timestamp fields found, date_survey left empty")
        result[DATE_SURVEY_FIELD] = pd.Series(
            pd.NaT, index=result.index, dtype="datetime64[ns]"
        )

    result = result.drop(columns=archivals)

    leading = [record_id, DATE_SURVEY_FIELD]
    result = result.reindex(columns=leading + [c for c in result.columns if c not in leading])

    missing_count = int(result[DATE_SURVEY_FIELD].isna().sum())
    logger.info(
        "Timestamp reconciliation complete",
        extra={
            "row_count": len(result),
            "timestamp_fields": len(primaries),
            "missing_date_survey": missing_count,
        }
    )

    return result
