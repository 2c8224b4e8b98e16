"""Load anonymized CTR exports saved in a synced Box folder.

Folder layout::

    <box_root>/DMAC/Data Anonymized/YYYY/MM/data_anon.xlsx
    <box_root>/DMAC/Data Anonymized/IDs/*.xlsx
"""

import logging
from pathlib import Path
from typing import Optional, Union

import pandas as pd

from ctrdata.config import ConfigurationError
from ctrdata.transform.normalize import (
    DateLike,
    concat_frames,
    filter_by_date_range,
    parse_date_bound,
)
from ctrdata.utils.file_io import ANON_FILENAME, get_month_path, temp_loader

logger = logging.getLogger(__name__)

ANON_SUBDIR = Path("DMAC") / "Data Anonymized"
IDS_SUBDIR = ANON_SUBDIR / "IDs"


def month_folders(start: pd.Timestamp, end: pd.Timestamp) -> list[str]:
    """List "YYYY/MM" folders covering the months from start to end."""
    return [
        f"{period.year}/{period.month:02d}"
        for period in pd.period_range(start.to_period("M"), end.to_period("M"), freq="M")
    ]


def load_ctr_data(
    box_root: Union[str, Path] = ".",
    start_date: Optional[DateLike] = None,
    end_date: Optional[DateLike] = None,
) -> pd.DataFrame:
    """Load anonymized monthly exports, optionally restricted to a date range.

    Without dates every ``data_anon.xlsx`` below the anonymized folder is
    loaded. With dates only the month folders in range are read, and rows
    are then filtered on ``date_survey`` (inclusive).

    Args:
        box_root: Root of the synced Box folder
        start_date: Inclusive start, "yyyy-mm-dd"
        end_date: Inclusive end, "yyyy-mm-dd"

    Returns:
        Combined table

    Raises:
        ValueError: On a wrong date format, a single missing bound, or
            start after end
    """
    base_path = Path(box_root) / ANON_SUBDIR

    if start_date is None and end_date is None:
        files = sorted(base_path.rglob(ANON_FILENAME))
        logger.info(f"Loading all {len(files)} monthly files", extra={"base_path": str(base_path)})
        return concat_frames([temp_loader(f) for f in files])

    if start_date is None or end_date is None:
        raise ValueError("Both start_date and end_date are required to filter by date")

    start = parse_date_bound(start_date)
    end = parse_date_bound(end_date)
    if start > end:
        raise ValueError("Start date cannot be greater than end date.")

    frames = []
    for month in month_folders(start, end):
        file_path = get_month_path(base_path, month) / ANON_FILENAME
        if not file_path.exists():
            logger.warning(f"No anonymized file for {month}", extra={"file_path": str(file_path)})
            continue
        frames.append(temp_loader(file_path))

    data = concat_frames(frames)
    if data.empty:
        return data

    return filter_by_date_range(data, start, end).reset_index(drop=True)


def reidentify(box_path: Union[str, Path], data: pd.DataFrame) -> pd.DataFrame:
    """Reattach ``record_id`` and ``unique_ctr_id`` to de-identified data.

    ID maps (``id``, ``record_id``, ``unique_ctr_id``) are read from every
    workbook in the IDs folder and left-joined on ``id``. The two
    identifiers are placed right after ``id``.

    Raises:
        ConfigurationError: If ``data`` has no ``id`` column
    """
    if "id" not in data.columns:
        raise ConfigurationError("Column 'id' is required to re-identify records")

    ids_path = Path(box_path) / IDS_SUBDIR
    id_files = sorted(p for p in ids_path.iterdir() if p.is_file())
    ids_map = concat_frames([temp_loader(f) for f in id_files])

    if ids_map.empty:
        logger.warning("No ID maps found", extra={"ids_path": str(ids_path)})
        return data

    ids_map = ids_map.loc[ids_map["id"].isin(data["id"])].drop_duplicates(subset="id")
    merged = data.merge(ids_map, on="id", how="left")

    identifiers = [c for c in ("record_id", "unique_ctr_id") if c in ids_map.columns]
    rest = [c for c in merged.columns if c not in identifiers]
    position = rest.index("id") + 1
    order = rest[:position] + identifiers + rest[position:]

    logger.info(
        f"Re-identified {int(merged[identifiers[0]].notna().sum()) if identifiers else 0} records",
        extra={"row_count": len(merged)}
    )

    return merged[order]
