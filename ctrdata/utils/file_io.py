"""Spreadsheet I/O helpers for offline CTR exports."""

import logging
import shutil
import tempfile
from pathlib import Path
from typing import Union

import pandas as pd

logger = logging.getLogger(__name__)

ANON_FILENAME = "data_anon.xlsx"


def create_path(full_path: Union[str, Path]) -> Path:
    """Create a directory recursively if it doesn't exist."""
    full_path = Path(full_path)
    full_path.mkdir(parents=True, exist_ok=True)
    return full_path


def get_month_path(base_path: Union[str, Path], month: str) -> Path:
    """Folder holding one month of anonymized data.

    Pattern: base_path/<month>/ where month is "YYYY/MM" or "YYYY-MM".
    """
    return Path(base_path).joinpath(*str(month).replace("-", "/").split("/"))


def temp_loader(path: Union[str, Path], **kwargs) -> pd.DataFrame:
    """Read an Excel file through a temporary copy.

    Synced folders (Box, OneDrive) often lock open files or exceed path
    length limits; reading a local copy avoids both.

    Args:
        path: Workbook to read
        **kwargs: Forwarded to pandas.read_excel (sheet_name, dtype, ...)

    Returns:
        The sheet as a DataFrame
    """
    path = Path(path)
    logger.info(f"Reading {path}", extra={"file_path": str(path)})

    with tempfile.TemporaryDirectory() as tmp_dir:
        temp_path = Path(tmp_dir) / "copy.xlsx"
        shutil.copyfile(path, temp_path)
        data = pd.read_excel(temp_path, **kwargs)

    return data


def temp_uploader(data: pd.DataFrame, path: Union[str, Path]) -> dict:
    """Write a DataFrame to Excel through a temporary file.

    Args:
        data: Table to save
        path: Destination workbook (overwritten)

    Returns:
        Metadata dict with file info
    """
    path = Path(path)
    create_path(path.parent)

    with tempfile.TemporaryDirectory() as tmp_dir:
        temp_path = Path(tmp_dir) / "upload.xlsx"
        data.to_excel(temp_path, index=False, engine="openpyxl")
        shutil.copyfile(temp_path, path)

    metadata = {
        "file_path": str(path),
        "record_count": len(data),
        "file_size_bytes": path.stat().st_size,
    }

    logger.info(f"Wrote {len(data)} records to {path}", extra=metadata)

    return metadata


def split_save(
    data: pd.DataFrame,
    path: Union[str, Path],
    month_var: str = "year_mon",
) -> dict:
    """Save one month of anonymized data to <path>/<month>/data_anon.xlsx.

    The month column itself is not written.

    Args:
        data: Table holding exactly one month
        path: Base folder of the monthly tree
        month_var: Column with the year-month value

    Returns:
        Metadata dict with file info

    Raises:
        ValueError: If the table spans zero or several months
    """
    months = data[month_var].dropna().unique()
    if len(months) != 1:
        raise ValueError(f"Month must be unique, found {len(months)} values in '{month_var}'")

    month = str(months[0])
    month_path = create_path(get_month_path(path, month))

    metadata = temp_uploader(data.drop(columns=[month_var]), month_path / ANON_FILENAME)
    logger.info(f"Anonymized data saved for {month}", extra={"month": month})

    return metadata
