"""Checkbox dummy regrouping."""

import logging

import pandas as pd

from ctrdata.transform.patterns import (
    CHECKBOX_SELECTED_VALUES,
    CHECKBOX_SEPARATOR,
    checkbox_prefix,
)

logger = logging.getLogger(__name__)


def checkbox_families(columns) -> dict[str, list[str]]:
    """Group checkbox dummy columns by base field.

    Args:
        columns: Column names of a record table

    Returns:
        Ordered mapping of base field -> dummy columns, in column order

    Example:
        >>> checkbox_families(["record_id", "a___1", "a___2", "b___x"])
        {'a': ['a___1', 'a___2'], 'b': ['b___x']}
    """
    families: dict[str, list[str]] = {}
    for name in columns:
        if CHECKBOX_SEPARATOR not in name:
            continue
        base = name.split(CHECKBOX_SEPARATOR, 1)[0]
        families.setdefault(base, []).append(name)
    return families


def is_selected(values: pd.DataFrame) -> pd.DataFrame:
    """Boolean mask of checked dummies (1, 1.0 or "1")."""
    text = values.where(values.notna(), "").astype(str).apply(lambda s: s.str.strip())
    return text.isin(CHECKBOX_SELECTED_VALUES)


def group_selected_codes(data: pd.DataFrame, base_field: str, dummy_columns: list[str]) -> pd.Series:
    """Comma-joined codes of the checked dummies of one family, per row."""
    prefix = checkbox_prefix(base_field)
    codes = [name[len(prefix):] for name in dummy_columns]
    mask = is_selected(data[dummy_columns]).to_numpy()

    grouped = [
        ",".join(code for code, checked in zip(codes, row) if checked)
        for row in mask
    ]
    return pd.Series(grouped, index=data.index, dtype=object)


def regroup_checkboxes(data: pd.DataFrame, drop_dummies: bool = False) -> pd.DataFrame:
    """Add one grouped column per checkbox field.

    For each ``field___code`` family, ``field`` holds the selected codes
    joined by commas in dummy-column order (``""`` when none), and is placed
    immediately before the first dummy. A pre-existing ``field`` column is
    replaced and moved, never duplicated, so the operation can be re-run.

    Args:
        data: Flat REDCap record table with raw 0/1 dummies
        drop_dummies: Remove the dummy columns after grouping

    Returns:
        New table with grouped columns
    """
    families = checkbox_families(data.columns)
    result = data.copy()

    for base_field, dummy_columns in families.items():
        grouped = group_selected_codes(result, base_field, dummy_columns)

        order = [c for c in result.columns if c != base_field]
        position = order.index(dummy_columns[0])
        order.insert(position, base_field)

        result[base_field] = grouped
        result = result.reindex(columns=order)

    if drop_dummies:
        result = result.drop(columns=[c for cols in families.values() for c in cols])

    logger.debug(
        f"Regrouped {len(families)} checkbox fields",
        extra={"checkbox_fields": list(families), "drop_dummies": drop_dummies}
    )

    return result
