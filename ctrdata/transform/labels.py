"""Choice metadata parsing and value relabeling."""

import logging
import re
from typing import Any, Optional

import pandas as pd

from ctrdata.transform.checkboxes import regroup_checkboxes
from ctrdata.utils.file_io import temp_loader

logger = logging.getLogger(__name__)

# Field types whose select_choices_or_calculations holds "code, label" pairs
CHOICE_FIELD_TYPES = ("radio", "dropdown", "checkbox")

DEFAULT_EXCLUDE = "ctr|login|wave"

# Fields never relabeled when labeling a single exported record
LABEL_SKIP_PATTERN = re.compile(r"login|(^|_)id(_|$)|timestamp")


def _squish(text: str) -> str:
    return " ".join(str(text).split())


def _code_key(value) -> str:
    """Lookup key of a choice code; 1.0 read from a spreadsheet matches "1"."""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip().lower()


def parse_choices(choice_string: Optional[str]) -> dict[str, str]:
    """Parse a REDCap choices string into a code -> label mapping.

    Options are separated by "|" and each option is split on its first
    comma only, so labels may contain commas.

    Example:
        >>> parse_choices("1, Yes | 2, No, never | 3,Unknown")
        {'1': 'Yes', '2': 'No, never', '3': 'Unknown'}
    """
    if choice_string is None or pd.isna(choice_string) or not str(choice_string).strip():
        return {}

    choices = {}
    for option in str(choice_string).split("|"):
        option = option.strip()
        if not option:
            continue
        code, sep, label = option.partition(",")
        code = code.strip()
        choices[code] = label.strip() if sep else code
    return choices


def split_bilingual_label(label: str) -> tuple[str, str]:
    """Split "English / Français" labels into (english, french).

    Labels without a slash fall back to comma-separated halves, and to the
    whole label for both languages when there is neither.
    """
    if "/" in label:
        return _squish(label.split("/", 1)[0]), _squish(label.rsplit("/", 1)[1])
    return _squish(label.split(",", 1)[0]), _squish(label.rsplit(",", 1)[-1])


def build_choice_tables(
    metadata: list[dict],
    exclude: str = DEFAULT_EXCLUDE,
) -> dict[str, pd.DataFrame]:
    """Build one value/english/french table per choice field.

    Args:
        metadata: REDCap data dictionary (one dict per field)
        exclude: Regex of field names to leave out (case-insensitive)

    Returns:
        Mapping of field name -> DataFrame(value, english, french)
    """
    exclude_pattern = re.compile(exclude, re.IGNORECASE) if exclude else None
    tables = {}

    for item in metadata:
        name = item.get("field_name", "")
        if item.get("field_type") not in CHOICE_FIELD_TYPES:
            continue
        if exclude_pattern and exclude_pattern.search(name):
            continue

        choices = parse_choices(item.get("select_choices_or_calculations"))
        if not choices:
            continue

        rows = []
        for code, label in choices.items():
            english, french = split_bilingual_label(label)
            rows.append({"value": _squish(code), "english": english, "french": french})
        tables[name] = pd.DataFrame(rows, columns=["value", "english", "french"])

    logger.info(
        f"Built choice tables for {len(tables)} fields",
        extra={"field_count": len(tables), "exclude": exclude}
    )

    return tables


def get_metadata(
    client=None,
    mode: str = "online",
    exclude: str = DEFAULT_EXCLUDE,
    path: Optional[str] = None,
    sheet: Any = None,
) -> dict[str, pd.DataFrame]:
    """Load choice tables from a live project or an offline data dictionary.

    Args:
        client: RedcapClient, required in online mode
        mode: "online" or "offline"
        exclude: Regex of field names to leave out (online mode)
        path: Data dictionary workbook (offline mode)
        sheet: Sheet name or index of the choices sheet (offline mode)

    Returns:
        Mapping of field name -> choice table

    Raises:
        ValueError: On unknown mode or missing offline arguments
    """
    if mode == "online":
        if client is None:
            raise ValueError("A REDCap client is required in online mode")
        return build_choice_tables(client.export_metadata(), exclude=exclude)

    if mode == "offline":
        if path is None or sheet is None:
            raise ValueError(
                "Please set the data dictionary path and sheet when using offline mode"
            )
        dictionary = temp_loader(path, sheet_name=sheet, dtype={"value": str})
        return {
            str(variable): group.reset_index(drop=True)
            for variable, group in dictionary.groupby("variable", sort=False)
        }

    raise ValueError(f"Unknown metadata mode '{mode}', use 'online' or 'offline'")


def relabel_values(
    data: pd.DataFrame,
    choice_tables: dict[str, pd.DataFrame],
    lang: str = "english",
) -> pd.DataFrame:
    """Replace raw codes with labels in every column that has a choice table.

    Codes are matched as whole tokens, case-insensitively, so grouped
    checkbox values such as "1,3" become "Yes,Other".

    Args:
        data: Record table
        choice_tables: Mapping of field -> table with "value" and ``lang`` columns
        lang: Label column to use ("english" or "french")

    Returns:
        New relabeled table
    """
    result = data.copy()

    for name, table in choice_tables.items():
        if name not in result.columns:
            continue
        if lang not in table.columns:
            raise ValueError(f"Choice table for '{name}' has no '{lang}' column")

        mapping = {
            _code_key(value): str(label)
            for value, label in zip(table["value"], table[lang])
            if pd.notna(value) and pd.notna(label)
        }
        if not mapping:
            continue

        alternatives = "|".join(
            re.escape(code) for code in sorted(mapping, key=len, reverse=True)
        )
        pattern = re.compile(rf"(?<!\w)(?:{alternatives})(?!\w)", re.IGNORECASE)

        def _replace(cell, pattern=pattern, mapping=mapping):
            if pd.isna(cell):
                return cell
            return pattern.sub(lambda m: mapping[m.group(0).lower()], str(cell))

        logger.debug(f"Labelling values of {name}")
        result[name] = result[name].map(_replace)

    return result


def label_choice_fields(data: pd.DataFrame, metadata: list[dict]) -> pd.DataFrame:
    """Label radio and checkbox fields of an exported record table.

    Radio codes are replaced by their label (unknown or blank codes become
    None). Checkbox families are regrouped first, then the grouped codes are
    replaced by their labels joined with ", ".

    Args:
        data: Raw record table (checkbox dummies as 0/1)
        metadata: REDCap data dictionary

    Returns:
        New labeled table
    """
    result = regroup_checkboxes(data)

    for item in metadata:
        name = item.get("field_name", "")
        field_type = item.get("field_type")
        if field_type not in ("radio", "checkbox") or LABEL_SKIP_PATTERN.search(name):
            continue
        if name not in result.columns:
            continue

        choices = parse_choices(item.get("select_choices_or_calculations"))
        if not choices:
            continue

        if field_type == "radio":
            result[name] = result[name].map(
                lambda v, choices=choices: choices.get(str(v).strip()) if pd.notna(v) else None
            )
        else:
            result[name] = result[name].map(
                lambda v, choices=choices: ", ".join(
                    choices[code.strip()]
                    for code in str(v).split(",")
                    if code.strip() in choices
                ) if pd.notna(v) else ""
            )

    return result
