"""Export workflows: REDCap API -> reconciled record tables.

Every workflow follows the same shape: select record ids with a light
export, fetch the full records, then run the shared transforms
(timestamp reconciliation, internal-field cleanup and, where asked,
checkbox regrouping and labeling).
"""

import logging
from typing import Callable, Iterable, Optional

import pandas as pd

from ctrdata.clients.redcap_client import RedcapClient
from ctrdata.transform.checkboxes import regroup_checkboxes
from ctrdata.transform.labels import get_metadata, label_choice_fields, relabel_values
from ctrdata.transform.normalize import (
    DateLike,
    drop_internal_fields,
    filter_by_date_range,
    records_to_frame,
    resolve_date_range,
    sort_record_ids,
)
from ctrdata.transform.patterns import RECORD_ID_FIELD, archival_name
from ctrdata.transform.timestamps import reconcile_timestamps

logger = logging.getLogger(__name__)


def _full_record_options(raw_or_label: str = "raw") -> dict:
    return {
        "raw_or_label": raw_or_label,
        "raw_or_label_headers": "raw",
        "export_checkbox_label": False,
        "export_survey_fields": True,
    }


def _finalize(records: list[dict], record_id: str) -> pd.DataFrame:
    """Shared post-processing of exported full records."""
    data = records_to_frame(records)
    data = reconcile_timestamps(data, record_id=record_id)
    return drop_internal_fields(data)


# ============================================
# Record selection
# ============================================

def select_record_ids_between(
    client: RedcapClient,
    record_id: str = RECORD_ID_FIELD,
    start_date: Optional[DateLike] = None,
    end_date: Optional[DateLike] = None,
) -> list:
    """Record ids whose ``date_survey`` falls within a date range.

    Only the record id and archival timestamp fields are exported (survey
    timestamps come along with ``exportSurveyFields``), then reconciled.

    Args:
        client: REDCap client
        record_id: Name of the record id field
        start_date: Inclusive start, "yyyy-mm-dd" (defaults to config.origin_date)
        end_date: Inclusive end, "yyyy-mm-dd" (defaults to today)

    Returns:
        Matching record ids, sorted numerically

    Raises:
        ValueError: If the end date is before the start date
    """
    start, end = resolve_date_range(start_date, end_date, default_start=client.config.origin_date)

    date_fields = client.timestamp_fields()
    fields = [record_id] + [archival_name(name) for name in date_fields]

    data = records_to_frame(client.export_records(fields=fields, export_survey_fields=True))
    if data.empty:
        logger.warning("No records returned while selecting by date")
        return []

    data = reconcile_timestamps(data, record_id=record_id)
    selected = filter_by_date_range(data, start, end)

    return sort_record_ids(selected[record_id])


def _match_record_ids(
    client: RedcapClient,
    field_name: str,
    matcher: Callable[[pd.Series], pd.Series],
    record_id: str,
) -> list:
    """Record ids whose ``field_name`` value satisfies ``matcher``."""
    data = records_to_frame(
        client.export_records(fields=[record_id, field_name], export_survey_fields=True)
    )
    if data.empty or field_name not in data.columns:
        return []

    values = data[field_name].where(data[field_name].notna(), "").astype(str)
    matched = data.loc[matcher(values).to_numpy(dtype=bool), record_id]

    return list(pd.unique(matched))


# ============================================
# Date-range exports
# ============================================

def _export_between(
    client: RedcapClient,
    record_id: str,
    start_date: Optional[DateLike],
    end_date: Optional[DateLike],
    raw_or_label: str = "raw",
    groups: bool = False,
) -> pd.DataFrame:
    record_ids = select_record_ids_between(client, record_id, start_date, end_date)
    if not record_ids:
        logger.warning("No records found in the requested date range")
        return pd.DataFrame()

    logger.info(
        f"Starting the extraction of {len(record_ids)} records",
        extra={"record_count": len(record_ids), "raw_or_label": raw_or_label}
    )

    records = client.export_records_in_blocks(record_ids, **_full_record_options(raw_or_label))
    data = _finalize(records, record_id)

    if groups:
        data = regroup_checkboxes(data)

    return data


def export_records_between(
    client: RedcapClient,
    record_id: str = RECORD_ID_FIELD,
    start_date: Optional[DateLike] = None,
    end_date: Optional[DateLike] = None,
) -> pd.DataFrame:
    """Export all records whose survey date falls between two dates.

    Without dates the whole project is exported (from the origin date up to
    today), which can take several minutes on large projects.

    Args:
        client: REDCap client
        record_id: Name of the record id field
        start_date: Inclusive start, "yyyy-mm-dd"
        end_date: Inclusive end, "yyyy-mm-dd"

    Returns:
        Reconciled raw records (empty table when nothing matches)
    """
    return _export_between(client, record_id, start_date, end_date)


def export_records_between_with_groups(
    client: RedcapClient,
    record_id: str = RECORD_ID_FIELD,
    start_date: Optional[DateLike] = None,
    end_date: Optional[DateLike] = None,
) -> pd.DataFrame:
    """Like :func:`export_records_between`, with checkbox fields regrouped."""
    return _export_between(client, record_id, start_date, end_date, groups=True)


def export_records_between_label(
    client: RedcapClient,
    start_date: DateLike,
    end_date: DateLike,
    record_id: str = RECORD_ID_FIELD,
) -> pd.DataFrame:
    """Like :func:`export_records_between`, with values exported as labels.

    Both dates are required.
    """
    return _export_between(client, record_id, start_date, end_date, raw_or_label="label")


# ============================================
# Single / multiple record exports
# ============================================

def export_single_record(
    client: RedcapClient,
    field_name: str,
    field_value: str,
    record_id: str = RECORD_ID_FIELD,
) -> Optional[pd.DataFrame]:
    """Export the record(s) whose ``field_name`` matches ``field_value``.

    ``field_value`` is a regular expression searched within the field, so a
    partial value matches.

    Returns:
        Reconciled full record(s), or None when nothing matches
    """
    record_ids = _match_record_ids(
        client,
        field_name,
        lambda values: values.str.contains(field_value, regex=True),
        record_id,
    )
    if not record_ids:
        logger.warning(
            "No record found with the specified field value",
            extra={"field_name": field_name, "field_value": field_value}
        )
        return None

    logger.info(
        f"Starting the extraction of record {', '.join(map(str, record_ids))}",
        extra={"record_ids": record_ids}
    )

    records = client.export_records(records=record_ids, **_full_record_options())
    return _finalize(records, record_id)


def export_single_record_with_groups(
    client: RedcapClient,
    field_name: str,
    field_value: str,
    record_id: str = RECORD_ID_FIELD,
) -> Optional[pd.DataFrame]:
    """Like :func:`export_single_record`, with checkbox fields regrouped."""
    data = export_single_record(client, field_name, field_value, record_id)
    if data is None:
        return None
    return regroup_checkboxes(data)


def export_multiple_records_with_groups(
    client: RedcapClient,
    field_name: str,
    field_values: Iterable,
    record_id: str = RECORD_ID_FIELD,
) -> Optional[pd.DataFrame]:
    """Export every record whose ``field_name`` equals one of ``field_values``.

    Returns:
        Reconciled full records with checkbox fields regrouped, or None when
        nothing matches
    """
    wanted = {str(v) for v in field_values}
    record_ids = _match_record_ids(
        client,
        field_name,
        lambda values: values.isin(wanted),
        record_id,
    )
    if not record_ids:
        logger.warning(
            "No records found with the specified field values",
            extra={"field_name": field_name, "value_count": len(wanted)}
        )
        return None

    logger.info(f"Starting the extraction of {len(record_ids)} records")

    records = client.export_records(records=record_ids, **_full_record_options())
    return regroup_checkboxes(_finalize(records, record_id))


def export_single_record_labelled(
    client: RedcapClient,
    field_name: str,
    field_value: str,
    meta: str = "online",
    path: Optional[str] = None,
    lang: Optional[str] = None,
    sheet=2,
    record_id: str = RECORD_ID_FIELD,
) -> Optional[pd.DataFrame]:
    """Export one record and replace choice codes with labels.

    Args:
        client: REDCap client
        field_name: Field to search (e.g. "unique_ctr_id")
        field_value: Pattern searched within ``field_name``
        meta: "online" (live metadata) or "offline" (data dictionary workbook)
        path: Data dictionary workbook, offline mode
        lang: Label column ("english" or "french"), offline mode
        sheet: Sheet holding the choices, offline mode (0-based index or name)
        record_id: Name of the record id field

    Returns:
        Labeled record(s), or None when nothing matches

    Raises:
        ValueError: On unknown ``meta`` or missing offline arguments
    """
    if meta == "online":
        metadata = client.export_metadata()
        data = export_single_record(client, field_name, field_value, record_id)
        if data is None:
            return None
        return label_choice_fields(data, metadata)

    if meta == "offline":
        if path is None or lang is None:
            raise ValueError(
                "Please set the data dictionary path and language when using offline mode"
            )
        choice_tables = get_metadata(mode="offline", path=path, sheet=sheet)
        data = export_single_record(client, field_name, field_value, record_id)
        if data is None:
            return None
        return relabel_values(data, choice_tables, lang=lang)

    raise ValueError(f"Unknown metadata mode '{meta}', use 'online' or 'offline'")
