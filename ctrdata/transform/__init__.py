"""Data transformation modules.

Handles:
- Survey timestamp reconciliation
- Checkbox dummy regrouping
- Choice labeling
- Date-range filtering and column cleanup
"""

from .checkboxes import checkbox_families, regroup_checkboxes
from .labels import (
    build_choice_tables,
    get_metadata,
    label_choice_fields,
    parse_choices,
    relabel_values,
)
from .normalize import (
    concat_frames,
    drop_internal_fields,
    filter_by_date_range,
    records_to_frame,
    resolve_date_range,
    sort_record_ids,
)
from .timestamps import (
    MissingArchivalColumnError,
    discover_timestamp_fields,
    reconcile_timestamps,
)

__all__ = [
    # Timestamps
    "reconcile_timestamps",
    "discover_timestamp_fields",
    "MissingArchivalColumnError",
    # Checkboxes
    "regroup_checkboxes",
    "checkbox_families",
    # Labels
    "parse_choices",
    "build_choice_tables",
    "get_metadata",
    "relabel_values",
    "label_choice_fields",
    # Normalization
    "records_to_frame",
    "concat_frames",
    "drop_internal_fields",
    "resolve_date_range",
    "filter_by_date_range",
    "sort_record_ids",
]
