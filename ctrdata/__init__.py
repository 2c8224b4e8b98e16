"""Clinical-trial registry (CTR) data extraction from REDCap.

Exports records through the REDCap API, reconciles survey timestamps,
regroups checkbox dummies and relabels choice codes.
"""

from .clients import RedcapApiError, RedcapClient
from .config import ConfigurationError, RedcapConfig
from .exports import (
    export_multiple_records_with_groups,
    export_records_between,
    export_records_between_label,
    export_records_between_with_groups,
    export_single_record,
    export_single_record_labelled,
    export_single_record_with_groups,
    select_record_ids_between,
)
from .loader import load_ctr_data, reidentify
from .transform import (
    MissingArchivalColumnError,
    get_metadata,
    label_choice_fields,
    reconcile_timestamps,
    regroup_checkboxes,
    relabel_values,
)

__version__ = "0.1.0"

__all__ = [
    "RedcapConfig",
    "ConfigurationError",
    "RedcapClient",
    "RedcapApiError",
    "reconcile_timestamps",
    "regroup_checkboxes",
    "MissingArchivalColumnError",
    "get_metadata",
    "relabel_values",
    "label_choice_fields",
    "select_record_ids_between",
    "export_records_between",
    "export_records_between_with_groups",
    "export_records_between_label",
    "export_single_record",
    "export_single_record_with_groups",
    "export_multiple_records_with_groups",
    "export_single_record_labelled",
    "load_ctr_data",
    "reidentify",
]
