"""REDCap naming conventions used to discover column families."""

import re

RECORD_ID_FIELD = "record_id"
DATE_SURVEY_FIELD = "date_survey"

# Survey timestamps: "<form>_timestamp", archived copy "<form>_timestamp_arch"
TIMESTAMP_MARKER = "timestamp"
ARCHIVAL_SUFFIX = "_arch"
PRIMARY_TIMESTAMP_PATTERN = re.compile(r"timestamp$")
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

# Checkbox dummies: "<field>___<code>"
CHECKBOX_SEPARATOR = "___"
CHECKBOX_SELECTED_VALUES = frozenset({"1", "1.0"})

# Login, pre-CTR and REDCap bookkeeping fields removed from record exports
INTERNAL_FIELD_PATTERN = re.compile(r"prectr|ctr_login|redcap")


def is_primary_timestamp(name: str) -> bool:
    return bool(PRIMARY_TIMESTAMP_PATTERN.search(name))


def is_archival_timestamp(name: str) -> bool:
    return TIMESTAMP_MARKER in name and not is_primary_timestamp(name)


def archival_name(primary: str) -> str:
    """Name of the archival counterpart of a primary timestamp field."""
    return f"{primary}{ARCHIVAL_SUFFIX}"


def checkbox_prefix(base_field: str) -> str:
    return f"{base_field}{CHECKBOX_SEPARATOR}"
