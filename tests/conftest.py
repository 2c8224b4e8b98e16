"""Pytest configuration and fixtures."""

import pandas as pd
import pytest

from ctrdata.clients.base import RequestMetrics
from ctrdata.config import RedcapConfig


PROJECT_RECORDS = [
    {
        "record_id": "1",
        "redcap_survey_identifier": "",
        "unique_ctr_id": "HRL001",
        "intake_timestamp": "2024-01-05 10:00:00",
        "intake_timestamp_arch": "",
        "sex": "1",
        "injury___1": "1",
        "injury___2": "0",
        "ctr_login_user": "nurse1",
    },
    {
        "record_id": "2",
        "redcap_survey_identifier": "",
        "unique_ctr_id": "HRL002",
        "intake_timestamp": "",
        "intake_timestamp_arch": "2024-02-10 08:00:00",
        "sex": "2",
        "injury___1": "1",
        "injury___2": "1",
        "ctr_login_user": "nurse2",
    },
    {
        "record_id": "10",
        "redcap_survey_identifier": "",
        "unique_ctr_id": "HRL010",
        "intake_timestamp": "2023-05-01 00:00:00",
        "intake_timestamp_arch": "",
        "sex": "1",
        "injury___1": "0",
        "injury___2": "0",
        "ctr_login_user": "nurse1",
    },
]

PROJECT_METADATA = [
    {"field_name": "record_id", "field_type": "text", "select_choices_or_calculations": ""},
    {"field_name": "sex", "field_type": "radio", "select_choices_or_calculations": "1, Male / Homme | 2, Female / Femme"},
    {"field_name": "injury", "field_type": "checkbox", "select_choices_or_calculations": "1, Head | 2, Neck"},
    {"field_name": "ctr_login_user", "field_type": "radio", "select_choices_or_calculations": "1, Yes | 0, No"},
    {"field_name": "bmi", "field_type": "calc", "select_choices_or_calculations": "[weight]/([height]*[height])"},
]


class FakeRedcapClient:
    """In-memory stand-in for RedcapClient serving PROJECT_RECORDS."""

    def __init__(self, records=None, metadata=None):
        self.records = records if records is not None else PROJECT_RECORDS
        self.metadata = metadata if metadata is not None else PROJECT_METADATA
        self.config = RedcapConfig(api_url="https://redcap.example.org/api/", api_token="TOKEN")
        self.base_url = self.config.api_url.rstrip("/")
        self.metrics = RequestMetrics()
        self.calls = []

    def timestamp_fields(self, record_id=1):
        return [name for name in self.records[0] if name.endswith("timestamp")] if self.records else []

    def export_records(self, fields=None, records=None, export_survey_fields=True, **kwargs):
        self.calls.append({"fields": fields, "records": records, **kwargs})
        rows = self.records
        if records is not None:
            wanted = {str(r) for r in records}
            rows = [r for r in rows if r["record_id"] in wanted]
        if fields is not None:
            rows = [
                {
                    k: v for k, v in r.items()
                    if k in fields or (export_survey_fields and k.endswith("timestamp"))
                }
                for r in rows
            ]
        return [dict(r) for r in rows]

    def export_records_in_blocks(self, record_ids, block_size=None, **kwargs):
        return self.export_records(records=record_ids, **kwargs)

    def export_metadata(self, fields=None):
        return list(self.metadata)


@pytest.fixture
def fake_client():
    """Fake REDCap client over a three-record project."""
    return FakeRedcapClient()


@pytest.fixture
def timestamp_table():
    """Export with one timestamp family, live and archived values."""
    return pd.DataFrame(
        [
            {"record_id": 1, "visit_timestamp": "2024-01-05 10:00:00", "visit_timestamp_arch": ""},
            {"record_id": 2, "visit_timestamp": "", "visit_timestamp_arch": "2024-01-06 09:00:00"},
        ]
    )


@pytest.fixture
def two_family_table():
    """Export with two timestamp families and non-timestamp fields."""
    return pd.DataFrame(
        {
            "age": ["34", "51", "27"],
            "record_id": ["1", "2", "3"],
            "intake_timestamp": ["2024-03-01 08:00:00", "", ""],
            "intake_timestamp_arch": ["2023-12-31 23:59:59", "2024-03-02 10:00:00", ""],
            "followup_timestamp": ["2024-04-01 12:00:00", "", "[not completed]"],
            "followup_timestamp_arch": ["", "2024-02-01 00:00:00", None],
            "sex": ["1", "2", "1"],
        }
    )


@pytest.fixture
def checkbox_table():
    """Export with two checkbox families."""
    return pd.DataFrame(
        {
            "record_id": ["1", "2", "3"],
            "a___1": [1, 0, 0],
            "a___2": [0, 0, 1],
            "a___3": [1, 0, 1],
            "comment": ["x", "y", "z"],
            "b___yes": ["1", "0", "1"],
            "b___no": ["0", "1", "0"],
        }
    )


@pytest.fixture
def project_metadata():
    """Data dictionary of the fake project."""
    return list(PROJECT_METADATA)
