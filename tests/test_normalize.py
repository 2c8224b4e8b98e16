"""Tests for record table normalization helpers."""

from datetime import date

import pandas as pd
import pytest

from ctrdata.config import ConfigurationError
from ctrdata.transform.normalize import (
    concat_frames,
    drop_internal_fields,
    filter_by_date_range,
    parse_date_bound,
    records_to_frame,
    resolve_date_range,
    sort_record_ids,
)


class TestRecordsToFrame:
    """Tests for records_to_frame."""

    def test_union_of_keys(self):
        """Test records with different keys share one table."""
        frame = records_to_frame([{"record_id": "1", "a": "x"}, {"record_id": "2", "b": "y"}])

        assert frame.columns.tolist() == ["record_id", "a", "b"]
        assert pd.isna(frame.loc[1, "a"])

    def test_empty(self):
        """Test no records give an empty table."""
        assert records_to_frame([]).empty


class TestConcatFrames:
    """Tests for concat_frames."""

    def test_fills_missing_columns(self):
        """Test columns missing from one table are filled."""
        result = concat_frames([pd.DataFrame({"a": [1]}), pd.DataFrame({"a": [2], "b": [3]})])

        assert result["a"].tolist() == [1, 2]
        assert pd.isna(result.loc[0, "b"])

    def test_nothing_to_concat(self):
        """Test empty input gives an empty table."""
        assert concat_frames([]).empty
        assert concat_frames([pd.DataFrame()]).empty


class TestDropInternalFields:
    """Tests for drop_internal_fields."""

    def test_drops_bookkeeping_columns(self):
        """Test login, pre-CTR and REDCap columns are removed."""
        data = pd.DataFrame(columns=[
            "record_id", "redcap_survey_identifier", "ctr_login_user",
            "prectr_consent", "unique_ctr_id", "age",
        ])

        result = drop_internal_fields(data)
        assert result.columns.tolist() == ["record_id", "unique_ctr_id", "age"]


class TestDateBounds:
    """Tests for date bound parsing and range resolution."""

    @pytest.mark.parametrize("value", ["2024-01-31", "2024/01/31", "2024:01:31", date(2024, 1, 31)])
    def test_accepted_formats(self, value):
        """Test accepted date bound formats."""
        assert parse_date_bound(value) == pd.Timestamp("2024-01-31")

    def test_time_part_dropped(self):
        """Test bounds are normalized to midnight."""
        assert parse_date_bound(pd.Timestamp("2024-01-31 13:45")) == pd.Timestamp("2024-01-31")

    def test_wrong_format(self):
        """Test day-first dates are rejected."""
        with pytest.raises(ValueError, match="Wrong date format"):
            parse_date_bound("31-01-2024")

    def test_end_defaults_to_today(self):
        """Test the end of the range defaults to today."""
        start, end = resolve_date_range("2024-01-01", None)

        assert start == pd.Timestamp("2024-01-01")
        assert end == pd.Timestamp.today().normalize()

    def test_default_start(self):
        """Test the start falls back to the given default."""
        start, _ = resolve_date_range(None, "2024-01-01", default_start="2022-06-09")
        assert start == pd.Timestamp("2022-06-09")

    def test_start_required_without_default(self):
        """Test a missing start without default is rejected."""
        with pytest.raises(ValueError, match="start_date"):
            resolve_date_range(None, "2024-01-01")

    def test_inverted_range(self):
        """Test the end cannot be before the start."""
        with pytest.raises(ValueError, match="before the start date"):
            resolve_date_range("2024-02-01", "2024-01-31")


class TestFilterByDateRange:
    """Tests for filter_by_date_range."""

    @pytest.fixture
    def dated(self):
        return pd.DataFrame({
            "record_id": ["1", "2", "3", "4"],
            "date_survey": pd.to_datetime([
                "2024-01-01 00:00:00", "2024-01-31 23:59:59", "2024-02-01 00:00:00", None,
            ]),
        })

    def test_inclusive_by_day(self, dated):
        """Test both bounds are whole days and undated rows dropped."""
        result = filter_by_date_range(dated, pd.Timestamp("2024-01-01"), pd.Timestamp("2024-01-31"))
        assert result["record_id"].tolist() == ["1", "2"]

    def test_missing_date_column(self, dated):
        """Test a missing date column is a configuration error."""
        with pytest.raises(ConfigurationError, match="visit_date"):
            filter_by_date_range(dated, pd.Timestamp("2024-01-01"), pd.Timestamp("2024-01-31"), "visit_date")


class TestSortRecordIds:
    """Tests for sort_record_ids."""

    def test_numeric_order_and_dedupe(self):
        """Test ids sort numerically and duplicates collapse."""
        assert sort_record_ids(["10", "2", "1", "2"]) == ["1", "2", "10"]

    def test_non_numeric_last(self):
        """Test non-numeric ids follow numeric ones."""
        assert sort_record_ids(["b-1", "3", "a-2"]) == ["3", "a-2", "b-1"]
