"""Tests for the two-sided event integrity validator."""

import copy

import pytest

from edgeguard.data.integrity import ISSUE_TYPES, validate_integrity
from edgeguard.data.reader import FeatureTableReader
from edgeguard.errors import DataIntegrityError


def _raw_rows(make_feature_csv, rows):
    return FeatureTableReader(str(make_feature_csv(rows))).rows()


class TestValidateIntegrity:
    """Issue detection on raw CSV rows."""

    def test_clean_table_has_no_issues(self, feature_csv):
        reader = FeatureTableReader(str(feature_csv))
        report = validate_integrity(reader.rows(), input_path=str(reader.path))

        assert report.is_clean
        assert report.total_issue_count == 0
        assert report.events * 2 == report.rows
        assert set(report.issue_counts) == set(ISSUE_TYPES)

    def test_non_paired_event_is_counted_not_raised(self, make_feature_csv, feature_rows):
        rows = feature_rows[:-1]  # drop one side of the last event
        report = validate_integrity(_raw_rows(make_feature_csv, rows))

        assert report.issue_counts["malformed_event_size"] == 1
        assert report.issues["malformed_event_size"] == [feature_rows[-1]["event_id"]]
        assert report.total_issue_count >= 1

    def test_non_complement_labels(self, make_feature_csv, feature_rows):
        rows = copy.deepcopy(feature_rows)
        rows[0]["team_win"] = 1
        rows[1]["team_win"] = 1
        report = validate_integrity(_raw_rows(make_feature_csv, rows))

        assert report.issues["non_complement_team_win"] == [rows[0]["event_id"]]

    def test_blank_label_reads_as_zero(self, make_feature_csv, feature_rows):
        rows = copy.deepcopy(feature_rows)
        rows[0]["team_win"] = 1
        rows[1]["team_win"] = None
        rows[2]["team_win"] = "x"
        report = validate_integrity(_raw_rows(make_feature_csv, rows))

        assert report.issues["non_complement_team_win"] == [rows[2]["event_id"]]

    def test_opponent_and_start_mismatch(self, make_feature_csv, feature_rows):
        rows = copy.deepcopy(feature_rows)
        rows[2]["opponent_team_id"] = "T999"
        rows[4]["starts_at"] = "2021-12-25T19:00:00Z"
        report = validate_integrity(_raw_rows(make_feature_csv, rows))

        assert report.issues["opponent_id_mismatch"] == [rows[2]["event_id"]]
        assert report.issues["starts_at_mismatch"] == [rows[4]["event_id"]]

    def test_missing_core_fields(self, make_feature_csv, feature_rows):
        rows = copy.deepcopy(feature_rows)
        rows[6]["odds_american_avg"] = None
        report = validate_integrity(_raw_rows(make_feature_csv, rows))

        assert report.issues["missing_core_fields"] == [rows[6]["event_id"]]

    def test_idempotent(self, make_feature_csv, feature_rows):
        raw = _raw_rows(make_feature_csv, feature_rows[:-1])
        first = validate_integrity(raw)
        second = validate_integrity(raw)

        assert first.issue_counts == second.issue_counts
        assert first.issues == second.issues

    def test_strict_mode_raises(self, make_feature_csv, feature_rows):
        raw = _raw_rows(make_feature_csv, feature_rows[:-1])
        with pytest.raises(DataIntegrityError):
            validate_integrity(raw, strict=True)

    def test_to_dict_shape(self, feature_csv):
        report = validate_integrity(FeatureTableReader(str(feature_csv)).rows())
        doc = report.to_dict()

        for key in ("created_at", "input", "rows", "events", "issue_counts", "total_issue_count", "issues"):
            assert key in doc
