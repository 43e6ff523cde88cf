"""Tests for temporal splitting and leakage guards."""

import pandas as pd
import pytest

from edgeguard.errors import InsufficientDataError, LeakageError, ValidationError
from edgeguard.models.splits import (
    DateWindow,
    TemporalSplitter,
    check_leakage,
    require_seasons,
    season_label,
    split_for_calibration,
)


class TestSeasonLabel:

    def test_october_opens_season(self):
        assert season_label(pd.Timestamp("2024-10-01T00:00:00Z")) == "2024-2025"
        assert season_label(pd.Timestamp("2024-06-30T23:00:00Z")) == "2023-2024"


class TestDateWindow:

    def test_start_after_end_rejected(self):
        with pytest.raises(ValidationError):
            DateWindow("2024-01-01", "2023-01-01", "2024-10-01", "2025-06-30")

    def test_unparseable_date_rejected(self):
        with pytest.raises(ValidationError):
            DateWindow("not-a-date", "2024-06-30", "2024-10-01", "2025-06-30")


class TestLeakageGuard:

    def test_train_end_must_precede_test_start(self, feature_df):
        window = DateWindow("2021-10-01", "2024-12-31", "2024-10-01", "2025-06-30")
        with pytest.raises(LeakageError):
            TemporalSplitter(window).split(feature_df)

    def test_same_day_boundary_is_leakage(self):
        window = DateWindow("2021-10-01", "2024-10-01", "2024-10-01", "2025-06-30")
        with pytest.raises(LeakageError):
            check_leakage(window, [], [])

    def test_overlapping_event_ids(self):
        with pytest.raises(LeakageError):
            check_leakage(DateWindow(), ["E1", "E2"], ["E2", "E3"])

    def test_default_split_is_disjoint(self, feature_df):
        train_df, test_df, audit = TemporalSplitter(DateWindow()).split(feature_df)

        assert not set(train_df["event_id"]) & set(test_df["event_id"])
        assert train_df["starts_at"].max() < test_df["starts_at"].min()
        assert audit.overlap_events == 0
        assert audit.train_events == 180
        assert audit.test_events == 60

    def test_empty_test_window(self, feature_df):
        window = DateWindow("2021-10-01", "2024-06-30", "2030-10-01", "2031-06-30")
        with pytest.raises(InsufficientDataError):
            TemporalSplitter(window).split(feature_df)


class TestCalibrationSplit:

    def test_tail_is_calibration(self, feature_df):
        train_df, _, _ = TemporalSplitter(DateWindow()).split(feature_df)
        split = split_for_calibration(train_df, 0.2)

        assert split.calibration_events == 36
        assert split.subtrain_events == 144
        assert split.subtrain["starts_at"].max() <= split.calibration["starts_at"].min()
        assert not split.meets_minimum(40)

    def test_ratio_bounds(self, feature_df):
        with pytest.raises(ValidationError):
            split_for_calibration(feature_df, 1.0)


def test_require_seasons():
    require_seasons(["a", "b", "c"], 2)
    with pytest.raises(InsufficientDataError):
        require_seasons(["a", "b"], 2)
