"""Temporal train/test splitting with leakage guards.

Provides date-range splits, season labelling, and the calibration carve-out
used by the confidence threshold tuner. Records are never split by random
sampling.

Key Classes:
    DateWindow - Inclusive train/test date boundaries
    TemporalSplitter - Splits a feature frame and enforces leakage invariants
    SplitAudit - Row/event counts and overlap, written into every report
    CalibrationSplit - Sub-train + calibration slice carved from the train set

Leakage Invariants:
    1. train_end must be strictly before test_start
    2. No event_id may appear in both train and test

Calibration Strategy:
    - Events in the training window are sorted by start time (ties by event id)
    - The chronological tail fraction becomes the calibration slice
    - The slice tunes thresholds only; it is never reported as test performance

Usage:
    from edgeguard.models.splits import DateWindow, TemporalSplitter

    window = DateWindow("2021-10-01", "2024-06-30", "2024-10-01", "2025-06-30")
    train_df, test_df, audit = TemporalSplitter(window).split(df)
"""

from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass, field
from typing import Dict, List, Optional, Tuple

import pandas as pd

from edgeguard.data.transforms import season_label, season_labels
from edgeguard.errors import InsufficientDataError, LeakageError, ValidationError

logger = logging.getLogger(__name__)


def _day_start(iso_date: str) -> pd.Timestamp:
    return pd.Timestamp(f"{iso_date}T00:00:00Z")


def _day_end(iso_date: str) -> pd.Timestamp:
    return pd.Timestamp(f"{iso_date}T23:59:59Z")


@dataclass(frozen=True)
class DateWindow:
    """Inclusive train/test date boundaries (YYYY-MM-DD, UTC).

    Attributes:
        train_start: First training day.
        train_end: Last training day (inclusive through 23:59:59).
        test_start: First test day.
        test_end: Last test day.
    """
    train_start: str = "2021-10-01"
    train_end: str = "2024-06-30"
    test_start: str = "2024-10-01"
    test_end: str = "2025-06-30"

    def __post_init__(self):
        try:
            bounds = [_day_start(self.train_start), _day_end(self.train_end),
                      _day_start(self.test_start), _day_end(self.test_end)]
        except (ValueError, TypeError) as e:
            raise ValidationError(f"Invalid train/test date inputs: {e}") from e
        if bounds[0] > bounds[1] or bounds[2] > bounds[3]:
            raise ValidationError("Train/test date ranges are invalid (start after end).")

    @property
    def train_bounds(self) -> Tuple[pd.Timestamp, pd.Timestamp]:
        return _day_start(self.train_start), _day_end(self.train_end)

    @property
    def test_bounds(self) -> Tuple[pd.Timestamp, pd.Timestamp]:
        return _day_start(self.test_start), _day_end(self.test_end)

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)


@dataclass
class SplitAudit:
    """Counts describing a train/test split."""
    train_rows: int
    test_rows: int
    train_events: int
    test_events: int
    overlap_events: int
    train_end: str
    test_start: str

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass
class CalibrationSplit:
    """Training window split into a sub-train and a calibration tail.

    Attributes:
        subtrain: Rows used to fit the calibration model.
        calibration: Rows of the chronological tail (threshold tuning only).
        subtrain_events: Number of events in subtrain.
        calibration_events: Number of events in the calibration slice.
    """
    subtrain: pd.DataFrame
    calibration: pd.DataFrame
    subtrain_events: int
    calibration_events: int
    calibration_event_ids: List[str] = field(default_factory=list)

    def meets_minimum(self, min_events: int) -> bool:
        return self.calibration_events >= min_events


def check_leakage(
    window: DateWindow,
    train_event_ids,
    test_event_ids,
) -> int:
    """Enforce temporal and id-level separation of train and test.

    Returns:
        Overlapping event count (always 0 when the call returns).

    Raises:
        LeakageError: If train_end is not strictly before test_start, or if
            any event id appears on both sides.
    """
    _, train_end = window.train_bounds
    test_start, _ = window.test_bounds
    if not train_end < test_start:
        raise LeakageError(
            f"Leakage guard failed: trainEnd ({window.train_end}) must be strictly "
            f"before testStart ({window.test_start})."
        )
    overlap = set(train_event_ids) & set(test_event_ids)
    if overlap:
        sample = sorted(overlap)[:5]
        raise LeakageError(
            f"Leakage guard failed: {len(overlap)} overlapping event_ids across "
            f"train/test (e.g. {sample})."
        )
    return 0


class TemporalSplitter:
    """Date-range splitter with leakage enforcement.

    Example:
        splitter = TemporalSplitter(DateWindow(...))
        train_df, test_df, audit = splitter.split(df)
    """

    def __init__(self, window: DateWindow, time_column: str = "starts_at"):
        self.window = window
        self.time_column = time_column

    def _in_range(self, df: pd.DataFrame, bounds: Tuple[pd.Timestamp, pd.Timestamp]) -> pd.Series:
        start, end = bounds
        ts = df[self.time_column]
        return (ts >= start) & (ts <= end)

    def split(self, df: pd.DataFrame) -> Tuple[pd.DataFrame, pd.DataFrame, SplitAudit]:
        """Split a typed feature frame into train and test windows.

        Raises:
            LeakageError: If the windows overlap in time or event ids.
            InsufficientDataError: If either window is empty.
        """
        train_df = df[self._in_range(df, self.window.train_bounds)].copy()
        test_df = df[self._in_range(df, self.window.test_bounds)].copy()

        check_leakage(self.window, train_df["event_id"].unique(), test_df["event_id"].unique())

        if train_df.empty or test_df.empty:
            raise InsufficientDataError(
                f"No rows for train/test split (train={len(train_df)}, test={len(test_df)})."
            )

        audit = SplitAudit(
            train_rows=len(train_df),
            test_rows=len(test_df),
            train_events=int(train_df["event_id"].nunique()),
            test_events=int(test_df["event_id"].nunique()),
            overlap_events=0,
            train_end=self.window.train_end,
            test_start=self.window.test_start,
        )
        logger.info(
            "Split train=%d rows/%d events, test=%d rows/%d events",
            audit.train_rows, audit.train_events, audit.test_rows, audit.test_events,
        )
        return train_df, test_df, audit


def split_for_calibration(
    train_df: pd.DataFrame,
    calibration_ratio: float,
    time_column: str = "starts_at",
) -> CalibrationSplit:
    """Carve the chronological tail of the training events into a calibration slice.

    Events are ordered by start time, ties broken by event id. At least one
    event always lands on each side when there are two or more events.

    Args:
        train_df: Training-window rows.
        calibration_ratio: Fraction of events reserved for calibration (0, 1).

    Returns:
        CalibrationSplit with disjoint subtrain and calibration rows.
    """
    if not 0.0 < calibration_ratio < 1.0:
        raise ValidationError(f"calibration_ratio must be in (0, 1), got {calibration_ratio}")

    events = (
        train_df.groupby("event_id", sort=False)[time_column]
        .first()
        .reset_index()
        .sort_values([time_column, "event_id"], kind="mergesort")
    )
    n_events = len(events)
    calib_count = max(1, math.floor(n_events * calibration_ratio))
    train_count = max(1, n_events - calib_count)

    subtrain_ids = events["event_id"].iloc[:train_count].tolist()
    calib_ids = events["event_id"].iloc[train_count:].tolist()

    return CalibrationSplit(
        subtrain=train_df[train_df["event_id"].isin(subtrain_ids)].copy(),
        calibration=train_df[train_df["event_id"].isin(calib_ids)].copy(),
        subtrain_events=train_count,
        calibration_events=len(calib_ids),
        calibration_event_ids=calib_ids,
    )


def ordered_seasons(df: pd.DataFrame, season_column: str = "season") -> List[str]:
    """Sorted unique season labels present in a frame."""
    return sorted(df[season_column].unique().tolist())


def require_seasons(seasons: List[str], min_train_seasons: int) -> None:
    """Raise InsufficientDataError when walk-forward has no test season."""
    needed = min_train_seasons + 1
    if len(seasons) < needed:
        raise InsufficientDataError(
            f"Need at least {needed} seasons for walk-forward; found {len(seasons)}."
        )


__all__ = [
    "DateWindow",
    "SplitAudit",
    "CalibrationSplit",
    "TemporalSplitter",
    "check_leakage",
    "split_for_calibration",
    "season_label",
    "season_labels",
    "ordered_seasons",
    "require_seasons",
]
