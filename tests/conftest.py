"""Pytest fixtures/config for EdgeGuard tests.

Synthetic feature tables: two rows per event, four seasons (2021-22 .. 2024-25),
so the default DateWindow trains on the first three and tests on the last.
"""

import os
import sys

import numpy as np
import pandas as pd
import pytest


def pytest_sessionstart(session) -> None:  # type: ignore[unused-argument]
    repo_root = os.path.dirname(os.path.dirname(__file__))
    src_path = os.path.join(repo_root, "src")
    if src_path not in sys.path:
        sys.path.insert(0, src_path)


SEASON_YEARS = (2021, 2022, 2023, 2024)


def _american(p: float) -> float:
    if p >= 0.5:
        return float(round(-100.0 * p / (1.0 - p)))
    return float(round(100.0 * (1.0 - p) / p))


def build_feature_rows(seasons=SEASON_YEARS, events_per_season: int = 60, seed: int = 7) -> list:
    """Two-sided events with market probabilities near the true win rate."""
    rng = np.random.default_rng(seed)
    rows = []
    for year in seasons:
        opening = pd.Timestamp(f"{year}-11-01T19:00:00Z")
        for i in range(events_per_season):
            ts = (opening + pd.Timedelta(days=2 * i)).strftime("%Y-%m-%dT%H:%M:%SZ")
            event_id = f"E{year}{i:03d}"
            home, away = (i % 30) + 1, ((i + 7) % 30) + 1
            p_home = float(rng.uniform(0.3, 0.7))
            home_win = int(rng.random() < p_home)
            dispersion = float(rng.uniform(0.0, 0.05))
            books = int(rng.integers(3, 10))
            rest = int(rng.integers(-3, 4))
            form = float(rng.normal(0.0, 0.2))
            sides = [
                (home, away, 1, p_home, home_win, rest, form),
                (away, home, 0, 1.0 - p_home, 1 - home_win, -rest, -form),
            ]
            for team, opp, is_home, p_true, win, rest_diff, form_diff in sides:
                implied = float(np.clip(p_true + 0.01 + rng.normal(0.0, 0.03), 0.05, 0.95))
                rows.append({
                    "event_id": event_id,
                    "team_id": f"T{team}",
                    "opponent_team_id": f"T{opp}",
                    "team_name": f"Team {team}",
                    "is_home": is_home,
                    "starts_at": ts,
                    "implied_prob": round(implied, 6),
                    "odds_american_avg": _american(implied),
                    "books_aggregated": books,
                    "market_dispersion_total": round(dispersion, 6),
                    "rest_days_diff": rest_diff,
                    "rolling_win_rate_diff_10": round(form_diff, 6),
                    "missing_form_features": 0,
                    "missing_schedule_features": 0,
                    "missing_market_features": 0,
                    "team_win": win,
                })
    return rows


@pytest.fixture
def feature_rows():
    return build_feature_rows()


@pytest.fixture
def make_feature_csv(tmp_path):
    """Factory: write rows (default synthetic table) to a CSV and return its path."""
    def _make(rows=None, name: str = "features.csv"):
        path = tmp_path / name
        pd.DataFrame(rows if rows is not None else build_feature_rows()).to_csv(path, index=False)
        return path
    return _make


@pytest.fixture
def feature_csv(make_feature_csv):
    return make_feature_csv()


@pytest.fixture
def feature_df(feature_csv):
    from edgeguard.data.reader import FeatureTableReader

    return FeatureTableReader(str(feature_csv)).load(("implied_logit",))


@pytest.fixture
def fast_train():
    from edgeguard.models.logistic import TrainParams

    return TrainParams(iters=300)


@pytest.fixture
def build_rows():
    """The synthetic row builder, for tests that need custom seasons or sizes."""
    return build_feature_rows
