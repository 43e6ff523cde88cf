"""Tests for the season walk-forward evaluator."""

import pytest

from edgeguard.analysis.metrics import bootstrap_ci
from edgeguard.errors import InsufficientDataError
from edgeguard.models.walk_forward import WalkForwardConfig, WalkForwardRunner


@pytest.fixture
def wf_config(fast_train):
    return WalkForwardConfig(train=fast_train, coin_seeds=10, bootstrap_samples=100)


class TestWalkForwardRunner:

    def test_one_window_per_test_season(self, feature_df, wf_config):
        report = WalkForwardRunner(wf_config).run(feature_df, "features.csv")

        assert [w.test_season for w in report.windows] == ["2023-2024", "2024-2025"]
        assert report.windows[0].train_seasons == ["2021-2022", "2022-2023"]
        assert report.summary["n_windows"] == 2

    def test_windows_train_strictly_before_test(self, feature_df, wf_config):
        report = WalkForwardRunner(wf_config).run(feature_df)
        for w in report.windows:
            assert all(s < w.test_season for s in w.train_seasons)

    def test_reproducible(self, feature_df, wf_config):
        first = WalkForwardRunner(wf_config).run(feature_df).to_dict()
        second = WalkForwardRunner(wf_config).run(feature_df).to_dict()
        first.pop("created_at")
        second.pop("created_at")

        assert first == second

    def test_window_metrics(self, feature_df, wf_config):
        window = WalkForwardRunner(wf_config).run(feature_df).windows[-1]
        doc = window.to_dict()["metrics"]

        assert set(doc["baselines"]) == {"favorite", "underdog", "market_top_prob", "coin_monte_carlo"}
        assert doc["baselines"]["coin_monte_carlo"]["runs"] == 10
        assert doc["probability_scores"]["n_samples"] == window.test_rows
        if window.model.n_bets:
            ci = doc["model"]["bootstrap_ci"]
            assert ci["pnl_ci_95_low"] <= ci["pnl_ci_95_high"]
        # baselines bet exactly the events the model bet
        assert doc["baselines"]["favorite"]["n_bets"] == window.model.n_bets

    def test_too_few_seasons(self, feature_df, fast_train):
        with pytest.raises(InsufficientDataError):
            WalkForwardRunner(WalkForwardConfig(train=fast_train, min_train_seasons=4)).run(feature_df)

    def test_to_dataframe(self, feature_df, wf_config):
        frame = WalkForwardRunner(wf_config).run(feature_df).to_dataframe()
        assert len(frame) == 2
        assert "test_season" in frame.columns


class TestBootstrap:

    def test_seeded(self):
        profits, stakes = [100.0, -100.0, 50.0, -100.0], [100.0] * 4
        assert bootstrap_ci(profits, stakes, 200, seed=3) == bootstrap_ci(profits, stakes, 200, seed=3)

    def test_no_bets(self):
        assert bootstrap_ci([], [], 100) is None


def test_report_counts_rows_missing_odds(make_feature_csv, feature_rows, wf_config):
    from edgeguard.data.reader import FeatureTableReader

    rows = [dict(r) for r in feature_rows]
    rows[3]["odds_american_avg"] = None
    df = FeatureTableReader(str(make_feature_csv(rows))).load()
    report = WalkForwardRunner(wf_config).run(df)

    assert report.to_dict()["data_quality"]["rows_missing_odds_american_avg"] == 1
