"""Tests for the paper PnL backtest."""

import pytest

from edgeguard.errors import ValidationError
from edgeguard.models.backtest import PREDICTION_COLUMNS, PaperBacktest, PaperBacktestConfig


class TestPaperBacktest:

    def test_edge_mode_selection(self, feature_df, fast_train):
        cfg = PaperBacktestConfig(train=fast_train, edge_min=0.0)
        result = PaperBacktest(cfg).run(feature_df)
        chosen = result.predictions[result.predictions["selected_bet"] == 1]

        assert (chosen["edge"] >= 0.0).all()
        assert chosen["event_id"].is_unique
        assert len(chosen) == result.dataset["selected_bets"]
        assert result.flat.n_bets == result.dataset["selected_bets"]

    def test_top_pick_mode_bets_every_event(self, feature_df, fast_train):
        cfg = PaperBacktestConfig(train=fast_train, selection_mode="top_pick")
        result = PaperBacktest(cfg).run(feature_df)

        assert result.dataset["selected_bets"] == result.dataset["test_events"] == 60

    def test_predictions_cover_every_test_row(self, feature_df, fast_train, tmp_path):
        result = PaperBacktest(PaperBacktestConfig(train=fast_train)).run(feature_df)
        path = tmp_path / "predictions.csv"
        result.write_predictions(path)

        assert list(result.predictions.columns) == PREDICTION_COLUMNS
        assert len(result.predictions) == result.dataset["test_rows"]
        assert path.exists()

    def test_stake_examples_and_kelly_cap(self, feature_df, fast_train):
        result = PaperBacktest(PaperBacktestConfig(train=fast_train, edge_min=0.0)).run(feature_df)

        assert [ex["flat_stake"] for ex in result.stake_examples] == [50.0, 100.0, 250.0, 500.0]
        kelly_rows = result.predictions[result.predictions["kelly_stake"] > 0]
        before = kelly_rows["kelly_bankroll_after"] - kelly_rows["kelly_profit"]
        assert (kelly_rows["kelly_stake"] <= 0.03 * before + 1e-9).all()
        assert result.model is not None
        assert set(result.to_dict()["pnl"]) == {"flat_default", "fractional_kelly", "stake_examples"}

    def test_invalid_selection_mode(self):
        with pytest.raises(ValidationError):
            PaperBacktestConfig(selection_mode="random")
