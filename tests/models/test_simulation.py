"""Tests for bankroll simulation."""

import pandas as pd
import pytest

from edgeguard.errors import ValidationError
from edgeguard.models.picks import Pick, group_events, select_model_picks
from edgeguard.models.simulation import Bankroll, StakePlan, kelly_fraction, simulate_flat, simulate_kelly


def _side(event_id, team_id, p_model, implied, win, ts):
    return {
        "event_id": event_id,
        "team_id": team_id,
        "team_name": team_id,
        "starts_at": pd.Timestamp(ts),
        "p_model": p_model,
        "implied_prob": implied,
        "odds_american_avg": 100.0,
        "team_win": win,
    }


@pytest.fixture
def four_events():
    """4 events (8 records) inside the default test window."""
    rows = [
        _side("E1", "A", 0.60, 0.55, 1, "2024-11-01T19:00:00Z"),
        _side("E1", "B", 0.40, 0.47, 0, "2024-11-01T19:00:00Z"),
        _side("E2", "C", 0.45, 0.50, 0, "2024-11-03T19:00:00Z"),
        _side("E2", "D", 0.55, 0.52, 1, "2024-11-03T19:00:00Z"),
        _side("E3", "E", 0.52, 0.56, 0, "2024-11-05T19:00:00Z"),
        _side("E3", "F", 0.48, 0.46, 1, "2024-11-05T19:00:00Z"),
        _side("E4", "G", 0.70, 0.62, 0, "2024-11-07T19:00:00Z"),
        _side("E4", "H", 0.30, 0.40, 1, "2024-11-07T19:00:00Z"),
    ]
    return group_events(pd.DataFrame(rows)).events


class TestFourEventScenario:

    def test_bankroll_accounting(self, four_events):
        picks, bet_ids = select_model_picks(four_events, edge_min=0.0)
        result = simulate_flat(picks, StakePlan(bankroll=10000.0, flat_stake=100.0, odds_source="fair"))

        assert result.n_bets <= 4
        # E3's model side (E) has negative edge
        assert bet_ids == {"E1", "E2", "E4"}
        assert result.bankroll_end == pytest.approx(result.bankroll_start + sum(result.profits))
        assert result.roi_on_staked == pytest.approx(result.accrued_income / result.total_staked)
        assert result.wins + result.losses == result.n_bets

    def test_exact_profits(self, four_events):
        picks, _ = select_model_picks(four_events, edge_min=0.0)
        result = simulate_flat(picks, StakePlan(bankroll=10000.0, flat_stake=100.0, odds_source="fair"))

        # E1 wins at 1/0.55, E2 wins at 1/0.52, E4 loses
        expected = 100 * (1 / 0.55 - 1) + 100 * (1 / 0.52 - 1) - 100
        assert result.accrued_income == pytest.approx(expected)
        assert result.total_staked == pytest.approx(300.0)

    def test_no_bets_roi_is_zero(self, four_events):
        picks, _ = select_model_picks(four_events, edge_min=0.5)
        result = simulate_flat(picks, StakePlan())

        assert result.n_bets == 0
        assert result.total_staked == 0
        assert result.roi_on_staked == 0.0


class TestStaking:

    def _pick(self, won=1, p_model=0.6, odds=100.0):
        return Pick("E", pd.Timestamp("2024-11-01T00:00:00Z"), "T", "T", p_model, 0.5, p_model - 0.5, odds, won)

    def test_stake_capped_by_bankroll_pct(self):
        plan = StakePlan(bankroll=1000.0, flat_stake=100.0, max_stake_pct=0.03)
        result = simulate_flat([self._pick()], plan)
        assert result.stakes == [pytest.approx(30.0)]

    def test_missing_odds_not_bet(self):
        result = simulate_flat([self._pick(odds=None)], StakePlan())
        assert result.n_bets == 0

    def test_drawdown_tracked(self):
        result = simulate_flat([self._pick(won=0), self._pick(won=0)], StakePlan(bankroll=1000.0, flat_stake=100.0))
        assert result.max_drawdown == pytest.approx(0.2)

    def test_stake_never_exceeds_balance(self):
        book = Bankroll(50.0)
        entry = book.settle(self._pick(won=0), 100.0, 2.0)
        assert entry["stake"] == 50.0
        assert book.balance == 0.0
        assert book.settle(self._pick(), 100.0, 2.0) is None

    def test_bucket_multipliers(self):
        pick = self._pick()
        pick.bucket = "B"
        result = simulate_flat([pick], StakePlan(), multipliers={"A": 1.0, "B": 0.5})
        assert result.stakes == [pytest.approx(50.0)]

    def test_kelly(self):
        assert kelly_fraction(0.4, 2.0, 0.25, 0.03) == 0.0
        assert kelly_fraction(0.6, 2.0, 0.25, 0.03) == pytest.approx(0.03)
        assert kelly_fraction(0.52, 2.0, 0.25, 0.03) == pytest.approx(0.01)
        result = simulate_kelly([self._pick()], StakePlan(bankroll=1000.0), fraction=0.25, cap=0.03)
        assert result.stakes == [pytest.approx(30.0)]

    def test_invalid_plan(self):
        with pytest.raises(ValidationError):
            StakePlan(flat_stake=0)
        with pytest.raises(ValidationError):
            StakePlan(odds_source="closing")
