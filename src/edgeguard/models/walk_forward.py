"""Season-by-season walk-forward evaluation of the betting model.

Simulates real deployment with honest, leakage-free evaluation: for each
test season, a fresh model is trained on every earlier season only.

How Leakage is Prevented:
    1. Seasons are ordered; window i trains on seasons [0, i) and tests on i
    2. Feature standardization uses training-set statistics only
    3. Each window trains a new model; nothing carries over

Per-Window Metrics:
    - Model PnL (flat stake capped at max_stake_pct of bankroll, slippage haircut)
    - Baselines on the same events: favorite, underdog, market_top_prob
    - Coin Monte-Carlo: seeds 1..N, model-minus-coin income bands
    - Bootstrap 95% CI on total profit and ROI
    - Log loss / Brier of model and market on test rows

Key Classes:
    WalkForwardConfig - Frozen stage configuration
    WalkForwardRunner - Runs every window
    WalkForwardReport - Windows plus cross-window summary

Usage:
    from edgeguard.models.walk_forward import WalkForwardRunner, WalkForwardConfig

    report = WalkForwardRunner(WalkForwardConfig(min_train_seasons=2)).run(df)
    report.print_summary()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional

import pandas as pd

from edgeguard.analysis.metrics import (
    BootstrapCI,
    ProbabilityScores,
    bootstrap_ci,
    mean,
    percentile,
    rate,
    score_probabilities,
    std,
)
from edgeguard.data.reader import rows_missing_odds
from edgeguard.errors import ValidationError
from edgeguard.models.logistic import TrainParams, train_logistic, with_predictions
from edgeguard.models.monte_carlo import SeedRun, run_coin_seeds
from edgeguard.models.picks import BASELINE_SELECTORS, group_events, select_baseline_picks, select_model_picks
from edgeguard.models.simulation import SimulationResult, StakePlan, simulate_flat
from edgeguard.models.splits import ordered_seasons, require_seasons

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WalkForwardConfig:
    """Walk-forward configuration.

    Attributes:
        train: Trainer parameters.
        edge_min: Minimum model edge to bet an event.
        bankroll: Starting bankroll per window.
        flat_stake: Stake per bet before the bankroll cap.
        max_stake_pct: Stake cap as a fraction of current bankroll.
        slippage_bps: Haircut on the profit part of decimal odds.
        min_train_seasons: Seasons required before the first test season.
        coin_seeds: Coin Monte-Carlo runs per window (seeds 1..N).
        bootstrap_samples: Bootstrap replicates per window.
        bootstrap_seed: Seed for the bootstrap sampler.
    """
    train: TrainParams = field(default_factory=TrainParams)
    edge_min: float = -0.02
    bankroll: float = 10000.0
    flat_stake: float = 100.0
    max_stake_pct: float = 0.03
    slippage_bps: float = 0.0
    min_train_seasons: int = 2
    coin_seeds: int = 200
    bootstrap_samples: int = 1000
    bootstrap_seed: int = 0

    def __post_init__(self):
        if self.min_train_seasons < 1:
            raise ValidationError(f"min_train_seasons must be >= 1, got {self.min_train_seasons}")
        if self.coin_seeds < 0 or self.bootstrap_samples < 0:
            raise ValidationError("coin_seeds and bootstrap_samples must be >= 0")

    @property
    def plan(self) -> StakePlan:
        return StakePlan(
            bankroll=self.bankroll,
            flat_stake=self.flat_stake,
            max_stake_pct=self.max_stake_pct,
            slippage_bps=self.slippage_bps,
            odds_source="american",
        )

    def to_dict(self) -> dict:
        return {
            "model": self.train.to_dict(),
            "betting": {
                "edge_min": self.edge_min,
                "bankroll": self.bankroll,
                "flat_stake": self.flat_stake,
                "max_stake_pct": self.max_stake_pct,
                "slippage_bps": self.slippage_bps,
            },
            "evaluation": {
                "min_train_seasons": self.min_train_seasons,
                "coin_seeds": self.coin_seeds,
                "bootstrap_samples": self.bootstrap_samples,
                "bootstrap_seed": self.bootstrap_seed,
            },
        }


@dataclass
class WindowResult:
    """Results for one test season."""
    test_season: str
    train_seasons: List[str]
    train_rows: int
    test_rows: int
    model: SimulationResult
    baselines: Dict[str, SimulationResult]
    coin_runs: List[SeedRun]
    bootstrap: Optional[BootstrapCI]
    scores: ProbabilityScores
    test_events_raw: int
    test_events_used: int
    malformed_event_ids: List[str] = field(default_factory=list)

    @property
    def model_bet_rate(self) -> float:
        return rate(self.model.n_bets, self.test_events_used)

    @property
    def beats_coin_rate(self) -> Optional[float]:
        if not self.coin_runs:
            return None
        return rate(sum(1 for r in self.coin_runs if r.delta_income > 0), len(self.coin_runs))

    def coin_summary(self) -> dict:
        incomes = [r.coin_accrued_income for r in self.coin_runs]
        deltas = [r.delta_income for r in self.coin_runs]
        return {
            "runs": len(self.coin_runs),
            "mean_income": mean(incomes),
            "p05_income": percentile(incomes, 0.05),
            "p50_income": percentile(incomes, 0.5),
            "p95_income": percentile(incomes, 0.95),
            "mean_roi": mean([r.coin_roi_on_staked for r in self.coin_runs]),
            "model_beats_coin_rate": self.beats_coin_rate,
            "model_minus_coin_income_mean": mean(deltas),
            "model_minus_coin_income_p05": percentile(deltas, 0.05),
            "model_minus_coin_income_p95": percentile(deltas, 0.95),
        }

    def to_dict(self) -> dict:
        return {
            "test_season": self.test_season,
            "train_seasons": self.train_seasons,
            "train_rows": self.train_rows,
            "test_rows": self.test_rows,
            "metrics": {
                "model": {
                    **self.model.to_dict(),
                    "bootstrap_ci": self.bootstrap.to_dict() if self.bootstrap else None,
                },
                "baselines": {
                    **{name: r.to_dict() for name, r in self.baselines.items()},
                    "coin_monte_carlo": self.coin_summary(),
                },
                "probability_scores": self.scores.to_dict(),
                "quality": {
                    "test_rows": self.test_rows,
                    "test_events_raw": self.test_events_raw,
                    "test_events_used": self.test_events_used,
                    "malformed_test_events": len(self.malformed_event_ids),
                    "malformed_test_event_ids": self.malformed_event_ids,
                },
                "model_bet_count": self.model.n_bets,
                "model_bet_rate_vs_events": self.model_bet_rate,
            },
        }


@dataclass
class WalkForwardReport:
    """All windows plus a cross-window summary."""
    config: WalkForwardConfig
    input: str
    windows: List[WindowResult]
    seasons: List[str]
    total_rows: int
    rejected_rows: int = 0
    rows_missing_odds: int = 0
    created_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @property
    def summary(self) -> dict:
        incomes = [w.model.accrued_income for w in self.windows]
        rois = [w.model.roi_on_staked for w in self.windows]
        beat = [w.beats_coin_rate for w in self.windows if w.beats_coin_rate is not None]
        bet_rates = [w.model_bet_rate for w in self.windows]
        return {
            "n_windows": len(self.windows),
            "model_income_mean": mean(incomes),
            "model_income_std": std(incomes),
            "model_roi_mean": mean(rois),
            "model_roi_std": std(rois),
            "model_beats_coin_rate_mean": mean(beat) if beat else None,
            "model_bet_rate_mean": mean(bet_rates),
            "model_bet_rate_std": std(bet_rates),
        }

    def to_dict(self) -> dict:
        return {
            "created_at": self.created_at,
            "config": {"input": self.input, **self.config.to_dict()},
            "data_quality": {
                "total_rows": self.total_rows,
                "rejected_rows": self.rejected_rows,
                "seasons": self.seasons,
                "rows_missing_odds_american_avg": self.rows_missing_odds,
            },
            "walk_forward_windows": [w.to_dict() for w in self.windows],
            "summary": self.summary,
        }

    def to_dataframe(self) -> pd.DataFrame:
        """Per-window results as a DataFrame."""
        return pd.DataFrame([
            {
                "test_season": w.test_season,
                "n_bets": w.model.n_bets,
                "income": w.model.accrued_income,
                "roi": w.model.roi_on_staked,
                "max_drawdown": w.model.max_drawdown,
                "beat_coin_rate": w.beats_coin_rate,
                "bet_rate": w.model_bet_rate,
                "favorite_roi": w.baselines["favorite"].roi_on_staked,
                "underdog_roi": w.baselines["underdog"].roi_on_staked,
                "model_log_loss": w.scores.model_log_loss,
                "market_log_loss": w.scores.market_log_loss,
            }
            for w in self.windows
        ])

    def print_summary(self) -> None:
        print("\n" + "=" * 60)
        print("WALK-FORWARD RESULTS")
        print("=" * 60)
        print(f"Windows: {len(self.windows)} | Seasons: {', '.join(self.seasons)}")
        for w in self.windows:
            m = w.model
            beat = w.beats_coin_rate or 0.0
            print(
                f"{w.test_season} | bets={m.n_bets} | income={m.accrued_income:.2f} | "
                f"roi={m.roi_on_staked:.4f} | beat_coin_rate={beat:.1%}"
            )
        s = self.summary
        print("\n--- Summary ---")
        print(f"ROI:        {s['model_roi_mean']:.4f} ± {s['model_roi_std']:.4f}")
        print(f"Income:     {s['model_income_mean']:.2f} ± {s['model_income_std']:.2f}")
        if s["model_beats_coin_rate_mean"] is not None:
            print(f"Beat coin:  {s['model_beats_coin_rate_mean']:.1%}")
        print(f"Bet rate:   {s['model_bet_rate_mean']:.1%}")
        print("=" * 60)


class WalkForwardRunner:
    """Expanding-window evaluation over seasons.

    For each test season i >= min_train_seasons:
        1. Train a fresh model on seasons [0, i)
        2. Predict season i; pick the model-preferred side per clean event
        3. Settle model and baselines on the same events
        4. Replay coin seeds and bootstrap the model's realized bets

    Example:
        runner = WalkForwardRunner(WalkForwardConfig(coin_seeds=50))
        report = runner.run(df)
        window_df = report.to_dataframe()
    """

    def __init__(self, config: Optional[WalkForwardConfig] = None):
        self.config = config or WalkForwardConfig()

    def run_window(self, train_df: pd.DataFrame, test_df: pd.DataFrame) -> dict:
        """Evaluate one train/test pair. Returns WindowResult fields."""
        cfg = self.config
        plan = cfg.plan

        model = train_logistic(train_df, cfg.train)
        predicted = with_predictions(model, test_df)
        groups = group_events(predicted)

        model_picks, bet_ids = select_model_picks(groups.events, cfg.edge_min)
        model_result = simulate_flat(model_picks, plan)
        baselines = {
            name: simulate_flat(select_baseline_picks(groups.events, bet_ids, name), plan)
            for name in BASELINE_SELECTORS
        }
        coin_runs = run_coin_seeds(
            groups.events,
            model_result,
            plan,
            range(1, cfg.coin_seeds + 1),
            eligible_ids=bet_ids,
            bet_prob=None,
        )
        boot = bootstrap_ci(
            model_result.profits,
            model_result.stakes,
            samples=cfg.bootstrap_samples,
            seed=cfg.bootstrap_seed,
        )
        scores = score_probabilities(
            predicted["team_win"].to_numpy(),
            predicted["p_model"].to_numpy(),
            predicted["implied_prob"].to_numpy(),
        )
        return {
            "model": model_result,
            "baselines": baselines,
            "coin_runs": coin_runs,
            "bootstrap": boot,
            "scores": scores,
            "test_events_raw": groups.raw_events,
            "test_events_used": len(groups.events),
            "malformed_event_ids": groups.malformed_event_ids,
        }

    def run(
        self,
        df: pd.DataFrame,
        input_path: str = "",
        rejected_rows: int = 0,
    ) -> WalkForwardReport:
        """Run every window.

        Raises:
            InsufficientDataError: Fewer than min_train_seasons + 1 seasons.
        """
        cfg = self.config
        seasons = ordered_seasons(df)
        require_seasons(seasons, cfg.min_train_seasons)

        windows = []
        for i in range(cfg.min_train_seasons, len(seasons)):
            test_season = seasons[i]
            train_seasons = seasons[:i]
            train_df = df[df["season"].isin(train_seasons)]
            test_df = df[df["season"] == test_season]
            if train_df.empty or test_df.empty:
                continue

            logger.info("Window %s: train=%d rows, test=%d rows", test_season, len(train_df), len(test_df))
            windows.append(WindowResult(
                test_season=test_season,
                train_seasons=list(train_seasons),
                train_rows=len(train_df),
                test_rows=len(test_df),
                **self.run_window(train_df, test_df),
            ))

        return WalkForwardReport(
            config=cfg,
            input=input_path,
            windows=windows,
            seasons=seasons,
            total_rows=len(df),
            rejected_rows=rejected_rows,
            rows_missing_odds=rows_missing_odds(df),
        )


__all__ = ["WalkForwardConfig", "WindowResult", "WalkForwardReport", "WalkForwardRunner"]
