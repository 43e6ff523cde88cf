"""Paper PnL backtest over a single train/test split.

Trains once on the train window, predicts the test window, selects bets, and
settles them at fair market odds under two staking schemes.

Selection Modes:
    edge     - Sides with edge >= edge_min, best edge first, up to
               max_bets_per_event per event
    top_pick - The best-edge side(s) of every event, regardless of edge

Staking:
    flat             - min(flat_stake, bankroll) per bet
    fractional_kelly - kelly_fraction of full Kelly, capped at kelly_cap of bankroll

Outputs:
    - Report dict (flat, Kelly, stake-size examples 50/100/250/500)
    - Per-record predictions CSV (every test row, selected or not)

Usage:
    from edgeguard.models.backtest import PaperBacktest, PaperBacktestConfig

    result = PaperBacktest(PaperBacktestConfig(selection_mode="edge")).run(df)
    result.predictions.to_csv("predictions.csv", index=False)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Literal, Optional, Tuple

import numpy as np
import pandas as pd

from edgeguard.errors import ValidationError
from edgeguard.models.logistic import LogisticModel, TrainParams, train_logistic, with_predictions
from edgeguard.models.picks import Pick, make_pick
from edgeguard.models.simulation import SimulationResult, StakePlan, simulate_flat, simulate_kelly
from edgeguard.models.splits import DateWindow, TemporalSplitter

logger = logging.getLogger(__name__)

STAKE_EXAMPLES = (50.0, 100.0, 250.0, 500.0)

PREDICTION_COLUMNS = [
    "event_id",
    "starts_at",
    "team_id",
    "team_name",
    "p_model",
    "p_market",
    "edge",
    "team_win",
    "selected_bet",
    "flat_stake",
    "flat_profit",
    "flat_bankroll_after",
    "kelly_stake",
    "kelly_profit",
    "kelly_bankroll_after",
]


@dataclass(frozen=True)
class PaperBacktestConfig:
    """Paper backtest configuration."""
    window: DateWindow = field(default_factory=DateWindow)
    train: TrainParams = field(default_factory=TrainParams)
    selection_mode: Literal["edge", "top_pick"] = "edge"
    edge_min: float = 0.015
    max_bets_per_event: int = 1
    bankroll: float = 10000.0
    flat_stake: float = 100.0
    kelly_fraction: float = 0.25
    kelly_cap: float = 0.03

    def __post_init__(self):
        if self.selection_mode not in ("edge", "top_pick"):
            raise ValidationError(f"Invalid selection_mode: {self.selection_mode}. Use edge or top_pick.")
        if self.max_bets_per_event < 0:
            raise ValidationError("max_bets_per_event must be >= 0")
        if not 0 < self.kelly_fraction <= 1:
            raise ValidationError(f"kelly_fraction must be in (0, 1], got {self.kelly_fraction}")
        if not 0 < self.kelly_cap <= 1:
            raise ValidationError(f"kelly_cap must be in (0, 1], got {self.kelly_cap}")

    def plan(self, flat_stake: Optional[float] = None) -> StakePlan:
        return StakePlan(
            bankroll=self.bankroll,
            flat_stake=flat_stake or self.flat_stake,
            odds_source="fair",
        )

    def to_dict(self) -> dict:
        return {
            **self.window.to_dict(),
            "model": self.train.to_dict(),
            "betting": {
                "edge_min": self.edge_min,
                "selection_mode": self.selection_mode,
                "max_bets_per_event": self.max_bets_per_event,
                "bankroll_start": self.bankroll,
                "flat_stake_default": self.flat_stake,
                "kelly_fraction": self.kelly_fraction,
                "kelly_cap": self.kelly_cap,
            },
        }


def select_bets(predicted: pd.DataFrame, cfg: PaperBacktestConfig) -> List[Pick]:
    """Per-event bet selection, returned in (start time, event id) order."""
    selected: List[Pick] = []
    for _, rows in predicted.groupby("event_id", sort=False):
        candidates = sorted((make_pick(r) for r in rows.to_dict(orient="records")), key=lambda p: -p.edge)
        if cfg.selection_mode == "top_pick":
            selected.extend(candidates[: max(1, cfg.max_bets_per_event)])
        else:
            eligible = [p for p in candidates if p.edge >= cfg.edge_min and np.isfinite(p.p_market)]
            selected.extend(eligible[: cfg.max_bets_per_event])
    selected.sort(key=lambda p: (p.starts_at, p.event_id))
    return selected


@dataclass
class PaperBacktestResult:
    config: PaperBacktestConfig
    input: str
    dataset: dict
    flat: SimulationResult
    kelly: SimulationResult
    stake_examples: List[dict]
    predictions: pd.DataFrame
    model: Optional[LogisticModel] = None
    created_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> dict:
        kelly = self.kelly.to_dict()
        kelly.pop("ledger", None)
        kelly.update({"kelly_fraction": self.config.kelly_fraction, "kelly_cap": self.config.kelly_cap})
        flat = self.flat.to_dict()
        flat.pop("ledger", None)
        return {
            "created_at": self.created_at,
            "config": {"input": self.input, **self.config.to_dict()},
            "dataset": self.dataset,
            "pnl": {
                "flat_default": flat,
                "fractional_kelly": kelly,
                "stake_examples": self.stake_examples,
            },
        }

    def write_predictions(self, path) -> None:
        self.predictions.to_csv(path, index=False)

    def print_summary(self) -> None:
        print("\n" + "=" * 60)
        print("PAPER BACKTEST")
        print("=" * 60)
        print(f"Selected bets: {self.dataset['selected_bets']} ({self.config.selection_mode})")
        for r in (self.flat, self.kelly):
            print(
                f"{r.strategy:<17} bets={r.n_bets} income={r.accrued_income:.2f} "
                f"roi={r.roi_on_staked:.6f} win_rate={r.win_rate:.3f}"
            )
        print("Stake examples:")
        for ex in self.stake_examples:
            print(f"  flat={ex['flat_stake']:>6.0f} income={ex['accrued_income']:.2f} roi={ex['roi_on_staked']:.6f}")
        print("=" * 60)


def _ledger_index(result: SimulationResult) -> Dict[Tuple[str, str], dict]:
    return {(e["event_id"], e["team_id"]): e for e in (result.ledger or [])}


def prediction_rows(
    predicted: pd.DataFrame,
    selected: List[Pick],
    flat: SimulationResult,
    kelly: SimulationResult,
) -> pd.DataFrame:
    """One row per test record with its selection and settlement."""
    chosen = {(p.event_id, p.team_id) for p in selected}
    flat_idx, kelly_idx = _ledger_index(flat), _ledger_index(kelly)
    ordered = predicted.sort_values(["starts_at", "event_id"], kind="mergesort")

    rows = []
    for r in ordered.to_dict(orient="records"):
        key = (str(r["event_id"]), str(r["team_id"]))
        f, k = flat_idx.get(key), kelly_idx.get(key)
        rows.append({
            "event_id": key[0],
            "starts_at": pd.Timestamp(r["starts_at"]).isoformat(),
            "team_id": key[1],
            "team_name": r.get("team_name", ""),
            "p_model": r["p_model"],
            "p_market": r["implied_prob"],
            "edge": r["p_model"] - r["implied_prob"],
            "team_win": r["team_win"],
            "selected_bet": int(key in chosen),
            "flat_stake": f["stake"] if f else 0.0,
            "flat_profit": f["profit"] if f else 0.0,
            "flat_bankroll_after": f["bankroll_after"] if f else None,
            "kelly_stake": k["stake"] if k else 0.0,
            "kelly_profit": k["profit"] if k else 0.0,
            "kelly_bankroll_after": k["bankroll_after"] if k else None,
        })
    return pd.DataFrame(rows, columns=PREDICTION_COLUMNS)


class PaperBacktest:
    """Single-split paper trading backtest.

    Example:
        result = PaperBacktest().run(df, input_path="features.csv")
        result.print_summary()
    """

    def __init__(self, config: Optional[PaperBacktestConfig] = None):
        self.config = config or PaperBacktestConfig()

    def run(self, df: pd.DataFrame, input_path: str = "") -> PaperBacktestResult:
        cfg = self.config
        train_df, test_df, audit = TemporalSplitter(cfg.window).split(df)

        model = train_logistic(train_df, cfg.train)
        predicted = with_predictions(model, test_df)
        selected = select_bets(predicted, cfg)
        logger.info("Paper backtest: %d bets selected from %d test events", len(selected), audit.test_events)

        flat = simulate_flat(selected, cfg.plan(), keep_ledger=True)
        kelly = simulate_kelly(selected, cfg.plan(), cfg.kelly_fraction, cfg.kelly_cap, keep_ledger=True)

        examples = []
        for stake in STAKE_EXAMPLES:
            sim = simulate_flat(selected, cfg.plan(stake))
            examples.append({
                "flat_stake": stake,
                "bankroll_start": sim.bankroll_start,
                "bankroll_end": sim.bankroll_end,
                "accrued_income": sim.accrued_income,
                "total_staked": sim.total_staked,
                "roi_on_staked": sim.roi_on_staked,
                "n_bets": sim.n_bets,
            })

        dataset = {
            "train_rows": audit.train_rows,
            "test_rows": audit.test_rows,
            "test_events": audit.test_events,
            "selected_bets": len(selected),
        }
        return PaperBacktestResult(
            config=cfg,
            input=input_path,
            dataset=dataset,
            flat=flat,
            kelly=kelly,
            stake_examples=examples,
            predictions=prediction_rows(predicted, selected, flat, kelly),
            model=model,
        )


__all__ = [
    "PaperBacktestConfig",
    "PaperBacktest",
    "PaperBacktestResult",
    "select_bets",
    "prediction_rows",
    "STAKE_EXAMPLES",
]
