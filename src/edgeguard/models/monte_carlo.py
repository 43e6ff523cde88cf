"""Model-vs-coin comparison under seeded Monte-Carlo resampling.

A coin bettor picks a uniformly random side of each event. If the model does
not beat the coin across many seeds, its edge is noise.

Key Classes:
    Mulberry32 - 32-bit seeded generator, bit-exact with historical reports
    PhiloxStream - NumPy counter-based alternative (rng="philox")
    MonteCarloConfig - Frozen stage configuration
    MonteCarloComparator - Trains once, then replays N coin seeds
    HeadToHeadComparator - Single-seed event-by-event model vs coin ledger

Coin Draws (per eligible event, in chronological order):
    1. u = next(); skip the event when u > coin_bet_prob
    2. side = floor(next() * 2)

Eligibility: with coin_follows_model the coin may only bet events the model
bet; otherwise every clean event is eligible.

Usage:
    from edgeguard.models.monte_carlo import MonteCarloComparator, MonteCarloConfig

    report = MonteCarloComparator(MonteCarloConfig(seeds=200)).run(df)
    report.print_summary()
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Literal, Optional, Set

import numpy as np
import pandas as pd

from edgeguard.analysis.metrics import rate, summarize
from edgeguard.errors import DataIntegrityError, ValidationError
from edgeguard.models.logistic import TrainParams, train_logistic, with_predictions
from edgeguard.models.picks import (
    Event,
    Pick,
    event_label,
    group_events,
    make_pick,
    model_side,
    select_model_picks,
)
from edgeguard.models.simulation import Bankroll, SimulationResult, StakePlan, simulate_flat
from edgeguard.models.splits import DateWindow, TemporalSplitter

logger = logging.getLogger(__name__)

RngKind = Literal["mulberry32", "philox"]

_MASK32 = 0xFFFFFFFF
TIE_TOLERANCE = 1e-9


def _imul(a: int, b: int) -> int:
    return (a * b) & _MASK32


class Mulberry32:
    """Mulberry32 PRNG on unsigned 32-bit state.

    Reproduces the reference JavaScript generator exactly, so per-seed
    outcomes match previously published reports.
    """

    def __init__(self, seed: int):
        self._t = int(seed) & _MASK32

    def next_uint32(self) -> int:
        self._t = (self._t + 0x6D2B79F5) & _MASK32
        x = self._t
        x = _imul(x ^ (x >> 15), x | 1)
        x ^= (x + _imul(x ^ (x >> 7), x | 61)) & _MASK32
        return (x ^ (x >> 14)) & _MASK32

    def random(self) -> float:
        """Uniform float in [0, 1)."""
        return self.next_uint32() / 4294967296.0


class PhiloxStream:
    """Counter-based stream via numpy.random.Philox; not bit-compatible with Mulberry32."""

    def __init__(self, seed: int):
        self._gen = np.random.Generator(np.random.Philox(int(seed)))

    def random(self) -> float:
        return float(self._gen.random())


def make_rng(seed: int, kind: RngKind = "mulberry32"):
    if kind == "mulberry32":
        return Mulberry32(seed)
    if kind == "philox":
        return PhiloxStream(seed)
    raise ValidationError(f"Unknown rng: {kind}. Must be one of: ['mulberry32', 'philox']")


def coin_picks(
    events: Iterable[Event],
    rng,
    eligible_ids: Optional[Set[str]] = None,
    bet_prob: Optional[float] = 1.0,
) -> List[Pick]:
    """Random-side picks for one seed.

    Args:
        events: Clean events in chronological order.
        rng: Object with a random() method.
        eligible_ids: Restrict to these event ids (None = all events).
        bet_prob: Probability of betting an eligible event. None skips the
            gating draw entirely (one draw per event).
    """
    picks: List[Pick] = []
    for sides in events:
        if eligible_ids is not None and str(sides[0]["event_id"]) not in eligible_ids:
            continue
        if bet_prob is not None and rng.random() > bet_prob:
            continue
        idx = min(len(sides) - 1, max(0, math.floor(rng.random() * len(sides))))
        picks.append(make_pick(sides[idx]))
    return picks


@dataclass(frozen=True)
class MonteCarloConfig:
    """Monte-Carlo comparator configuration."""
    window: DateWindow = field(default_factory=DateWindow)
    train: TrainParams = field(default_factory=TrainParams)
    bankroll: float = 10000.0
    flat_stake: float = 100.0
    model_edge_min: float = -0.02
    coin_bet_prob: float = 1.0
    coin_follows_model: bool = True
    seeds: int = 200
    start_seed: int = 1
    rng: RngKind = "mulberry32"

    def __post_init__(self):
        if not (math.isfinite(self.coin_bet_prob) and 0.0 <= self.coin_bet_prob <= 1.0):
            raise ValidationError(f"coin_bet_prob must be in [0, 1], got {self.coin_bet_prob}")
        if self.seeds <= 0:
            raise ValidationError(f"seeds must be > 0, got {self.seeds}")
        if not math.isfinite(self.model_edge_min):
            raise ValidationError("model_edge_min must be finite")
        if self.rng not in ("mulberry32", "philox"):
            raise ValidationError(f"Unknown rng: {self.rng}")

    @property
    def plan(self) -> StakePlan:
        return StakePlan(bankroll=self.bankroll, flat_stake=self.flat_stake, odds_source="fair")

    def to_dict(self) -> dict:
        return {
            **self.window.to_dict(),
            "model": {**self.train.to_dict(), "model_edge_min": self.model_edge_min},
            "coin": {"bet_prob": self.coin_bet_prob, "follows_model": self.coin_follows_model},
            "bankroll": self.bankroll,
            "flat_stake": self.flat_stake,
            "monte_carlo": {"seeds": self.seeds, "start_seed": self.start_seed, "rng": self.rng},
        }


@dataclass
class SeedRun:
    seed: int
    coin_n_bets: int
    coin_accrued_income: float
    coin_roi_on_staked: float
    delta_income: float
    delta_roi: float

    def to_dict(self) -> dict:
        return {
            "seed": self.seed,
            "coin_n_bets": self.coin_n_bets,
            "coin_accrued_income": self.coin_accrued_income,
            "coin_roi_on_staked": self.coin_roi_on_staked,
            "delta_model_minus_coin_accrued_income": self.delta_income,
            "delta_model_minus_coin_roi": self.delta_roi,
        }


def summarize_seed_runs(runs: List[SeedRun]) -> Dict[str, Optional[float]]:
    """Beat/tie rates and delta bands over seed runs."""
    deltas = [r.delta_income for r in runs]
    rois = [r.delta_roi for r in runs]
    return {
        "n_runs": len(runs),
        "model_beats_coin_rate": rate(sum(1 for d in deltas if d > 0), len(runs)),
        "model_ties_coin_rate": rate(sum(1 for d in deltas if abs(d) < TIE_TOLERANCE), len(runs)),
        **summarize(deltas, "delta_income"),
        **summarize(rois, "delta_roi"),
    }


def run_coin_seeds(
    events: List[Event],
    model_result: SimulationResult,
    plan: StakePlan,
    seeds: Iterable[int],
    eligible_ids: Optional[Set[str]] = None,
    bet_prob: Optional[float] = 1.0,
    rng: RngKind = "mulberry32",
) -> List[SeedRun]:
    """Settle one coin bettor per seed and diff it against the model."""
    runs = []
    for seed in seeds:
        coin = simulate_flat(coin_picks(events, make_rng(seed, rng), eligible_ids, bet_prob), plan)
        runs.append(SeedRun(
            seed=seed,
            coin_n_bets=coin.n_bets,
            coin_accrued_income=coin.accrued_income,
            coin_roi_on_staked=coin.roi_on_staked,
            delta_income=model_result.accrued_income - coin.accrued_income,
            delta_roi=model_result.roi_on_staked - coin.roi_on_staked,
        ))
    return runs


@dataclass
class MonteCarloReport:
    config: MonteCarloConfig
    input: str
    split_audit: dict
    model_baseline_run: SimulationResult
    seed_runs: List[SeedRun]
    created_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @property
    def summary(self) -> Dict[str, Optional[float]]:
        return summarize_seed_runs(self.seed_runs)

    def to_dict(self) -> dict:
        return {
            "created_at": self.created_at,
            "config": {"input": self.input, **self.config.to_dict()},
            "split_audit": self.split_audit,
            "model_baseline_run": self.model_baseline_run.to_dict(),
            "monte_carlo_summary": self.summary,
            "seed_runs": [r.to_dict() for r in self.seed_runs],
        }

    def print_summary(self) -> None:
        s = self.summary
        m = self.model_baseline_run
        first = self.config.start_seed
        print("\n" + "=" * 60)
        print("MODEL VS COIN MONTE CARLO")
        print("=" * 60)
        print(f"Runs: {s['n_runs']} | Seeds: {first}..{first + self.config.seeds - 1} ({self.config.rng})")
        print(f"Model bets={m.n_bets} income={m.accrued_income:.2f} roi={m.roi_on_staked:.6f}")
        print(f"Beat rate: {s['model_beats_coin_rate']:.2%} | tie rate: {s['model_ties_coin_rate']:.2%}")
        print(
            f"Delta income mean={s['delta_income_mean']:.2f} p05={s['delta_income_p05']:.2f} "
            f"p50={s['delta_income_p50']:.2f} p95={s['delta_income_p95']:.2f}"
        )
        print("=" * 60)


class MonteCarloComparator:
    """Train on the train window, then compare model picks against N coin seeds.

    Example:
        comparator = MonteCarloComparator(MonteCarloConfig(seeds=50))
        report = comparator.run(df, input_path="features.csv")
    """

    def __init__(self, config: Optional[MonteCarloConfig] = None):
        self.config = config or MonteCarloConfig()

    def run(self, df: pd.DataFrame, input_path: str = "") -> MonteCarloReport:
        cfg = self.config
        train_df, test_df, audit = TemporalSplitter(cfg.window).split(df)

        model = train_logistic(train_df, cfg.train)
        groups = group_events(with_predictions(model, test_df))

        model_picks, bet_ids = select_model_picks(groups.events, cfg.model_edge_min)
        model_result = simulate_flat(model_picks, cfg.plan)

        runs = run_coin_seeds(
            groups.events,
            model_result,
            cfg.plan,
            range(cfg.start_seed, cfg.start_seed + cfg.seeds),
            eligible_ids=bet_ids if cfg.coin_follows_model else None,
            bet_prob=cfg.coin_bet_prob,
            rng=cfg.rng,
        )
        logger.info(
            "Monte Carlo: %d seeds, model bets=%d, beat rate=%.3f",
            len(runs), model_result.n_bets, summarize_seed_runs(runs)["model_beats_coin_rate"],
        )

        split_audit = {
            **audit.to_dict(),
            "test_events_raw": groups.raw_events,
            "test_events_used": len(groups.events),
            "malformed_test_events_skipped": groups.n_malformed,
            "malformed_test_event_ids": groups.malformed_event_ids,
        }
        return MonteCarloReport(
            config=cfg,
            input=input_path,
            split_audit=split_audit,
            model_baseline_run=model_result,
            seed_runs=runs,
        )


@dataclass(frozen=True)
class HeadToHeadConfig:
    """Single-seed model-vs-coin configuration."""
    window: DateWindow = field(default_factory=DateWindow)
    train: TrainParams = field(default_factory=TrainParams)
    bankroll: float = 10000.0
    flat_stake: float = 100.0
    seed: int = 42
    model_edge_min: float = 0.0
    coin_bet_prob: float = 1.0
    coin_follows_model: bool = True
    strict_event_shape: bool = False
    rng: RngKind = "mulberry32"

    def __post_init__(self):
        if not math.isfinite(self.model_edge_min):
            raise ValidationError("model_edge_min must be finite")
        if not (math.isfinite(self.coin_bet_prob) and 0.0 <= self.coin_bet_prob <= 1.0):
            raise ValidationError("coin_bet_prob must be between 0 and 1.")
        if self.flat_stake <= 0:
            raise ValidationError("flat_stake must be > 0.")
        if self.bankroll <= 0:
            raise ValidationError("bankroll must be > 0.")

    def to_dict(self) -> dict:
        return {
            **self.window.to_dict(),
            "model": self.train.to_dict(),
            "bankroll_start": self.bankroll,
            "flat_stake": self.flat_stake,
            "coin_seed": self.seed,
            "model_edge_min": self.model_edge_min,
            "coin_bet_prob": self.coin_bet_prob,
            "coin_follows_model": self.coin_follows_model,
            "strict_event_shape": self.strict_event_shape,
            "rng": self.rng,
        }


@dataclass
class HeadToHeadReport:
    config: HeadToHeadConfig
    input: str
    dataset: dict
    model: SimulationResult
    coin: SimulationResult
    event_ledger: List[dict]
    created_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @property
    def delta(self) -> Dict[str, float]:
        m, c = self.model, self.coin
        per_bet_m = m.accrued_income / m.n_bets if m.n_bets else 0.0
        per_bet_c = c.accrued_income / c.n_bets if c.n_bets else 0.0
        return {
            "accrued_income": m.accrued_income - c.accrued_income,
            "roi_on_staked": m.roi_on_staked - c.roi_on_staked,
            "win_rate": m.win_rate - c.win_rate,
            "income_per_bet": per_bet_m - per_bet_c,
        }

    def to_dict(self) -> dict:
        return {
            "created_at": self.created_at,
            "config": {"input": self.input, **self.config.to_dict()},
            "dataset": self.dataset,
            "bettors": {
                "model_bettor": {"strategy": "top_pick_by_model_probability", **self.model.to_dict()},
                "coin_bettor": {"strategy": "uniform_random_pick_per_event", **self.coin.to_dict()},
            },
            "delta_model_minus_coin": self.delta,
            "event_ledger": self.event_ledger,
        }

    def print_summary(self) -> None:
        print("\n" + "=" * 60)
        print("MODEL VS COIN (single seed)")
        print("=" * 60)
        print(f"Events: {self.dataset['test_events']}")
        for name, r in (("Model", self.model), ("Coin", self.coin)):
            print(f"{name:<6} bets={r.n_bets} income={r.accrued_income:.2f} roi={r.roi_on_staked:.6f}")
        print(f"Delta (model-coin) income={self.delta['accrued_income']:.2f}")
        print("=" * 60)


def _leg(entry: Optional[dict], book: Bankroll, pick: Optional[Pick]) -> dict:
    if entry is None:
        return {"action": "SKIP", "stake": 0.0, "won": None, "profit": 0.0, "bankroll_after": book.balance}
    return {
        "action": "BET",
        "team_name": pick.team_name,
        "edge": pick.edge,
        "stake": entry["stake"],
        "won": bool(entry["won"]),
        "profit": entry["profit"],
        "bankroll_after": entry["bankroll_after"],
    }


class HeadToHeadComparator:
    """Event-by-event model vs one coin seed, with a full ledger."""

    def __init__(self, config: Optional[HeadToHeadConfig] = None):
        self.config = config or HeadToHeadConfig()

    def run(self, df: pd.DataFrame, input_path: str = "") -> HeadToHeadReport:
        cfg = self.config
        train_df, test_df, audit = TemporalSplitter(cfg.window).split(df)
        groups = group_events(test_df)
        if cfg.strict_event_shape and groups.n_malformed:
            raise DataIntegrityError(
                f"Data integrity guard failed: found {groups.n_malformed} test events "
                f"without exactly 2 sides."
            )

        model = train_logistic(train_df, cfg.train)
        groups = group_events(with_predictions(model, test_df))
        plan = StakePlan(bankroll=cfg.bankroll, flat_stake=cfg.flat_stake, odds_source="fair")
        rng = make_rng(cfg.seed, cfg.rng)

        model_book, coin_book = Bankroll(cfg.bankroll), Bankroll(cfg.bankroll)
        ledger = []
        for sides in groups.events:
            top = make_pick(model_side(sides))
            model_bets = top.edge >= cfg.model_edge_min
            coin_eligible = model_bets if cfg.coin_follows_model else True
            coin_pick = None
            if coin_eligible and rng.random() <= cfg.coin_bet_prob:
                coin_pick = coin_picks([sides], rng, bet_prob=None)[0]

            model_pick = top if model_bets else None
            model_entry = model_book.settle(top, cfg.flat_stake, plan.decimal_odds(top)) if model_pick else None
            coin_entry = (
                coin_book.settle(coin_pick, cfg.flat_stake, plan.decimal_odds(coin_pick))
                if coin_pick else None
            )
            ledger.append({
                "event_id": top.event_id,
                "starts_at": top.starts_at.isoformat(),
                "matchup": event_label(sides),
                "model": _leg(model_entry, model_book, model_pick),
                "coin": _leg(coin_entry, coin_book, coin_pick),
            })
            logger.debug("%s %s model=%s coin=%s", top.event_id, ledger[-1]["matchup"],
                         ledger[-1]["model"]["action"], ledger[-1]["coin"]["action"])

        dataset = {
            "train_rows": audit.train_rows,
            "test_rows": audit.test_rows,
            "test_events": len(groups.events),
            "skipped_malformed_events": groups.n_malformed,
            "skipped_malformed_event_ids": groups.malformed_event_ids,
            "split_audit": audit.to_dict(),
        }
        return HeadToHeadReport(
            config=cfg,
            input=input_path,
            dataset=dataset,
            model=model_book.result("top_pick_by_model_probability"),
            coin=coin_book.result("uniform_random_pick_per_event"),
            event_ledger=ledger,
        )


__all__ = [
    "Mulberry32",
    "PhiloxStream",
    "make_rng",
    "coin_picks",
    "MonteCarloConfig",
    "SeedRun",
    "summarize_seed_runs",
    "run_coin_seeds",
    "MonteCarloReport",
    "MonteCarloComparator",
    "HeadToHeadConfig",
    "HeadToHeadReport",
    "HeadToHeadComparator",
]
