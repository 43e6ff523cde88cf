"""Confidence scoring, bucket policies, and threshold tuning.

Each test pick gets a composite confidence score in [0, 100]; thresholds cut
scores into buckets A/B/C and a staking policy bets a fraction of the flat
stake per bucket.

Score Composition:
    score = 100 * (0.60 * edge + 0.25 * liquidity + 0.15 * completeness)
    - edge: (edge - edge_floor) / (edge_ceil - edge_floor), clipped to [0, 1]
    - liquidity: books aggregated over both sides / 8, clipped to [0, 1]
    - completeness: 1 - missing feature groups / 3, clipped to [0, 1]

Policies (fraction of flat stake per bucket):
    A_only - A x1
    A_B    - A x1, B x0.5
    all    - A x1, B x0.5, C x0.25

Threshold Modes:
    manual - Use bucket_a / bucket_b as given
    hybrid - Tune on the chronological tail of the training window; fall
             back to manual thresholds (with a reason) when the slice is too
             small or no pair passes the bet-count guardrail

Key Classes:
    ConfidenceConfig - Frozen stage configuration
    ThresholdTuner - 2-D grid search over (bucket_a, bucket_b)
    ConfidenceBacktest - Train, tune, score test picks, simulate policies

Usage:
    from edgeguard.models.confidence import ConfidenceBacktest, ConfidenceConfig

    report = ConfidenceBacktest(ConfidenceConfig(threshold_mode="hybrid")).run(df)
    print(report.policy("A_B").roi_on_staked)
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Dict, List, Literal, Optional, Tuple

import numpy as np
import pandas as pd

from edgeguard.analysis.metrics import mean
from edgeguard.config import (
    COMPLETENESS_WEIGHT,
    EDGE_WEIGHT,
    LIQUIDITY_SATURATION_BOOKS,
    LIQUIDITY_WEIGHT,
    MISSING_FEATURE_GROUPS,
    POLICY_MULTIPLIERS,
)
from edgeguard.errors import InsufficientDataError, ValidationError
from edgeguard.models.logistic import TrainParams, train_logistic, with_predictions
from edgeguard.models.picks import Event, Pick, group_events, make_pick, model_side
from edgeguard.models.simulation import SimulationResult, StakePlan, simulate_flat
from edgeguard.models.splits import DateWindow, TemporalSplitter, split_for_calibration

logger = logging.getLogger(__name__)

PolicyName = Literal["A_only", "A_B", "all"]
POLICIES: Tuple[str, ...] = ("A_only", "A_B", "all")
BUCKETS = ("A", "B", "C")


def _clamp(v: float, lo: float = 0.0, hi: float = 1.0) -> float:
    return max(lo, min(hi, v))


def confidence_score(side: dict, sides: Event, edge_floor: float, edge_ceil: float) -> Tuple[float, float]:
    """Composite confidence for the picked side of an event.

    Returns:
        (score in [0, 100], edge)
    """
    edge = float(side["p_model"]) - float(side["implied_prob"])
    edge_s = _clamp((edge - edge_floor) / max(1e-9, edge_ceil - edge_floor))
    books = sum(float(r.get("books_aggregated") or 0.0) for r in sides)
    liquidity_s = _clamp(books / LIQUIDITY_SATURATION_BOOKS)
    missing = sum(float(side.get(col) or 0.0) for col in MISSING_FEATURE_GROUPS)
    completeness_s = _clamp(1.0 - missing / len(MISSING_FEATURE_GROUPS))
    score = 100.0 * (EDGE_WEIGHT * edge_s + LIQUIDITY_WEIGHT * liquidity_s + COMPLETENESS_WEIGHT * completeness_s)
    return score, edge


def bucket_for(score: float, bucket_a: float, bucket_b: float) -> str:
    if score >= bucket_a:
        return "A"
    if score >= bucket_b:
        return "B"
    return "C"


def assign_buckets(picks: List[Pick], bucket_a: float, bucket_b: float) -> List[Pick]:
    return [replace(p, bucket=bucket_for(p.confidence_score, bucket_a, bucket_b)) for p in picks]


@dataclass
class PolicyResult:
    """Simulation of one bucket policy."""
    policy: str
    result: SimulationResult

    @property
    def n_bets(self) -> int:
        return self.result.n_bets

    @property
    def roi_on_staked(self) -> float:
        return self.result.roi_on_staked

    @property
    def accrued_income(self) -> float:
        return self.result.accrued_income

    def to_dict(self) -> dict:
        r = self.result
        return {
            "policy": self.policy,
            "bankroll_start": r.bankroll_start,
            "bankroll_end": r.bankroll_end,
            "accrued_income": r.accrued_income,
            "total_staked": r.total_staked,
            "roi_on_staked": r.roi_on_staked,
            "n_bets": r.n_bets,
            "win_rate": r.win_rate,
        }


def simulate_policy(
    picks: List[Pick],
    policy: str,
    bucket_a: float,
    bucket_b: float,
    plan: StakePlan,
) -> PolicyResult:
    """Stake min(bankroll, flat_stake * multiplier[bucket]) per pick; zero stakes are skipped."""
    if policy not in POLICY_MULTIPLIERS:
        raise ValidationError(f"Unknown policy: {policy}. Must be one of: {list(POLICIES)}")
    bucketed = assign_buckets(picks, bucket_a, bucket_b)
    return PolicyResult(policy, simulate_flat(bucketed, plan, multipliers=POLICY_MULTIPLIERS[policy]))


@dataclass(frozen=True)
class ConfidenceConfig:
    """Confidence backtest configuration."""
    window: DateWindow = field(default_factory=DateWindow)
    train: TrainParams = field(default_factory=TrainParams)
    bankroll: float = 10000.0
    flat_stake: float = 100.0
    slippage_bps: float = 25.0
    edge_floor: float = -0.03
    edge_ceil: float = 0.03
    bucket_a: float = 75.0
    bucket_b: float = 60.0
    threshold_mode: Literal["manual", "hybrid"] = "hybrid"
    calibration_ratio: float = 0.2
    min_calib_events: int = 40
    auto_bucket_a_min: float = 20.0
    auto_bucket_a_max: float = 90.0
    auto_bucket_b_min: float = 10.0
    auto_bucket_b_max: float = 80.0
    auto_step: float = 5.0
    min_bets_a: int = 5
    min_bets_ab: int = 10
    target_policy: Literal["A_only", "A_B"] = "A_B"
    strict_calibration: bool = False

    def __post_init__(self):
        if self.threshold_mode not in ("manual", "hybrid"):
            raise ValidationError(f"threshold_mode must be manual or hybrid, got {self.threshold_mode}")
        if self.target_policy not in ("A_only", "A_B"):
            raise ValidationError(f"target_policy must be A_only or A_B, got {self.target_policy}")
        if not self.edge_ceil > self.edge_floor:
            raise ValidationError("edge_ceil must be greater than edge_floor")
        if not self.bucket_a > self.bucket_b:
            raise ValidationError(f"bucket_a ({self.bucket_a}) must exceed bucket_b ({self.bucket_b})")
        if not self.auto_step > 0:
            raise ValidationError(f"auto_step must be > 0, got {self.auto_step}")

    @property
    def plan(self) -> StakePlan:
        return StakePlan(
            bankroll=self.bankroll,
            flat_stake=self.flat_stake,
            slippage_bps=self.slippage_bps,
            odds_source="american",
        )

    def to_dict(self) -> dict:
        return {
            "split": self.window.to_dict(),
            "model": self.train.to_dict(),
            "confidence": {
                "edge_floor": self.edge_floor,
                "edge_ceil": self.edge_ceil,
                "threshold_mode": self.threshold_mode,
                "bucket_a_manual": self.bucket_a,
                "bucket_b_manual": self.bucket_b,
                "calibration_ratio": self.calibration_ratio,
                "min_calib_events": self.min_calib_events,
                "auto_bounds": {
                    "a_min": self.auto_bucket_a_min,
                    "a_max": self.auto_bucket_a_max,
                    "b_min": self.auto_bucket_b_min,
                    "b_max": self.auto_bucket_b_max,
                    "step": self.auto_step,
                },
                "guardrails": {
                    "min_bets_a": self.min_bets_a,
                    "min_bets_ab": self.min_bets_ab,
                    "target_policy": self.target_policy,
                },
            },
            "risk": {
                "bankroll": self.bankroll,
                "flat_stake": self.flat_stake,
                "slippage_bps": self.slippage_bps,
            },
        }


def build_scored_picks(predicted: pd.DataFrame, cfg: ConfidenceConfig) -> Tuple[List[Pick], List[str], int]:
    """One scored pick per clean event (the model-preferred side, no edge filter).

    Returns:
        (picks in chronological order, malformed event ids, raw event count)
    """
    groups = group_events(predicted)
    picks = []
    for sides in groups.events:
        top = model_side(sides)
        score, _ = confidence_score(top, sides, cfg.edge_floor, cfg.edge_ceil)
        picks.append(replace(make_pick(top), confidence_score=score))
    return picks, groups.malformed_event_ids, groups.raw_events


@dataclass
class TunedThresholds:
    bucket_a: float
    bucket_b: float
    objective: float
    min_bets_required: int
    target: PolicyResult
    a_only: PolicyResult
    a_b: PolicyResult

    def to_dict(self) -> dict:
        return {
            "bucketA": self.bucket_a,
            "bucketB": self.bucket_b,
            "objective": self.objective,
            "min_bets_required": self.min_bets_required,
            "target": self.target.to_dict(),
            "A_only": self.a_only.to_dict(),
            "A_B": self.a_b.to_dict(),
        }


def _steps(start: float, stop: float, step: float) -> List[float]:
    out = []
    v = start
    while v <= stop + 1e-12:
        out.append(v)
        v += step
    return out


class ThresholdTuner:
    """Grid search for (bucket_a, bucket_b) on calibration picks.

    The grid is the configured bounds intersected with the observed score
    range (rounded outwards to the step), with bucket_b <= bucket_a - step.
    Objective: roi * sqrt(max(1, n_bets)) of the target policy. Pairs under
    the minimum bet count are skipped; if none remain the minimum is relaxed
    to 1. Returns None when nothing qualifies.
    """

    def __init__(self, config: ConfidenceConfig):
        self.config = config

    def grid(self, scores: List[float]) -> List[Tuple[float, float]]:
        cfg = self.config
        step = cfg.auto_step
        min_score = math.floor(min(scores) / step) * step
        max_score = math.ceil(max(scores) / step) * step
        a_values = _steps(max(cfg.auto_bucket_a_min, min_score + step), min(cfg.auto_bucket_a_max, max_score), step)
        b_min = max(cfg.auto_bucket_b_min, min_score)
        b_max = min(cfg.auto_bucket_b_max, max_score - step)
        return [(a, b) for a in a_values for b in _steps(b_min, min(b_max, a - step), step)]

    def _search(self, picks: List[Pick], pairs: List[Tuple[float, float]], min_bets: int) -> Optional[TunedThresholds]:
        cfg = self.config
        plan = cfg.plan
        best = None
        for a, b in pairs:
            r_a = simulate_policy(picks, "A_only", a, b, plan)
            r_ab = simulate_policy(picks, "A_B", a, b, plan)
            target = r_a if cfg.target_policy == "A_only" else r_ab
            if target.n_bets < min_bets:
                continue
            objective = target.roi_on_staked * math.sqrt(max(1, target.n_bets))
            if best is None or objective > best.objective:
                best = TunedThresholds(a, b, objective, min_bets, target, r_a, r_ab)
        return best

    def tune(self, picks: List[Pick]) -> Optional[TunedThresholds]:
        scores = [p.confidence_score for p in picks if p.confidence_score is not None and np.isfinite(p.confidence_score)]
        if not scores:
            return None
        pairs = self.grid(scores)
        strict_min = self.config.min_bets_a if self.config.target_policy == "A_only" else self.config.min_bets_ab
        return self._search(picks, pairs, strict_min) or self._search(picks, pairs, 1)


@dataclass
class ConfidenceReport:
    config: ConfidenceConfig
    input: str
    bucket_a: float
    bucket_b: float
    tuning: dict
    data_quality: dict
    picks: List[Pick]
    policy_results: List[PolicyResult]
    created_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def policy(self, name: str) -> PolicyResult:
        for r in self.policy_results:
            if r.policy == name:
                return r
        raise KeyError(name)

    @property
    def best_policy(self) -> PolicyResult:
        return sorted(self.policy_results, key=lambda r: -r.roi_on_staked)[0]

    def bucket_stats(self) -> List[dict]:
        out = []
        for b in BUCKETS:
            rows = [p for p in self.picks if p.bucket == b]
            out.append({
                "bucket": b,
                "n": len(rows),
                "avg_confidence": mean([p.confidence_score for p in rows]),
                "avg_edge": mean([p.edge for p in rows]),
                "hit_rate": mean([p.team_win for p in rows]) if rows else 0.0,
            })
        return out

    def to_dict(self) -> dict:
        cfg = self.config.to_dict()
        cfg["confidence"]["bucket_a_active"] = self.bucket_a
        cfg["confidence"]["bucket_b_active"] = self.bucket_b
        return {
            "created_at": self.created_at,
            "config": {"input": self.input, **cfg},
            "threshold_tuning": self.tuning,
            "data_quality": self.data_quality,
            "confidence_buckets": self.bucket_stats(),
            "policy_results": [r.to_dict() for r in self.policy_results],
            "recommendation": {
                "best_policy_by_roi": self.best_policy.to_dict(),
                "note": "Prefer policy with best ROI that still has adequate sample size.",
            },
            "picks": [p.to_dict() for p in self.picks],
        }

    def print_summary(self) -> None:
        print("\n" + "=" * 60)
        print("CONFIDENCE POLICY BACKTEST")
        print("=" * 60)
        print(f"Thresholds active: A>={self.bucket_a:g} B>={self.bucket_b:g} (mode={self.config.threshold_mode})")
        if self.tuning.get("used_fallback_manual"):
            print(f"Fallback to manual: {self.tuning.get('reason')}")
        print(
            f"Picks scored: {len(self.picks)} | "
            f"malformed events skipped: {self.data_quality['skipped_malformed_events']}"
        )
        for r in self.policy_results:
            print(f"{r.policy:<7} income={r.accrued_income:.2f} roi={r.roi_on_staked:.4f} bets={r.n_bets}")
        print(f"Recommended policy: {self.best_policy.policy}")
        print("=" * 60)


class ConfidenceBacktest:
    """Train on the train window, pick thresholds, and simulate every policy on test.

    Example:
        backtest = ConfidenceBacktest(ConfidenceConfig(threshold_mode="manual"))
        report = backtest.run(df)
        report.print_summary()
    """

    def __init__(self, config: Optional[ConfidenceConfig] = None):
        self.config = config or ConfidenceConfig()

    def resolve_thresholds(self, train_df: pd.DataFrame) -> Tuple[float, float, dict]:
        """Active thresholds plus the tuning record.

        Raises:
            InsufficientDataError: In strict mode, when the calibration slice
                is smaller than min_calib_events.
        """
        cfg = self.config
        if cfg.threshold_mode == "manual":
            return cfg.bucket_a, cfg.bucket_b, {"mode": "manual", "used_fallback_manual": False}

        split = split_for_calibration(train_df, cfg.calibration_ratio)
        base = {
            "mode": "hybrid",
            "calibration_events": split.calibration_events,
            "subtrain_events": split.subtrain_events,
        }
        if not split.meets_minimum(cfg.min_calib_events):
            reason = f"Calibration event count too low ({split.calibration_events} < {cfg.min_calib_events})."
            if cfg.strict_calibration:
                raise InsufficientDataError(reason)
            logger.warning("Threshold tuning fell back to manual: %s", reason)
            return cfg.bucket_a, cfg.bucket_b, {**base, "used_fallback_manual": True, "reason": reason}

        calib_model = train_logistic(split.subtrain, cfg.train)
        calib_picks, _, _ = build_scored_picks(with_predictions(calib_model, split.calibration), cfg)
        tuned = ThresholdTuner(cfg).tune(calib_picks)
        if tuned is None:
            reason = "No threshold pair met minimum-bet guardrails."
            logger.warning("Threshold tuning fell back to manual: %s", reason)
            return cfg.bucket_a, cfg.bucket_b, {**base, "used_fallback_manual": True, "reason": reason}

        logger.info("Tuned thresholds A>=%g B>=%g (objective=%.4f)", tuned.bucket_a, tuned.bucket_b, tuned.objective)
        return tuned.bucket_a, tuned.bucket_b, {**base, "used_fallback_manual": False, "chosen": tuned.to_dict()}

    def run(self, df: pd.DataFrame, input_path: str = "") -> ConfidenceReport:
        cfg = self.config
        train_df, test_df, audit = TemporalSplitter(cfg.window).split(df)
        bucket_a, bucket_b, tuning = self.resolve_thresholds(train_df)

        model = train_logistic(train_df, cfg.train)
        picks, malformed, raw_events = build_scored_picks(with_predictions(model, test_df), cfg)
        results = [simulate_policy(picks, name, bucket_a, bucket_b, cfg.plan) for name in POLICIES]

        data_quality = {
            "train_rows": audit.train_rows,
            "test_rows": audit.test_rows,
            "test_events_raw": raw_events,
            "test_events_used": len(picks),
            "skipped_malformed_events": len(malformed),
            "skipped_malformed_event_ids": malformed,
        }
        return ConfidenceReport(
            config=cfg,
            input=input_path,
            bucket_a=bucket_a,
            bucket_b=bucket_b,
            tuning=tuning,
            data_quality=data_quality,
            picks=assign_buckets(picks, bucket_a, bucket_b),
            policy_results=results,
        )


__all__ = [
    "POLICIES",
    "confidence_score",
    "bucket_for",
    "assign_buckets",
    "PolicyResult",
    "simulate_policy",
    "ConfidenceConfig",
    "build_scored_picks",
    "TunedThresholds",
    "ThresholdTuner",
    "ConfidenceReport",
    "ConfidenceBacktest",
]
