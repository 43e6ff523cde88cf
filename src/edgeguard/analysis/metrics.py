"""Summary statistics and probability scoring.

Every stage reports the same statistics the same way, so they live here.

Key Functions:
    mean() - Arithmetic mean, 0 for an empty sequence
    std() - Sample standard deviation (ddof=1), 0 below two values
    percentile() - Linear-interpolation percentile, None when empty
    bootstrap_ci() - Seeded 95% CI on total profit and ROI
    score_probabilities() - Log loss and Brier score (scikit-learn)

Metrics Explained:
    Log loss: Negative mean log-likelihood of the outcome (lower is better)
    Brier: Mean squared error of the probability (lower is better)
    Bootstrap CI: Spread of total profit / ROI when the realized bets are
        resampled with replacement

Usage:
    from edgeguard.analysis.metrics import percentile, bootstrap_ci

    p05 = percentile(deltas, 0.05)
    ci = bootstrap_ci(profits, stakes, samples=1000, seed=7)
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Dict, Optional, Sequence

import numpy as np
from sklearn.metrics import brier_score_loss, log_loss

from edgeguard.config import PROB_EPS


def mean(values: Sequence[float]) -> float:
    arr = np.asarray(values, dtype=float)
    return float(arr.mean()) if arr.size else 0.0


def std(values: Sequence[float]) -> float:
    """Sample standard deviation; 0 for fewer than two values."""
    arr = np.asarray(values, dtype=float)
    return float(arr.std(ddof=1)) if arr.size >= 2 else 0.0


def percentile(values: Sequence[float], q: float) -> Optional[float]:
    """Percentile with linear interpolation between order statistics.

    Args:
        values: Sample.
        q: Quantile in [0, 1] (0.05 for p05).
    """
    arr = np.asarray(values, dtype=float)
    if not arr.size:
        return None
    return float(np.quantile(arr, q, method="linear"))


@dataclass
class BootstrapCI:
    """95% bootstrap intervals for a bet sequence."""

    samples: int
    seed: int
    pnl_ci_95_low: float
    pnl_ci_95_high: float
    roi_ci_95_low: float
    roi_ci_95_high: float

    def to_dict(self) -> dict:
        return asdict(self)


def bootstrap_ci(
    profits: Sequence[float],
    stakes: Sequence[float],
    samples: int = 1000,
    seed: int = 0,
) -> Optional[BootstrapCI]:
    """Resample realized (profit, stake) pairs with replacement.

    Each replicate draws len(profits) pairs and records total profit and
    profit / total stake. Same inputs and seed give the same interval.

    Returns:
        BootstrapCI, or None when there are no bets.
    """
    p = np.asarray(profits, dtype=float)
    s = np.asarray(stakes, dtype=float)
    if not p.size or samples <= 0:
        return None

    rng = np.random.default_rng(seed)
    idx = rng.integers(0, p.size, size=(samples, p.size))
    totals = p[idx].sum(axis=1)
    staked = s[idx].sum(axis=1)
    with np.errstate(divide="ignore", invalid="ignore"):
        rois = np.where(staked > 0, totals / staked, 0.0)

    return BootstrapCI(
        samples=int(samples),
        seed=int(seed),
        pnl_ci_95_low=percentile(totals, 0.025),
        pnl_ci_95_high=percentile(totals, 0.975),
        roi_ci_95_low=percentile(rois, 0.025),
        roi_ci_95_high=percentile(rois, 0.975),
    )


@dataclass
class ProbabilityScores:
    """Log loss / Brier of model and market probabilities on the same rows."""

    n_samples: int
    model_log_loss: Optional[float]
    model_brier: Optional[float]
    market_log_loss: Optional[float]
    market_brier: Optional[float]

    def to_dict(self) -> dict:
        return {k: (round(v, 6) if isinstance(v, float) else v) for k, v in asdict(self).items()}

    def __repr__(self) -> str:
        if not self.n_samples:
            return "ProbabilityScores(n=0)"
        return (
            f"LogLoss model={self.model_log_loss:.4f} market={self.market_log_loss:.4f}, "
            f"Brier model={self.model_brier:.4f} market={self.market_brier:.4f} (n={self.n_samples})"
        )


def score_probabilities(
    y_true: np.ndarray,
    p_model: np.ndarray,
    p_market: np.ndarray,
) -> ProbabilityScores:
    """Score model and market probabilities against 0/1 outcomes."""
    y = np.asarray(y_true, dtype=float).flatten()
    pm = np.asarray(p_model, dtype=float).flatten()
    pk = np.asarray(p_market, dtype=float).flatten()

    mask = np.isfinite(y) & np.isfinite(pm) & np.isfinite(pk)
    y, pm, pk = y[mask], pm[mask], pk[mask]
    if not y.size:
        return ProbabilityScores(0, None, None, None, None)

    pm = np.clip(pm, PROB_EPS, 1 - PROB_EPS)
    pk = np.clip(pk, PROB_EPS, 1 - PROB_EPS)
    labels = [0.0, 1.0]
    return ProbabilityScores(
        n_samples=int(y.size),
        model_log_loss=float(log_loss(y, pm, labels=labels)),
        model_brier=float(brier_score_loss(y, pm)),
        market_log_loss=float(log_loss(y, pk, labels=labels)),
        market_brier=float(brier_score_loss(y, pk)),
    )


def rate(numerator: int, denominator: int) -> float:
    return numerator / denominator if denominator else 0.0


def summarize(values: Sequence[float], prefix: str) -> Dict[str, Optional[float]]:
    """Mean/std/p05/p50/p95 block keyed as `<prefix>_mean`, `<prefix>_p05`, ..."""
    return {
        f"{prefix}_mean": mean(values),
        f"{prefix}_std": std(values),
        f"{prefix}_p05": percentile(values, 0.05),
        f"{prefix}_p50": percentile(values, 0.5),
        f"{prefix}_p95": percentile(values, 0.95),
    }


__all__ = [
    "mean",
    "std",
    "percentile",
    "rate",
    "summarize",
    "BootstrapCI",
    "bootstrap_ci",
    "ProbabilityScores",
    "score_probabilities",
]
