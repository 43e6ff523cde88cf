"""Column transforms applied while the feature table is loaded.

These sit in the data layer so ingestion never depends on the model stack;
`edgeguard.models` re-exports them.

Key Functions:
    clip_prob() - Clip into (eps, 1 - eps)
    logit() - Log-odds of a clipped probability
    season_label() - Season of one start time ("2024-2025")
    season_labels() - Vectorized season_label for a datetime Series
"""

from __future__ import annotations

import numpy as np
import pandas as pd

from edgeguard.config import PROB_EPS


def clip_prob(p, eps: float = PROB_EPS):
    """Clip probabilities into (eps, 1 - eps). Non-finite inputs become NaN."""
    arr = np.asarray(p, dtype=float)
    out = np.where(np.isfinite(arr), np.clip(arr, eps, 1.0 - eps), np.nan)
    return float(out) if out.ndim == 0 else out


def logit(p, eps: float = PROB_EPS):
    """Log-odds of a clipped probability."""
    c = np.asarray(clip_prob(p, eps), dtype=float)
    out = np.log(c / (1.0 - c))
    return float(out) if out.ndim == 0 else out


def season_label(ts: pd.Timestamp) -> str:
    """Season containing a start time: October onwards opens a new season."""
    ts = pd.Timestamp(ts)
    start = ts.year if ts.month >= 10 else ts.year - 1
    return f"{start}-{start + 1}"


def season_labels(starts: pd.Series) -> pd.Series:
    start_year = starts.dt.year.where(starts.dt.month >= 10, starts.dt.year - 1)
    return start_year.astype(int).astype(str) + "-" + (start_year + 1).astype(int).astype(str)


__all__ = ["clip_prob", "logit", "season_label", "season_labels"]
