"""Probability and odds transforms shared by every stage.

All functions accept scalars or NumPy arrays.

Key Functions:
    clip_prob() - Clip into (eps, 1 - eps)
    logit() - Log-odds of a clipped probability
    sigmoid() - Numerically stable logistic link (scipy.special.expit)
    american_to_decimal() - American moneyline -> decimal payout odds
    fair_decimal_odds() - 1 / clipped market probability
    apply_slippage() - Haircut on the profit part of decimal odds
"""

from __future__ import annotations

import numpy as np
from scipy.special import expit

from edgeguard.config import MIN_DECIMAL_ODDS
from edgeguard.data.transforms import clip_prob, logit


def sigmoid(z):
    """Logistic link, stable for large |z|."""
    out = expit(np.asarray(z, dtype=float))
    return float(out) if out.ndim == 0 else out


def american_to_decimal(american):
    """Convert American odds to decimal odds.

    +150 -> 2.5, -200 -> 1.5. Zero and non-finite values map to NaN.
    """
    a = np.asarray(american, dtype=float)
    with np.errstate(divide="ignore", invalid="ignore"):
        out = np.where(a > 0, 1.0 + a / 100.0, 1.0 + 100.0 / np.abs(a))
    out = np.where(np.isfinite(a) & (a != 0), out, np.nan)
    return float(out) if out.ndim == 0 else out


def fair_decimal_odds(implied_prob):
    """Decimal odds that exactly pay out the market-implied probability."""
    c = np.asarray(clip_prob(implied_prob), dtype=float)
    out = 1.0 / c
    return float(out) if out.ndim == 0 else out


def apply_slippage(decimal_odds, slippage_bps: float):
    """Shave `slippage_bps` basis points off the profit part of the odds.

    The result never drops below MIN_DECIMAL_ODDS, so a winning bet always
    returns the stake.
    """
    d = np.asarray(decimal_odds, dtype=float)
    factor = 1.0 - slippage_bps / 10000.0
    adj = 1.0 + np.maximum(0.0, (d - 1.0) * factor)
    out = np.where(np.isfinite(d), np.maximum(MIN_DECIMAL_ODDS, adj), np.nan)
    return float(out) if out.ndim == 0 else out


__all__ = [
    "clip_prob",
    "logit",
    "sigmoid",
    "american_to_decimal",
    "fair_decimal_odds",
    "apply_slippage",
]
