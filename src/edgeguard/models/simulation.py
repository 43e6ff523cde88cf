"""Bankroll simulation for a chronological sequence of picks.

Every stage settles bets here, so stake sizing, odds, and accounting are
identical across walk-forward, Monte-Carlo, confidence and paper backtests.

Key Classes:
    StakePlan - Bankroll, flat stake, stake cap, slippage, odds source
    Bankroll - Mutable running state; settles one bet at a time
    SimulationResult - Summary of a settled sequence

Key Functions:
    simulate_flat() - Flat (optionally bucket-weighted) staking
    simulate_kelly() - Capped fractional Kelly staking

Staking Rules:
    stake = min(flat_stake * multiplier, bankroll * max_stake_pct, bankroll)
    - A stake <= 0 places no bet
    - A pick without valid decimal odds places no bet
    - Winning profit = stake * (decimal_odds - 1); losing profit = -stake

Odds Sources:
    american - Pick's average American odds with a slippage haircut
    fair - 1 / clip(market implied probability)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Literal, Optional, Sequence

import numpy as np

from edgeguard.errors import ValidationError
from edgeguard.models.picks import Pick
from edgeguard.models.probability import american_to_decimal, apply_slippage, fair_decimal_odds

OddsSource = Literal["american", "fair"]


@dataclass(frozen=True)
class StakePlan:
    """Staking configuration.

    Attributes:
        bankroll: Starting bankroll.
        flat_stake: Base stake per bet.
        max_stake_pct: Cap on stake as a fraction of current bankroll.
        slippage_bps: Haircut on the profit part of American-derived odds.
        odds_source: "american" or "fair".
    """
    bankroll: float = 10000.0
    flat_stake: float = 100.0
    max_stake_pct: float = 1.0
    slippage_bps: float = 0.0
    odds_source: OddsSource = "american"

    def __post_init__(self):
        if not self.bankroll > 0:
            raise ValidationError(f"bankroll must be > 0, got {self.bankroll}")
        if not self.flat_stake > 0:
            raise ValidationError(f"flat_stake must be > 0, got {self.flat_stake}")
        if not 0 < self.max_stake_pct <= 1:
            raise ValidationError(f"max_stake_pct must be in (0, 1], got {self.max_stake_pct}")
        if self.slippage_bps < 0:
            raise ValidationError(f"slippage_bps must be >= 0, got {self.slippage_bps}")
        if self.odds_source not in ("american", "fair"):
            raise ValidationError(f"Unknown odds_source: {self.odds_source}")

    def decimal_odds(self, pick: Pick) -> float:
        """Payout odds for a pick; NaN when unusable."""
        if self.odds_source == "fair":
            return fair_decimal_odds(pick.p_market)
        if pick.odds_american_avg is None:
            return float("nan")
        return apply_slippage(american_to_decimal(pick.odds_american_avg), self.slippage_bps)


@dataclass
class SimulationResult:
    """Outcome of a settled pick sequence."""

    bankroll_start: float
    bankroll_end: float
    total_staked: float
    n_bets: int
    wins: int
    losses: int
    max_drawdown: float
    profits: List[float] = field(default_factory=list)
    stakes: List[float] = field(default_factory=list)
    ledger: Optional[List[dict]] = None
    strategy: str = "flat"
    avg_edge: float = 0.0

    @property
    def accrued_income(self) -> float:
        return self.bankroll_end - self.bankroll_start

    @property
    def roi_on_staked(self) -> float:
        return self.accrued_income / self.total_staked if self.total_staked > 0 else 0.0

    @property
    def win_rate(self) -> float:
        return self.wins / self.n_bets if self.n_bets else 0.0

    def to_dict(self, include_sequences: bool = False) -> dict:
        out = {
            "strategy": self.strategy,
            "bankroll_start": self.bankroll_start,
            "bankroll_end": self.bankroll_end,
            "accrued_income": self.accrued_income,
            "total_staked": self.total_staked,
            "roi_on_staked": self.roi_on_staked,
            "n_bets": self.n_bets,
            "wins": self.wins,
            "losses": self.losses,
            "win_rate": self.win_rate,
            "max_drawdown": self.max_drawdown,
            "avg_edge": self.avg_edge,
        }
        if include_sequences:
            out["profits"] = list(self.profits)
            out["stakes"] = list(self.stakes)
        if self.ledger is not None:
            out["ledger"] = self.ledger
        return out

    def __repr__(self) -> str:
        return (
            f"SimulationResult(bets={self.n_bets}, income={self.accrued_income:.2f}, "
            f"roi={self.roi_on_staked:.4f}, max_dd={self.max_drawdown:.3f})"
        )


class Bankroll:
    """Running bankroll with peak-to-trough drawdown tracking."""

    def __init__(self, start: float, keep_ledger: bool = False):
        self.start = start
        self.balance = start
        self.peak = start
        self.max_drawdown = 0.0
        self.total_staked = 0.0
        self.wins = 0
        self.losses = 0
        self.profits: List[float] = []
        self.stakes: List[float] = []
        self.edges: List[float] = []
        self.ledger: Optional[List[dict]] = [] if keep_ledger else None

    @property
    def n_bets(self) -> int:
        return self.wins + self.losses

    def settle(self, pick: Pick, stake: float, decimal_odds: float) -> Optional[dict]:
        """Settle one bet. Returns the ledger entry, or None when no bet is placed."""
        stake = min(stake, self.balance)
        if stake <= 0 or not np.isfinite(decimal_odds):
            return None

        profit = stake * (decimal_odds - 1.0) if pick.won else -stake
        self.balance += profit
        self.total_staked += stake
        if pick.won:
            self.wins += 1
        else:
            self.losses += 1
        self.profits.append(profit)
        self.stakes.append(stake)
        self.edges.append(pick.edge)

        self.peak = max(self.peak, self.balance)
        dd = (self.peak - self.balance) / self.peak if self.peak > 0 else 0.0
        self.max_drawdown = max(self.max_drawdown, dd)

        entry = {
            **pick.to_dict(),
            "decimal_odds": float(decimal_odds),
            "stake": stake,
            "won": int(pick.won),
            "profit": profit,
            "bankroll_after": self.balance,
        }
        if self.ledger is not None:
            self.ledger.append(entry)
        return entry

    def result(self, strategy: str = "flat") -> SimulationResult:
        return SimulationResult(
            bankroll_start=self.start,
            bankroll_end=self.balance,
            total_staked=self.total_staked,
            n_bets=self.n_bets,
            wins=self.wins,
            losses=self.losses,
            max_drawdown=self.max_drawdown,
            profits=list(self.profits),
            stakes=list(self.stakes),
            ledger=self.ledger,
            strategy=strategy,
            avg_edge=float(np.mean(self.edges)) if self.edges else 0.0,
        )


def simulate_flat(
    picks: Sequence[Pick],
    plan: StakePlan,
    multipliers: Optional[Dict[str, float]] = None,
    keep_ledger: bool = False,
) -> SimulationResult:
    """Settle picks in order with flat staking.

    Args:
        picks: Chronologically ordered picks.
        plan: Staking configuration.
        multipliers: Optional bucket -> fraction of flat stake. Picks whose
            bucket maps to 0 (or is absent) are not bet.
        keep_ledger: Record one entry per settled bet.
    """
    book = Bankroll(plan.bankroll, keep_ledger=keep_ledger)
    for pick in picks:
        mult = 1.0 if multipliers is None else multipliers.get(pick.bucket or "", 0.0)
        stake = min(plan.flat_stake * mult, book.balance * plan.max_stake_pct, book.balance)
        if stake <= 0:
            continue
        book.settle(pick, stake, plan.decimal_odds(pick))
    return book.result("flat")


def kelly_fraction(p: float, decimal_odds: float, fraction: float, cap: float) -> float:
    """Scaled Kelly fraction of bankroll, clamped to [0, cap]."""
    b = decimal_odds - 1.0
    if not np.isfinite(b) or b <= 0:
        return 0.0
    raw = (b * p - (1.0 - p)) / b
    return max(0.0, min(cap, raw * fraction))


def simulate_kelly(
    picks: Sequence[Pick],
    plan: StakePlan,
    fraction: float = 0.25,
    cap: float = 0.03,
    keep_ledger: bool = False,
) -> SimulationResult:
    """Settle picks with capped fractional Kelly sizing on the model probability."""
    book = Bankroll(plan.bankroll, keep_ledger=keep_ledger)
    for pick in picks:
        odds = plan.decimal_odds(pick)
        frac = kelly_fraction(pick.p_model, odds, fraction, cap)
        if frac <= 0:
            continue
        book.settle(pick, book.balance * frac, odds)
    return book.result("fractional_kelly")


__all__ = [
    "StakePlan",
    "SimulationResult",
    "Bankroll",
    "simulate_flat",
    "simulate_kelly",
    "kelly_fraction",
]
