"""Model training, temporal evaluation, and bankroll simulation."""

from edgeguard.models.backtest import PaperBacktest, PaperBacktestConfig
from edgeguard.models.confidence import ConfidenceBacktest, ConfidenceConfig, ThresholdTuner
from edgeguard.models.logistic import LogisticModel, TrainParams, train_logistic
from edgeguard.models.monte_carlo import (
    HeadToHeadComparator,
    HeadToHeadConfig,
    MonteCarloComparator,
    MonteCarloConfig,
    Mulberry32,
)
from edgeguard.models.simulation import SimulationResult, StakePlan, simulate_flat
from edgeguard.models.splits import DateWindow, TemporalSplitter, check_leakage
from edgeguard.models.walk_forward import WalkForwardConfig, WalkForwardRunner

__all__ = [
    "ConfidenceBacktest",
    "ConfidenceConfig",
    "DateWindow",
    "HeadToHeadComparator",
    "HeadToHeadConfig",
    "LogisticModel",
    "MonteCarloComparator",
    "MonteCarloConfig",
    "Mulberry32",
    "PaperBacktest",
    "PaperBacktestConfig",
    "SimulationResult",
    "StakePlan",
    "TemporalSplitter",
    "ThresholdTuner",
    "TrainParams",
    "WalkForwardConfig",
    "WalkForwardRunner",
    "check_leakage",
    "simulate_flat",
    "train_logistic",
]
