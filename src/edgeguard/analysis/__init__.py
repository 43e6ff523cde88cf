"""Statistics and probability scoring shared by every stage."""

from edgeguard.analysis.metrics import (
    BootstrapCI,
    ProbabilityScores,
    bootstrap_ci,
    mean,
    percentile,
    score_probabilities,
    std,
)

__all__ = [
    "BootstrapCI",
    "ProbabilityScores",
    "bootstrap_ci",
    "mean",
    "percentile",
    "score_probabilities",
    "std",
]
