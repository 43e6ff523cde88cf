"""
EdgeGuard - Model Governance for Team-Beats-Opponent Predictions

One model family: L2-regularized logistic regression over standardized features.
One question: does the model beat the market, the heuristics, and a coin?

Structure:
    data/      - Feature table ingestion, schemas, integrity checks
    models/    - Trainer, temporal splits, walk-forward, Monte-Carlo, confidence
    analysis/  - Shared statistics (percentiles, bootstrap, scoring)
    pipeline/  - Governance orchestration (stages, hashing, gates, drift)
    policy/    - Provisional publish and runtime enforcement

Usage:
    from edgeguard.data import load_features
    from edgeguard.models import WalkForwardRunner, WalkForwardConfig
    from edgeguard.pipeline import GovernanceRunner
"""

__all__ = ["__version__"]
__version__ = "0.1.0"
