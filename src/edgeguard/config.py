"""Centralized configuration for EdgeGuard.

All paths, numerical constants, and model presets in one place.
Environment variables can override the storage defaults.

Path Constants:
    PROJECT_ROOT - Root directory of the project
    STORAGE_DIR - Storage for datasets and reports (overridable via EDGEGUARD_STORAGE_DIR)
    REPORTS_DIR - Sub-pipeline report documents
    GOVERNANCE_DIR - Governance run reports
    DEFAULT_INPUT_PATH - Event feature table (overridable via EDGEGUARD_INPUT)

Model Constants:
    PROB_EPS - Probability clip bound (keeps log-odds finite)
    STD_FLOOR - Standard deviations below this are replaced by 1
    MODEL_TRACKS - Named feature/hyperparameter presets

Environment Variables:
    EDGEGUARD_STORAGE_DIR - Override storage root
    EDGEGUARD_INPUT - Override default feature table path
    EDGEGUARD_LOG_LEVEL - Default CLI log level
"""

from __future__ import annotations

import os
from pathlib import Path

# Project root (src/edgeguard/config.py -> edgeguard -> src -> project_root)
PROJECT_ROOT = Path(__file__).parent.parent.parent
STORAGE_DIR = Path(os.environ.get("EDGEGUARD_STORAGE_DIR", str(PROJECT_ROOT / "storage")))
REPORTS_DIR = STORAGE_DIR / "reports"
GOVERNANCE_DIR = REPORTS_DIR / "governance"
MODELS_DIR = STORAGE_DIR / "models"

DEFAULT_INPUT_PATH = os.environ.get(
    "EDGEGUARD_INPUT",
    str(STORAGE_DIR / "event_training_features.csv"),
)
DEFAULT_PROVISIONAL_PATH = REPORTS_DIR / "provisional_policy_state.json"
DEFAULT_RUNTIME_PATH = REPORTS_DIR / "runtime_policy_state.json"

LOG_LEVEL = os.environ.get("EDGEGUARD_LOG_LEVEL", "INFO")

# Numerics
PROB_EPS = 1e-6
STD_FLOOR = 1e-8
MIN_DECIMAL_ODDS = 1.000001

# Confidence score composition (weights sum to 1)
EDGE_WEIGHT = 0.60
LIQUIDITY_WEIGHT = 0.25
COMPLETENESS_WEIGHT = 0.15
LIQUIDITY_SATURATION_BOOKS = 8.0
MISSING_FEATURE_GROUPS = (
    "missing_form_features",
    "missing_schedule_features",
    "missing_market_features",
)

# Stake multipliers per confidence policy: bucket -> fraction of flat stake
POLICY_MULTIPLIERS = {
    "A_only": {"A": 1.0, "B": 0.0, "C": 0.0},
    "A_B": {"A": 1.0, "B": 0.5, "C": 0.0},
    "all": {"A": 1.0, "B": 0.5, "C": 0.25},
}

# Governance
DRIFT_MARGIN = 0.02
GOVERNANCE_PREFIX = "governance_"

# Model tracks
# NOTE: Track A is the production default. B is a robustness check on A,
# C is allowed only when A and B already pass governance.
MODEL_TRACKS = {
    "a": {
        "id": "track_a_anchor",
        "description": "Market-logit anchor (minimal transform of implied probability).",
        "features": ("implied_logit",),
        "iters": 12000,
        "lr": 0.0025,
        "l2": 0.01,
    },
    "b": {
        "id": "track_b_regularized",
        "description": "Anchor variant with slightly higher regularization.",
        "features": ("implied_logit",),
        "iters": 10000,
        "lr": 0.003,
        "l2": 0.015,
    },
    "c": {
        "id": "track_c_optional_nonlinear",
        "description": "Constrained residual add-on over the market anchor.",
        "features": (
            "implied_logit",
            "rest_days_diff",
            "rolling_win_rate_diff_10",
            "market_dispersion_total",
        ),
        "iters": 10000,
        "lr": 0.003,
        "l2": 0.01,
    },
}
DEFAULT_TRACK = "a"
