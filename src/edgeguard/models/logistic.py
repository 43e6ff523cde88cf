"""L2-regularized logistic regression trained by batch gradient descent.

The model family is fixed: standardized numeric features, sigmoid link,
fixed iteration count, no convergence check. Training is deterministic:
same rows and parameters give bit-identical weights.

Key Classes:
    TrainParams - Feature list and optimizer hyperparameters
    LogisticModel - Fitted weights, bias, and training-set feature stats

Key Functions:
    train_logistic() - Fit a LogisticModel on a typed feature frame
    feature_matrix() - Extract raw feature values (NaN where missing)

Update Rule (per iteration, n = training rows):
    w <- w - lr * (X^T (p - y) / n + l2 * w)
    b <- b - lr * sum(p - y) / n

Usage:
    from edgeguard.models.logistic import TrainParams, train_logistic

    model = train_logistic(train_df, TrainParams(features=("implied_logit",)))
    probs = model.predict_proba(test_df)
    model.save(MODELS_DIR / "track_a.joblib")
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Dict, Optional, Sequence, Tuple

import joblib
import numpy as np
import pandas as pd

from edgeguard.config import DEFAULT_TRACK, MODEL_TRACKS, PROB_EPS, STD_FLOOR
from edgeguard.errors import InsufficientDataError, ValidationError
from edgeguard.models.probability import clip_prob, sigmoid

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TrainParams:
    """Trainer configuration.

    Attributes:
        features: Feature column names, in weight order.
        iters: Gradient-descent iterations.
        lr: Learning rate.
        l2: L2 penalty on weights (bias is not penalized).
    """
    features: Tuple[str, ...] = ("implied_logit",)
    iters: int = 12000
    lr: float = 0.0025
    l2: float = 0.01

    def __post_init__(self):
        if not self.features:
            raise ValidationError("At least one feature is required.")
        if self.iters < 1:
            raise ValidationError(f"iters must be >= 1, got {self.iters}")
        if not self.lr > 0:
            raise ValidationError(f"lr must be > 0, got {self.lr}")
        if self.l2 < 0:
            raise ValidationError(f"l2 must be >= 0, got {self.l2}")
        object.__setattr__(self, "features", tuple(self.features))

    @classmethod
    def from_track(cls, track: str = DEFAULT_TRACK, **overrides) -> "TrainParams":
        """Build params from a named model track, with optional overrides."""
        if track not in MODEL_TRACKS:
            raise ValidationError(
                f"Unknown track: {track}. Must be one of: {sorted(MODEL_TRACKS)}"
            )
        preset = MODEL_TRACKS[track]
        values = {
            "features": preset["features"],
            "iters": preset["iters"],
            "lr": preset["lr"],
            "l2": preset["l2"],
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    def to_dict(self) -> Dict:
        out = asdict(self)
        out["features"] = list(self.features)
        return out


def feature_matrix(df: pd.DataFrame, features: Sequence[str]) -> np.ndarray:
    """Raw feature values as a float matrix; missing cells are NaN."""
    missing = [f for f in features if f not in df.columns]
    if missing:
        raise ValidationError(f"Feature columns not found: {missing}")
    return df[list(features)].apply(pd.to_numeric, errors="coerce").to_numpy(dtype=float)


def _feature_stats(X: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Per-column mean and sample std over finite values only."""
    n_feat = X.shape[1]
    means = np.zeros(n_feat)
    stds = np.ones(n_feat)
    for j in range(n_feat):
        col = X[:, j]
        vals = col[np.isfinite(col)]
        m = float(vals.mean()) if vals.size else 0.0
        if vals.size:
            var = float(((vals - m) ** 2).sum()) / max(1, vals.size - 1)
        else:
            var = 0.0
        s = float(np.sqrt(var))
        means[j] = m if np.isfinite(m) else 0.0
        stds[j] = s if np.isfinite(s) and s > STD_FLOOR else 1.0
    return means, stds


@dataclass(frozen=True, eq=False)
class LogisticModel:
    """A fitted logistic model. Immutable once trained.

    Attributes:
        features: Feature names, aligned with weights.
        weights: Coefficients on the standardized features.
        bias: Intercept.
        means: Training-set feature means (also the fill value for missing cells).
        stds: Training-set sample standard deviations (near-zero replaced by 1).
        params: Hyperparameters the model was trained with.
    """
    features: Tuple[str, ...]
    weights: np.ndarray
    bias: float
    means: np.ndarray
    stds: np.ndarray
    params: TrainParams = field(default_factory=TrainParams)
    n_train: int = 0

    def standardize(self, X: np.ndarray) -> np.ndarray:
        filled = np.where(np.isfinite(X), X, self.means)
        return (filled - self.means) / self.stds

    def decision_function(self, df: pd.DataFrame) -> np.ndarray:
        Z = self.standardize(feature_matrix(df, self.features))
        return Z @ self.weights + self.bias

    def predict_proba(self, df: pd.DataFrame) -> np.ndarray:
        """Win probability per row, clipped to (PROB_EPS, 1 - PROB_EPS)."""
        return np.asarray(clip_prob(sigmoid(self.decision_function(df)), PROB_EPS), dtype=float)

    def to_dict(self) -> Dict:
        return {
            "features": list(self.features),
            "weights": [float(w) for w in self.weights],
            "bias": float(self.bias),
            "means": [float(m) for m in self.means],
            "stds": [float(s) for s in self.stds],
            "params": self.params.to_dict(),
            "n_train": self.n_train,
        }

    def save(self, path: Path) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        joblib.dump({"model": self.to_dict()}, path)
        logger.info("Saved model to %s", path)
        return path

    @classmethod
    def load(cls, path: Path) -> "LogisticModel":
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Model artifact not found: {path}")
        payload = joblib.load(path)["model"]
        params = payload["params"]
        return cls(
            features=tuple(payload["features"]),
            weights=np.asarray(payload["weights"], dtype=float),
            bias=float(payload["bias"]),
            means=np.asarray(payload["means"], dtype=float),
            stds=np.asarray(payload["stds"], dtype=float),
            params=TrainParams(
                features=tuple(params["features"]),
                iters=params["iters"],
                lr=params["lr"],
                l2=params["l2"],
            ),
            n_train=int(payload.get("n_train", 0)),
        )


def train_logistic(
    train_df: pd.DataFrame,
    params: Optional[TrainParams] = None,
    label_column: str = "team_win",
) -> LogisticModel:
    """Fit a LogisticModel by fixed-iteration batch gradient descent.

    Args:
        train_df: Typed feature frame (one row per team per event).
        params: Trainer configuration (defaults to track A).
        label_column: 0/1 outcome column.

    Returns:
        Frozen LogisticModel.

    Raises:
        InsufficientDataError: If train_df is empty.
    """
    params = params or TrainParams()
    if train_df.empty:
        raise InsufficientDataError("Cannot train on an empty frame.")

    X_raw = feature_matrix(train_df, params.features)
    y = train_df[label_column].to_numpy(dtype=float)
    means, stds = _feature_stats(X_raw)
    X = (np.where(np.isfinite(X_raw), X_raw, means) - means) / stds

    n = len(y) or 1
    w = np.zeros(X.shape[1])
    b = 0.0
    for _ in range(params.iters):
        err = sigmoid(X @ w + b) - y
        w = w - params.lr * ((X.T @ err) / n + params.l2 * w)
        b = b - params.lr * float(err.sum()) / n

    logger.debug("Trained logistic model on %d rows: w=%s b=%.6f", len(y), w, b)
    return LogisticModel(
        features=params.features,
        weights=w,
        bias=float(b),
        means=means,
        stds=stds,
        params=params,
        n_train=int(len(y)),
    )


def with_predictions(model: LogisticModel, df: pd.DataFrame) -> pd.DataFrame:
    """Copy of df with a `p_model` column."""
    out = df.copy()
    out["p_model"] = model.predict_proba(df)
    return out


__all__ = ["TrainParams", "LogisticModel", "train_logistic", "feature_matrix", "with_predictions"]
