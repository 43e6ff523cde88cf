"""Read-only access to the event feature table (CSV).

The feature table is the only input of the pipeline. Rows are validated and
coerced once, here, through FeatureRecord; stages receive typed DataFrames.

Key Classes:
    FeatureTableReader - Loads the CSV as raw strings or as a typed frame

Key Methods:
    raw_frame() - Every cell as a string (used by the integrity validator)
    load() - Typed frame with season and implied_logit columns added

Rows that fail validation (unparseable starts_at, non-finite or out-of-range implied_prob,
team_win outside {0, 1}) are dropped and counted in `rejected_rows`.

Usage:
    from edgeguard.data import FeatureTableReader

    reader = FeatureTableReader("storage/event_training_features.csv")
    df = reader.load(features=["implied_logit", "rest_days_diff"])
    print(reader.rejected_rows)
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import numpy as np
import pandas as pd
from pydantic import ValidationError as SchemaError

from edgeguard.config import DEFAULT_INPUT_PATH
from edgeguard.data.schemas import DERIVED_FEATURES, FeatureRecord
from edgeguard.data.transforms import logit, season_labels
from edgeguard.errors import ValidationError

logger = logging.getLogger(__name__)


class FeatureTableReader:
    """CSV client for the per-team, per-event feature table."""

    def __init__(self, path: Optional[str] = None) -> None:
        self.path = Path(path or DEFAULT_INPUT_PATH)
        if not os.path.exists(self.path):
            raise ValidationError(f"Input not found: {self.path}")
        self.rejected_rows = 0
        self._raw: Optional[pd.DataFrame] = None

    def raw_frame(self) -> pd.DataFrame:
        """The CSV with every cell kept as a string (blank cells are "")."""
        if self._raw is None:
            self._raw = pd.read_csv(self.path, dtype=str, keep_default_na=False)
            logger.info("Read %d rows from %s", len(self._raw), self.path)
        return self._raw

    def rows(self) -> List[Dict[str, str]]:
        return self.raw_frame().to_dict(orient="records")

    def load(self, features: Sequence[str] = ("implied_logit",)) -> pd.DataFrame:
        """Validate every row and return a typed frame.

        Args:
            features: Engineered feature columns to carry. `implied_logit` is
                derived from implied_prob and need not be in the CSV.

        Returns:
            DataFrame with FeatureRecord columns, the requested features,
            `season` and `implied_logit`, sorted by (starts_at, event_id); rows of one event keep
            their CSV order.

        Raises:
            ValidationError: If a requested feature column is absent, or no
                row survives validation.
        """
        raw = self.raw_frame()
        absent = [f for f in features if f not in DERIVED_FEATURES and f not in raw.columns]
        if absent:
            raise ValidationError(f"Feature columns not found in {self.path}: {absent}")

        records = []
        self.rejected_rows = 0
        for row in raw.to_dict(orient="records"):
            try:
                records.append(FeatureRecord.from_row(row, features).to_flat_dict())
            except SchemaError as e:
                self.rejected_rows += 1
                logger.debug("Rejected row event_id=%s: %s", row.get("event_id"), e.errors()[0]["msg"])

        if not records:
            raise ValidationError(f"No rows parsed from input: {self.path}")
        if self.rejected_rows:
            logger.warning("Dropped %d invalid rows from %s", self.rejected_rows, self.path)

        df = pd.DataFrame.from_records(records)
        df["starts_at"] = pd.to_datetime(df["starts_at"], utc=True)
        df["odds_american_avg"] = df["odds_american_avg"].astype(float)
        for f in features:
            if f not in DERIVED_FEATURES:
                df[f] = df[f].astype(float)
        df["implied_logit"] = logit(df["implied_prob"].to_numpy(dtype=float))
        df["season"] = season_labels(df["starts_at"])
        return df.sort_values(["starts_at", "event_id"], kind="mergesort").reset_index(drop=True)


def load_features(path: Optional[str], features: Sequence[str]) -> pd.DataFrame:
    """Convenience wrapper: read and validate in one call."""
    return FeatureTableReader(path).load(features)


def rows_missing_odds(df: pd.DataFrame) -> int:
    return int((~np.isfinite(df["odds_american_avg"].to_numpy(dtype=float))).sum())


__all__ = ["FeatureTableReader", "load_features", "rows_missing_odds"]
