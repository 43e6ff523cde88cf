"""Pydantic schemas for the event feature table.

The feature table is produced upstream, one row per team per event. Rows are
validated and coerced here, once, at the ingestion boundary. Everything
downstream works on typed DataFrames.

Models:
    FeatureRecord - One team-side of one event

Column Groups:
    CORE_FIELDS - Fields every side must carry for the event to be usable
    MISSING_GROUP_COLUMNS - Indicators of missing engineered-feature groups
    RECORD_COLUMNS - Columns materialized on the typed frame

Usage:
    from edgeguard.data.schemas import FeatureRecord

    record = FeatureRecord.from_row(csv_row, feature_names=["rest_days_diff"])
    print(record.event_id, record.implied_prob)
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from edgeguard.config import MISSING_FEATURE_GROUPS


CORE_FIELDS = ("team_id", "opponent_team_id", "implied_prob", "odds_american_avg")
MISSING_GROUP_COLUMNS = MISSING_FEATURE_GROUPS

# Derived from implied_prob, never read from the CSV
DERIVED_FEATURES = ("implied_logit",)

RECORD_COLUMNS = (
    "event_id",
    "team_id",
    "opponent_team_id",
    "team_name",
    "is_home",
    "starts_at",
    "implied_prob",
    "odds_american_avg",
    "books_aggregated",
    "team_win",
) + MISSING_GROUP_COLUMNS


def _to_float(value: Any) -> Optional[float]:
    """Parse a CSV cell to a finite float, or None when blank/non-numeric."""
    if value is None:
        return None
    if isinstance(value, str):
        value = value.strip()
        if value == "":
            return None
    try:
        out = float(value)
    except (TypeError, ValueError):
        return None
    return out if math.isfinite(out) else None


class FeatureRecord(BaseModel):
    """One team-side of one event."""

    model_config = ConfigDict(frozen=True)

    event_id: str = Field(min_length=1)
    team_id: str = ""
    opponent_team_id: str = ""
    team_name: str = ""
    is_home: int = 0
    starts_at: datetime
    implied_prob: float
    odds_american_avg: Optional[float] = None
    books_aggregated: float = 0.0
    missing_form_features: float = 0.0
    missing_schedule_features: float = 0.0
    missing_market_features: float = 0.0
    team_win: int
    features: Dict[str, Optional[float]] = Field(default_factory=dict)

    @field_validator("event_id", "team_id", "opponent_team_id", "team_name", mode="before")
    @classmethod
    def _strip_text(cls, v: Any) -> str:
        return "" if v is None else str(v).strip()

    @field_validator("is_home", mode="before")
    @classmethod
    def _parse_home_flag(cls, v: Any) -> int:
        return 1 if str(v).strip() in ("1", "1.0", "true", "True") else 0

    @field_validator("starts_at", mode="before")
    @classmethod
    def _parse_start(cls, v: Any) -> datetime:
        if isinstance(v, datetime):
            ts = v
        else:
            text = str(v or "").strip()
            if not text:
                raise ValueError("starts_at is required")
            ts = datetime.fromisoformat(text.replace("Z", "+00:00"))
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)
        return ts.astimezone(timezone.utc)

    @field_validator("implied_prob", mode="before")
    @classmethod
    def _parse_implied(cls, v: Any) -> float:
        out = _to_float(v)
        if out is None:
            raise ValueError("implied_prob must be a finite number")
        if not 0.0 <= out <= 1.0:
            raise ValueError(f"implied_prob must lie in [0, 1], got {out}")
        return out

    @field_validator("odds_american_avg", mode="before")
    @classmethod
    def _parse_optional(cls, v: Any) -> Optional[float]:
        return _to_float(v)

    @field_validator(
        "books_aggregated",
        "missing_form_features",
        "missing_schedule_features",
        "missing_market_features",
        mode="before",
    )
    @classmethod
    def _parse_count(cls, v: Any) -> float:
        out = _to_float(v)
        return 0.0 if out is None else out

    @field_validator("team_win", mode="before")
    @classmethod
    def _parse_label(cls, v: Any) -> int:
        out = _to_float(v)
        if out not in (0.0, 1.0):
            raise ValueError("team_win must be 0 or 1")
        return int(out)

    @classmethod
    def from_row(
        cls,
        row: Mapping[str, Any],
        feature_names: Iterable[str] = (),
    ) -> "FeatureRecord":
        """Build a record from a raw CSV row.

        Engineered features are parsed leniently: a blank or non-numeric cell
        becomes None and is mean-filled at prediction time.

        Raises:
            pydantic.ValidationError: If a core field cannot be coerced.
        """
        features = {
            name: _to_float(row.get(name))
            for name in feature_names
            if name not in DERIVED_FEATURES
        }
        payload = {col: row.get(col) for col in RECORD_COLUMNS if row.get(col) is not None}
        return cls.model_validate({**payload, "features": features})

    def to_flat_dict(self) -> Dict[str, Any]:
        """Flatten to one dict per row, engineered features as top-level keys."""
        out = self.model_dump(exclude={"features"})
        out.update(self.features)
        return out

