"""Dataset integrity validation for the event feature table.

Checks the two-sided event invariant on the raw CSV cells, before any
coercion, so that every defect is reported rather than silently dropped.

Issue Types:
    malformed_event_size - Event does not have exactly two rows
    starts_at_mismatch - The two sides carry different start timestamps
    non_complement_team_win - Labels are not numeric or do not sum to 1
        (a blank label counts as 0)
    opponent_id_mismatch - Opponent ids are not reciprocal
    missing_core_fields - A side is missing team_id, opponent_team_id,
        implied_prob or odds_american_avg

Validation is pure: running it twice on the same rows yields the same report
(apart from created_at).

Usage:
    from edgeguard.data.integrity import validate_integrity

    report = validate_integrity(reader.rows(), input_path=str(reader.path))
    report.print_summary()
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional

from edgeguard.data.schemas import CORE_FIELDS
from edgeguard.errors import DataIntegrityError

logger = logging.getLogger(__name__)

ISSUE_TYPES = (
    "malformed_event_size",
    "starts_at_mismatch",
    "non_complement_team_win",
    "opponent_id_mismatch",
    "missing_core_fields",
)


def _text(v: Any) -> str:
    return "" if v is None else str(v)


def _label(v: Any) -> Optional[float]:
    """Numeric label of a raw cell; blank reads as 0, unparseable as None."""
    text = _text(v).strip()
    if not text:
        return 0.0
    try:
        out = float(text)
    except ValueError:
        return None
    return out if math.isfinite(out) else None


def group_rows(rows: Iterable[Mapping[str, Any]]) -> Dict[str, List[Mapping[str, Any]]]:
    """Group rows by event_id, preserving first-seen order."""
    by_event: Dict[str, List[Mapping[str, Any]]] = {}
    for r in rows:
        by_event.setdefault(_text(r.get("event_id")), []).append(r)
    return by_event


def event_issues(rows: List[Mapping[str, Any]]) -> List[str]:
    """Issue types raised by one event's rows."""
    if len(rows) != 2:
        return ["malformed_event_size"]
    a, b = rows
    found = []
    if _text(a.get("starts_at")) != _text(b.get("starts_at")):
        found.append("starts_at_mismatch")
    aw, bw = _label(a.get("team_win")), _label(b.get("team_win"))
    if aw is None or bw is None or aw + bw != 1:
        found.append("non_complement_team_win")
    if (_text(a.get("opponent_team_id")) != _text(b.get("team_id"))
            or _text(b.get("opponent_team_id")) != _text(a.get("team_id"))):
        found.append("opponent_id_mismatch")
    if any(_text(side.get(col)) == "" for side in (a, b) for col in CORE_FIELDS):
        found.append("missing_core_fields")
    return found


@dataclass
class IntegrityReport:
    """Per-issue event id lists plus counts."""

    input: str
    rows: int
    events: int
    issues: Dict[str, List[str]] = field(default_factory=lambda: {k: [] for k in ISSUE_TYPES})
    created_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @property
    def issue_counts(self) -> Dict[str, int]:
        return {k: len(v) for k, v in self.issues.items()}

    @property
    def total_issue_count(self) -> int:
        return sum(self.issue_counts.values())

    @property
    def is_clean(self) -> bool:
        return self.total_issue_count == 0

    def to_dict(self) -> dict:
        return {
            "created_at": self.created_at,
            "input": self.input,
            "rows": self.rows,
            "events": self.events,
            "issue_counts": self.issue_counts,
            "total_issue_count": self.total_issue_count,
            "issues": self.issues,
        }

    def print_summary(self) -> None:
        print("\n" + "=" * 50)
        print("DATASET INTEGRITY CHECK")
        print("=" * 50)
        print(f"Rows: {self.rows} | Events: {self.events}")
        for name, count in self.issue_counts.items():
            if count:
                print(f"  {name:<26} {count}")
        print(f"Total issues: {self.total_issue_count}")


def validate_integrity(
    rows: Iterable[Mapping[str, Any]],
    input_path: str = "",
    strict: bool = False,
) -> IntegrityReport:
    """Validate the two-sided event invariant.

    Args:
        rows: Raw CSV rows (string cells).
        input_path: Recorded in the report.
        strict: Raise instead of returning when any issue is found.

    Raises:
        DataIntegrityError: In strict mode, when total_issue_count > 0.
    """
    rows = list(rows)
    by_event = group_rows(rows)
    report = IntegrityReport(input=input_path, rows=len(rows), events=len(by_event))
    for event_id, event_rows in by_event.items():
        for issue in event_issues(event_rows):
            report.issues[issue].append(event_id)

    if report.total_issue_count:
        logger.warning("Integrity issues: %s", {k: v for k, v in report.issue_counts.items() if v})
    if strict and not report.is_clean:
        raise DataIntegrityError(
            f"Dataset integrity check failed with {report.total_issue_count} issues: "
            f"{ {k: v for k, v in report.issue_counts.items() if v} }"
        )
    return report


__all__ = ["ISSUE_TYPES", "IntegrityReport", "validate_integrity", "event_issues", "group_rows"]
