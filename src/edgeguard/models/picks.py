"""Event grouping and pick selection.

A pick is one side of one two-sided event. The model picks the side it rates
most likely; the heuristic baselines pick by market probability alone.

Baselines:
    favorite - Side with the higher implied probability
    underdog - Side with the lower implied probability
    market_top_prob - Highest market probability (same side as favorite)

If the model cannot beat these on the events it chose to bet, its signal is
not worth acting on.

Usage:
    from edgeguard.models.picks import group_events, select_model_picks

    groups = group_events(test_df)
    picks, bet_ids = select_model_picks(groups.events, edge_min=0.0)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

import numpy as np
import pandas as pd

Side = Dict[str, Any]
Event = List[Side]


@dataclass
class Pick:
    """A single bet candidate."""

    event_id: str
    starts_at: pd.Timestamp
    team_id: str
    team_name: str
    p_model: float
    p_market: float
    edge: float
    odds_american_avg: Optional[float]
    team_win: int
    confidence_score: Optional[float] = None
    bucket: Optional[str] = None

    @property
    def won(self) -> bool:
        return self.team_win == 1

    def to_dict(self) -> dict:
        odds = self.odds_american_avg
        out = {
            "event_id": self.event_id,
            "starts_at": pd.Timestamp(self.starts_at).isoformat(),
            "team_id": self.team_id,
            "team_name": self.team_name,
            "p_model": self.p_model,
            "p_market": self.p_market,
            "edge": self.edge,
            "odds_american_avg": odds if odds is not None and np.isfinite(odds) else None,
            "team_win": self.team_win,
        }
        if self.confidence_score is not None:
            out["confidence_score"] = self.confidence_score
        if self.bucket is not None:
            out["bucket"] = self.bucket
        return out


@dataclass
class EventGroups:
    """Test rows grouped into events.

    Attributes:
        events: Two-sided events, ordered by (start time, event id).
        malformed_event_ids: Events without exactly two sides (excluded).
        raw_events: Number of distinct event ids seen.
    """
    events: List[Event] = field(default_factory=list)
    malformed_event_ids: List[str] = field(default_factory=list)
    raw_events: int = 0

    @property
    def n_malformed(self) -> int:
        return len(self.malformed_event_ids)


def group_events(df: pd.DataFrame) -> EventGroups:
    """Group rows by event id; keep only events with exactly two sides."""
    by_event: Dict[str, Event] = {}
    for row in df.to_dict(orient="records"):
        by_event.setdefault(str(row["event_id"]), []).append(row)

    groups = EventGroups(raw_events=len(by_event))
    for event_id, sides in by_event.items():
        if len(sides) != 2:
            groups.malformed_event_ids.append(event_id)
            continue
        groups.events.append(sides)
    groups.events.sort(key=lambda sides: (pd.Timestamp(sides[0]["starts_at"]), str(sides[0]["event_id"])))
    return groups


# Side selectors. Ties go to the first listed side.

def model_side(sides: Event) -> Side:
    return max(sides, key=lambda r: r["p_model"])


def favorite_side(sides: Event) -> Side:
    return max(sides, key=lambda r: r["implied_prob"])


def underdog_side(sides: Event) -> Side:
    return min(sides, key=lambda r: r["implied_prob"])


def market_top_side(sides: Event) -> Side:
    return favorite_side(sides)


BASELINE_SELECTORS: Dict[str, Callable[[Event], Side]] = {
    "favorite": favorite_side,
    "underdog": underdog_side,
    "market_top_prob": market_top_side,
}


def side_edge(side: Side) -> float:
    return float(side["p_model"]) - float(side["implied_prob"])


def make_pick(side: Side) -> Pick:
    odds = side.get("odds_american_avg")
    p_model = float(side.get("p_model", np.nan))
    return Pick(
        event_id=str(side["event_id"]),
        starts_at=pd.Timestamp(side["starts_at"]),
        team_id=str(side.get("team_id", "")),
        team_name=str(side.get("team_name", "")),
        p_model=p_model,
        p_market=float(side["implied_prob"]),
        edge=p_model - float(side["implied_prob"]),
        odds_american_avg=None if odds is None else float(odds),
        team_win=int(side["team_win"]),
    )


def select_model_picks(events: List[Event], edge_min: float) -> Tuple[List[Pick], Set[str]]:
    """One pick per event: the model-preferred side, kept when edge >= edge_min.

    Returns:
        (picks in event order, ids of events the model bet)
    """
    picks: List[Pick] = []
    bet_ids: Set[str] = set()
    for sides in events:
        top = model_side(sides)
        if side_edge(top) >= edge_min:
            pick = make_pick(top)
            picks.append(pick)
            bet_ids.add(pick.event_id)
    return picks, bet_ids


def select_baseline_picks(events: List[Event], bet_ids: Set[str], baseline: str) -> List[Pick]:
    """Baseline picks restricted to the events the model bet."""
    selector = BASELINE_SELECTORS[baseline]
    return [make_pick(selector(sides)) for sides in events if str(sides[0]["event_id"]) in bet_ids]


def event_label(sides: Event) -> str:
    """"Away @ Home" when home/away is known, else "A vs B"."""
    home = next((r for r in sides if int(r.get("is_home", 0)) == 1), None)
    away = next((r for r in sides if int(r.get("is_home", 0)) == 0), None)
    if home is not None and away is not None:
        return f"{away.get('team_name', '')} @ {home.get('team_name', '')}"
    names = list(dict.fromkeys(r.get("team_name", "") for r in sides if r.get("team_name")))
    return " vs ".join(names)


__all__ = [
    "Pick",
    "EventGroups",
    "group_events",
    "model_side",
    "favorite_side",
    "underdog_side",
    "market_top_side",
    "BASELINE_SELECTORS",
    "side_edge",
    "make_pick",
    "select_model_picks",
    "select_baseline_picks",
    "event_label",
]
