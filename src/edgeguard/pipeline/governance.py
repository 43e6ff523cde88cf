"""Governance orchestrator: one pipeline run, one health verdict.

Runs the four evaluation stages strictly in sequence and folds their
artifacts into a single governance report.

Stages Executed:
    integrity     -> <run_id>_integrity.json
    walk_forward  -> <run_id>_walk_forward.json
    confidence    -> <run_id>_confidence.json
    coin_mc       -> <run_id>_coin_mc.json
    (report)      -> <run_id>.json

Each stage reads the input CSV on its own and communicates only through its
artifact. The first failing stage aborts the run: later stages are marked
skipped, a "failed" report is written, and PipelineFailure is raised.

Health Gates (any failure becomes an alert):
    - Zero dataset integrity issues
    - Walk-forward ROI mean > min_walk_forward_roi_mean
    - Walk-forward beat-coin mean >= min_walk_forward_beat_coin_mean
    - Confidence A_B ROI > min_confidence_ab_roi
    - Confidence A_B bets >= min_confidence_ab_bets
    - Walk-forward ROI mean has not dropped by more than DRIFT_MARGIN
      against the latest earlier non-failed report

Status is "healthy" iff there are no alerts, otherwise "attention".

Usage:
    from edgeguard.pipeline.governance import GovernanceConfig, GovernanceRunner

    report = GovernanceRunner(GovernanceConfig(input_path="features.csv")).run()
    report.print_summary()
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, List, NamedTuple, Optional

from edgeguard.config import DEFAULT_INPUT_PATH, DEFAULT_TRACK, DRIFT_MARGIN, GOVERNANCE_DIR, GOVERNANCE_PREFIX
from edgeguard.data.integrity import validate_integrity
from edgeguard.data.reader import FeatureTableReader
from edgeguard.errors import PipelineFailure, ValidationError
from edgeguard.models.confidence import ConfidenceBacktest, ConfidenceConfig
from edgeguard.models.logistic import TrainParams
from edgeguard.models.monte_carlo import MonteCarloComparator, MonteCarloConfig
from edgeguard.models.splits import DateWindow
from edgeguard.models.walk_forward import WalkForwardConfig, WalkForwardRunner
from edgeguard.pipeline.artifacts import read_json, run_stamp, sha256_file, write_json

logger = logging.getLogger(__name__)

STAGE_SUFFIXES = {
    "integrity": "_integrity",
    "walk_forward": "_walk_forward",
    "confidence": "_confidence",
    "coin_mc": "_coin_mc",
}

REPORT_NAME = re.compile(rf"^{GOVERNANCE_PREFIX}\d{{4}}-\d{{2}}-\d{{2}}T[\d-]+Z\.json$")


class StageResult(NamedTuple):
    """Outcome of one governance stage."""
    name: str
    status: str  # ok | failed | skipped
    duration_sec: float
    artifact: Optional[str]
    error_type: Optional[str] = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    def to_dict(self) -> dict:
        return {
            "stage": self.name,
            "status": self.status,
            "duration_sec": round(self.duration_sec, 3),
            "artifact": self.artifact,
            "error_type": self.error_type,
            "message": self.message,
        }


@dataclass(frozen=True)
class GovernanceThresholds:
    min_walk_forward_roi_mean: float = 0.0
    min_walk_forward_beat_coin_mean: float = 0.9
    min_confidence_ab_roi: float = 0.0
    min_confidence_ab_bets: int = 20

    def to_dict(self) -> dict:
        return {
            "min_wf_roi_mean": self.min_walk_forward_roi_mean,
            "min_wf_beat_coin_mean": self.min_walk_forward_beat_coin_mean,
            "min_conf_ab_roi": self.min_confidence_ab_roi,
            "min_conf_ab_bets": self.min_confidence_ab_bets,
        }


@dataclass(frozen=True)
class GovernanceConfig:
    """Governance run configuration.

    Attributes:
        input_path: Feature table CSV.
        out_dir: Directory for the report and every stage artifact.
        thresholds: Health gate thresholds.
        walk_forward / confidence / monte_carlo: Stage configurations.
        drift_margin: Allowed drop in walk-forward ROI mean between runs.
        strict_integrity: Fail the integrity stage on any issue.
    """
    input_path: str = DEFAULT_INPUT_PATH
    out_dir: str = str(GOVERNANCE_DIR)
    thresholds: GovernanceThresholds = field(default_factory=GovernanceThresholds)
    walk_forward: WalkForwardConfig = field(default_factory=lambda: WalkForwardConfig(slippage_bps=25.0))
    confidence: ConfidenceConfig = field(default_factory=ConfidenceConfig)
    monte_carlo: MonteCarloConfig = field(default_factory=MonteCarloConfig)
    drift_margin: float = DRIFT_MARGIN
    strict_integrity: bool = False

    def __post_init__(self):
        if self.drift_margin < 0:
            raise ValidationError(f"drift_margin must be >= 0, got {self.drift_margin}")

    @classmethod
    def for_track(
        cls,
        track: str = DEFAULT_TRACK,
        window: Optional[DateWindow] = None,
        iters: Optional[int] = None,
        coin_seeds: int = 200,
        bootstrap_samples: int = 1000,
        **kwargs,
    ) -> "GovernanceConfig":
        """Stage configs sharing one model track and date window."""
        train = TrainParams.from_track(track, iters=iters)
        window = window or DateWindow()
        return cls(
            walk_forward=WalkForwardConfig(
                train=train, slippage_bps=25.0, coin_seeds=coin_seeds, bootstrap_samples=bootstrap_samples,
            ),
            confidence=ConfidenceConfig(window=window, train=train),
            monte_carlo=MonteCarloConfig(window=window, train=train, seeds=coin_seeds),
            **kwargs,
        )


def is_governance_report(path: Path) -> bool:
    """True for run reports, False for stage artifacts."""
    return bool(REPORT_NAME.match(path.name))


def list_governance_reports(governance_dir) -> List[Path]:
    """Run reports in a directory, oldest first."""
    root = Path(governance_dir)
    if not root.exists():
        return []
    return sorted(p for p in root.iterdir() if p.is_file() and is_governance_report(p))


def latest_governance_report(governance_dir) -> Optional[Path]:
    reports = list_governance_reports(governance_dir)
    return reports[-1] if reports else None


def previous_report(governance_dir, before: str) -> Optional[Path]:
    """Most recent non-failed report whose name sorts before `before`."""
    for path in reversed(list_governance_reports(governance_dir)):
        if path.name >= before:
            continue
        try:
            doc = read_json(path)
        except (OSError, ValueError) as e:
            logger.warning("Skipping unreadable governance report %s: %s", path, e)
            continue
        if doc.get("status") != "failed":
            return path
    return None


def _num(value, default: float) -> float:
    return default if value is None else float(value)


def find_policy(confidence_doc: dict, name: str) -> Optional[dict]:
    for p in confidence_doc.get("policy_results") or []:
        if p.get("policy") == name:
            return p
    return None


def evaluate_gates(metrics: dict, thresholds: GovernanceThresholds) -> List[str]:
    """Alert names for every failed health gate (drift excluded)."""
    alerts = []
    issues = metrics["integrity"]["total_issue_count"]
    if issues > 0:
        alerts.append(f"dataset_integrity_issues={issues}")

    wf = metrics["walk_forward"]["summary"] or {}
    if _num(wf.get("model_roi_mean"), -1.0) <= thresholds.min_walk_forward_roi_mean:
        alerts.append("walk_forward_roi_mean_below_threshold")
    if _num(wf.get("model_beats_coin_rate_mean"), 0.0) < thresholds.min_walk_forward_beat_coin_mean:
        alerts.append("walk_forward_beat_coin_mean_below_threshold")

    ab = metrics["confidence_policy"]["a_b_policy"] or {}
    if _num(ab.get("roi_on_staked"), -1.0) <= thresholds.min_confidence_ab_roi:
        alerts.append("confidence_ab_roi_below_threshold")
    if _num(ab.get("n_bets"), 0) < thresholds.min_confidence_ab_bets:
        alerts.append("confidence_ab_bets_below_threshold")
    return alerts


def compute_drift(current_roi_mean: Optional[float], prior_path: Optional[Path], margin: float) -> dict:
    """Compare walk-forward ROI mean against a prior report."""
    drift = {
        "previous_report": str(prior_path) if prior_path else None,
        "previous_roi_mean": None,
        "current_roi_mean": current_roi_mean,
        "delta_roi_mean": None,
        "alert": None,
    }
    if prior_path is None:
        return drift

    prior = read_json(prior_path)
    prev = (((prior.get("metrics") or {}).get("walk_forward") or {}).get("summary") or {}).get("model_roi_mean")
    drift["previous_roi_mean"] = prev
    if prev is None or current_roi_mean is None:
        return drift

    delta = current_roi_mean - prev
    drift["delta_roi_mean"] = delta
    if delta < -margin:
        drift["alert"] = f"roi_mean_drift_down_gt_{margin:g}"
    return drift


@dataclass(frozen=True)
class GovernanceReport:
    """One governance run; written once and never edited."""
    run_id: str
    created_at: str
    input: str
    status: str
    stages: List[StageResult]
    path: Optional[str] = None
    thresholds: Dict = field(default_factory=dict)
    artifact_hashes: Dict = field(default_factory=dict)
    metrics: Dict = field(default_factory=dict)
    alerts: List[str] = field(default_factory=list)
    drift: Dict = field(default_factory=dict)
    artifacts: Dict = field(default_factory=dict)

    @property
    def is_healthy(self) -> bool:
        return self.status == "healthy"

    @property
    def decision(self) -> str:
        return "keep_provisional_policy" if self.is_healthy else "hold_provisional_policy"

    def to_dict(self) -> dict:
        doc = {
            "created_at": self.created_at,
            "run_id": self.run_id,
            "input": self.input,
            "status": self.status,
            "decision": self.decision,
            "stages": [s.to_dict() for s in self.stages],
        }
        if self.status == "failed":
            doc["failures"] = {s.name: s.to_dict() for s in self.stages if s.status == "failed"}
            doc["artifacts"] = self.artifacts
            return doc
        doc.update({
            "thresholds": self.thresholds,
            "artifact_hashes": self.artifact_hashes,
            "metrics": self.metrics,
            "alerts": self.alerts,
            "drift": self.drift,
            "artifacts": self.artifacts,
        })
        return doc

    def print_summary(self) -> None:
        print("\n" + "=" * 60)
        print("MODEL GOVERNANCE")
        print("=" * 60)
        for s in self.stages:
            mark = {"ok": "OK", "failed": "FAILED", "skipped": "skipped"}[s.status]
            print(f"[{s.name}] {mark} ({s.duration_sec:.1f}s)")
            if s.status == "failed":
                print(f"   Error: {s.error_type}: {s.message}")
        print("-" * 60)
        print(f"Status: {self.status}")
        print(f"Decision: {self.decision}")
        if self.alerts:
            print("Alerts:")
            for a in self.alerts:
                print(f"  - {a}")
        if self.path:
            print(f"Report: {self.path}")
        print("=" * 60)


def _integrity_stage(cfg: GovernanceConfig, out: Path) -> None:
    reader = FeatureTableReader(cfg.input_path)
    report = validate_integrity(reader.rows(), input_path=str(reader.path), strict=cfg.strict_integrity)
    write_json(out, report.to_dict())


def _walk_forward_stage(cfg: GovernanceConfig, out: Path) -> None:
    reader = FeatureTableReader(cfg.input_path)
    df = reader.load(cfg.walk_forward.train.features)
    report = WalkForwardRunner(cfg.walk_forward).run(df, str(reader.path), reader.rejected_rows)
    write_json(out, report.to_dict())


def _confidence_stage(cfg: GovernanceConfig, out: Path) -> None:
    reader = FeatureTableReader(cfg.input_path)
    df = reader.load(cfg.confidence.train.features)
    write_json(out, ConfidenceBacktest(cfg.confidence).run(df, str(reader.path)).to_dict())


def _coin_mc_stage(cfg: GovernanceConfig, out: Path) -> None:
    reader = FeatureTableReader(cfg.input_path)
    df = reader.load(cfg.monte_carlo.train.features)
    write_json(out, MonteCarloComparator(cfg.monte_carlo).run(df, str(reader.path)).to_dict())


STAGES: List[tuple] = [
    ("integrity", _integrity_stage),
    ("walk_forward", _walk_forward_stage),
    ("confidence", _confidence_stage),
    ("coin_mc", _coin_mc_stage),
]


def run_stage(name: str, fn: Callable[[GovernanceConfig, Path], None], cfg: GovernanceConfig, out: Path) -> StageResult:
    """Run one stage, converting any exception into a failed StageResult."""
    start = time.time()
    try:
        fn(cfg, out)
    except Exception as e:
        logger.error("Stage %s failed: %s: %s", name, type(e).__name__, e)
        return StageResult(name, "failed", time.time() - start, None, type(e).__name__, str(e))
    logger.info("Stage %s finished in %.1fs", name, time.time() - start)
    return StageResult(name, "ok", time.time() - start, str(out))


class GovernanceRunner:
    """Sequential, fail-fast governance pipeline.

    Example:
        runner = GovernanceRunner(GovernanceConfig.for_track("a", input_path="features.csv"))
        report = runner.run()
    """

    def __init__(self, config: Optional[GovernanceConfig] = None):
        self.config = config or GovernanceConfig()

    def run(self, now: Optional[datetime] = None) -> GovernanceReport:
        """Run every stage and write the governance report.

        Raises:
            PipelineFailure: When any stage fails (a failed report is still written).
        """
        cfg = self.config
        now = now or datetime.now(timezone.utc)
        run_id = f"{GOVERNANCE_PREFIX}{run_stamp(now)}"
        out_dir = Path(cfg.out_dir)
        paths = {name: out_dir / f"{run_id}{suffix}.json" for name, suffix in STAGE_SUFFIXES.items()}
        report_path = out_dir / f"{run_id}.json"
        artifacts = {**{k: str(v) for k, v in paths.items()}, "governance": str(report_path)}

        logger.info("Governance run %s on %s", run_id, cfg.input_path)
        stages: List[StageResult] = []
        for name, fn in STAGES:
            if stages and not stages[-1].ok:
                stages.append(StageResult(name, "skipped", 0.0, None))
                continue
            stages.append(run_stage(name, fn, cfg, paths[name]))

        failed = [s for s in stages if s.status == "failed"]
        if failed:
            report = GovernanceReport(
                run_id=run_id,
                created_at=now.isoformat(),
                input=str(cfg.input_path),
                status="failed",
                stages=stages,
                path=str(report_path),
                artifacts=artifacts,
            )
            write_json(report_path, report.to_dict())
            raise PipelineFailure(
                f"Governance pipeline failed at stage {failed[0].name}; report: {report_path}",
                failures=[s.to_dict() for s in failed],
                report_path=str(report_path),
            )

        integrity = read_json(paths["integrity"])
        walk_forward = read_json(paths["walk_forward"])
        confidence = read_json(paths["confidence"])
        coin_mc = read_json(paths["coin_mc"])

        thresholds_active = (confidence.get("config") or {}).get("confidence") or {}
        metrics = {
            "integrity": {
                "total_issue_count": integrity.get("total_issue_count", 0),
                "issue_counts": integrity.get("issue_counts", {}),
            },
            "walk_forward": {"summary": walk_forward.get("summary")},
            "confidence_policy": {
                "thresholds_active": {
                    "bucket_a_active": thresholds_active.get("bucket_a_active"),
                    "bucket_b_active": thresholds_active.get("bucket_b_active"),
                },
                "a_b_policy": find_policy(confidence, "A_B"),
            },
            "model_vs_coin_monte_carlo": coin_mc.get("monte_carlo_summary"),
        }

        alerts = evaluate_gates(metrics, cfg.thresholds)
        current_roi = (walk_forward.get("summary") or {}).get("model_roi_mean")
        drift = compute_drift(current_roi, previous_report(out_dir, report_path.name), cfg.drift_margin)
        if drift.pop("alert"):
            alerts.append(f"roi_mean_drift_down_gt_{cfg.drift_margin:g}")

        hashes = {"input": {"file": str(cfg.input_path), "sha256": sha256_file(cfg.input_path)}}
        for key, name in (("integrity_report", "integrity"), ("walk_forward_report", "walk_forward"),
                          ("confidence_report", "confidence"), ("monte_carlo_report", "coin_mc")):
            hashes[key] = {"file": str(paths[name]), "sha256": sha256_file(paths[name])}

        report = GovernanceReport(
            run_id=run_id,
            created_at=now.isoformat(),
            input=str(cfg.input_path),
            status="attention" if alerts else "healthy",
            stages=stages,
            path=str(report_path),
            thresholds=cfg.thresholds.to_dict(),
            artifact_hashes=hashes,
            metrics=metrics,
            alerts=alerts,
            drift=drift,
            artifacts=artifacts,
        )
        write_json(report_path, report.to_dict())
        if alerts:
            logger.warning("Governance %s needs attention: %s", run_id, alerts)
        return report


__all__ = [
    "StageResult",
    "GovernanceThresholds",
    "GovernanceConfig",
    "GovernanceReport",
    "GovernanceRunner",
    "evaluate_gates",
    "compute_drift",
    "find_policy",
    "is_governance_report",
    "list_governance_reports",
    "latest_governance_report",
    "previous_report",
    "run_stage",
]
